"""Kitchen model: only the columns the billing lifecycle reads or writes."""

from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tiffin.utils import now_utc
from .base import Base, UTCDateTime
from .enums import KitchenStatus


class Kitchen(Base):
    __tablename__ = "kitchens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(16), default="PK")
    status: Mapped[KitchenStatus] = mapped_column(
        Enum(KitchenStatus, native_enum=False, length=16), default=KitchenStatus.ACTIVE
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    # is_trial_used never goes back to False
    is_trial_used: Mapped[bool] = mapped_column(Boolean, default=False)
    trial_ends_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Mirrors the ACTIVE boost, 0 when none
    boost_priority: Mapped[int] = mapped_column(Integer, default=0)
    boost_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)

    owner: Mapped["User"] = relationship(back_populates="kitchens")
    subscriptions: Mapped[list["Subscription"]] = relationship(back_populates="kitchen")
    boosts: Mapped[list["Boost"]] = relationship(back_populates="kitchen")
