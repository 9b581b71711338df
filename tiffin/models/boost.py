"""Boost model: time-bounded visibility priority for a kitchen."""

from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tiffin.utils import now_utc
from .base import Base, UTCDateTime
from .enums import BoostStatus


class Boost(Base):
    __tablename__ = "boosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kitchen_id: Mapped[int] = mapped_column(ForeignKey("kitchens.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    status: Mapped[BoostStatus] = mapped_column(
        Enum(BoostStatus, native_enum=False, length=16), default=BoostStatus.ACTIVE, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=1)
    stripe_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    kitchen: Mapped["Kitchen"] = relationship(back_populates="boosts")
