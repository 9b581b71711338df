"""Premium plan catalog entry: prices are integer minor units (paisa)."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tiffin.utils import now_utc
from .base import Base, UTCDateTime


class Plan(Base):
    __tablename__ = "premium_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_monthly: Mapped[int] = mapped_column(Integer, nullable=False)
    price_quarterly: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_yearly: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="PKR")
    region: Mapped[str] = mapped_column(String(16), default="PK", index=True)
    features: Mapped[list[str]] = mapped_column(JSON, default=list)
    includes_verified_badge: Mapped[bool] = mapped_column(Boolean, default=False)
    includes_boost: Mapped[bool] = mapped_column(Boolean, default=False)
    boost_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    stripe_price_id_monthly: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_price_id_quarterly: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_price_id_yearly: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)
