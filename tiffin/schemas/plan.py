"""Plan catalog Pydantic schemas."""

from pydantic import BaseModel, ConfigDict


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    price_monthly: int
    price_quarterly: int | None = None
    price_yearly: int | None = None
    currency: str
    region: str
    features: list[str] = []
    includes_verified_badge: bool = False
    includes_boost: bool = False
    boost_duration_days: int | None = None
    is_active: bool = True
