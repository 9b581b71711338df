"""Subscription-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from tiffin.constants import CANCEL_REASON_MAX_LENGTH, CANCEL_REASON_MIN_LENGTH
from tiffin.models.enums import PaymentMethod, PlanType, SubscriptionStatus

CheckoutPaymentMethod = Literal["STRIPE", "JAZZCASH", "EASYPAISA", "BANK_TRANSFER", "SADAPAY"]
StatusValue = Literal["TRIALING", "ACTIVE", "PAST_DUE", "SUSPENDED", "EXPIRED", "CANCELLED", "NONE"]


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kitchen_id: int
    user_id: int
    plan_id: int
    plan_type: PlanType | None = None
    payment_method: PaymentMethod
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    grace_period_ends_at: datetime | None = None
    auto_renew: bool
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime


class SubscriptionStatusResult(BaseModel):
    status: StatusValue
    subscription: SubscriptionOut | None = None
    trial_ends_at: datetime | None = None
    is_trial_used: bool = False
    days_remaining: int = 0
    grace_period_ends_at: datetime | None = None
    can_accept_orders: bool = False


class CheckoutRequest(BaseModel):
    plan_type: PlanType
    payment_method: CheckoutPaymentMethod = "STRIPE"


BILLING_CYCLE_PLAN_TYPES = {
    "monthly": PlanType.BASE_MONTHLY,
    "quarterly": PlanType.BASE_2MONTH,
    "yearly": PlanType.BASE_4MONTH,
}


class LegacyCheckoutRequest(BaseModel):
    """Older checkout body addressed by kitchen, with an optional billing cycle."""

    kitchen_id: int
    plan_type: PlanType | None = None
    billing_cycle: Literal["monthly", "quarterly", "yearly"] | None = None
    payment_method: CheckoutPaymentMethod = "STRIPE"

    def resolved_plan_type(self) -> PlanType:
        if self.plan_type:
            return self.plan_type
        if self.billing_cycle:
            return BILLING_CYCLE_PLAN_TYPES[self.billing_cycle]
        return PlanType.BASE_MONTHLY


class CheckoutResult(BaseModel):
    url: str | None = None
    payment_method: str
    status: Literal["REDIRECT", "COMING_SOON"]
    message: str | None = None


class CancelRequest(BaseModel):
    subscription_id: int
    reason: str | None = Field(
        None, min_length=CANCEL_REASON_MIN_LENGTH, max_length=CANCEL_REASON_MAX_LENGTH
    )


class CancelResult(BaseModel):
    success: bool = True
    cancelled_at: datetime


class SweepResult(BaseModel):
    expired_subscriptions: int = 0
    suspended_kitchens: int = 0
    expired_boosts: int = 0
    failures: int = 0
    timestamp: datetime
