"""Enumerations shared by the billing models and schemas."""

from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    COOK = "COOK"
    ADMIN = "ADMIN"


class KitchenStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"


class SubscriptionStatus(str, Enum):
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PlanType(str, Enum):
    BASE_MONTHLY = "BASE_MONTHLY"
    BASE_2MONTH = "BASE_2MONTH"
    BASE_4MONTH = "BASE_4MONTH"


class PaymentMethod(str, Enum):
    STRIPE = "STRIPE"
    JAZZCASH = "JAZZCASH"
    EASYPAISA = "EASYPAISA"
    BANK_TRANSFER = "BANK_TRANSFER"
    SADAPAY = "SADAPAY"
    FREE_TRIAL = "FREE_TRIAL"


class BoostStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses under which a kitchen may keep trading (PAST_DUE is the grace window)
ORDER_ACCEPTING_STATUSES = frozenset(
    {SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE}
)
