"""SQLAlchemy models for the billing service (PostgreSQL)."""

from .base import Base
from .user import User
from .kitchen import Kitchen
from .plan import Plan
from .subscription import Subscription
from .boost import Boost
from .meal import Meal
from .order import Order, OrderItem

__all__ = [
    "Base",
    "User",
    "Kitchen",
    "Plan",
    "Subscription",
    "Boost",
    "Meal",
    "Order",
    "OrderItem",
]
