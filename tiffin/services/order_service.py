"""Order placement behind the subscription admission gate."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.errors import (
    KitchenUnavailableError,
    NotFoundError,
    SubscriptionLapsedError,
    ValidationError,
)
from tiffin.models.enums import KitchenStatus, OrderStatus
from tiffin.models.kitchen import Kitchen
from tiffin.models.meal import Meal
from tiffin.models.order import Order, OrderItem
from tiffin.schemas.order import OrderCreate
from tiffin.services.subscription_service import get_subscription_status
from tiffin.services.sweeper import check_grace_period
from tiffin.utils import now_utc

logger = logging.getLogger(__name__)


async def check_kitchen_can_accept_orders(db: AsyncSession, kitchen_id: int) -> Kitchen:
    """Admission gate: the kitchen must be listed and its subscription in good standing.

    Runs before any menu lookup so a lapsed kitchen is rejected cheaply, with
    a message that tells the customer the cook has to renew. A kitchen
    suspended for non-payment reports the lapse, not a missing kitchen.
    """
    kitchen = await db.get(Kitchen, kitchen_id)
    if not kitchen or kitchen.status == KitchenStatus.INACTIVE:
        raise KitchenUnavailableError()

    await check_grace_period(db, kitchen_id)

    status = await get_subscription_status(db, kitchen_id)
    if not status.can_accept_orders:
        logger.info("Order rejected for kitchen %s: subscription %s", kitchen_id, status.status)
        raise SubscriptionLapsedError()

    # Suspended by an admin while the subscription itself is fine
    if kitchen.status != KitchenStatus.ACTIVE:
        raise KitchenUnavailableError()
    return kitchen


async def place_order(db: AsyncSession, customer_id: int, payload: OrderCreate) -> Order:
    await check_kitchen_can_accept_orders(db, payload.kitchen_id)

    meal_ids = {item.meal_id for item in payload.items}
    result = await db.execute(
        select(Meal).where(Meal.kitchen_id == payload.kitchen_id, Meal.id.in_(sorted(meal_ids)))
    )
    meals = {meal.id: meal for meal in result.scalars().all()}

    total_amount = 0
    items = []
    for item in payload.items:
        meal = meals.get(item.meal_id)
        if not meal:
            raise NotFoundError(f"Meal {item.meal_id}")
        if not meal.is_available:
            raise ValidationError(
                f"{meal.name} is not available",
                details={"items": [f"Meal {meal.id} is currently unavailable"]},
            )
        total_amount += meal.price * item.quantity
        items.append(
            OrderItem(
                meal_id=meal.id,
                quantity=item.quantity,
                price_at_order=meal.price,
                notes=item.notes,
            )
        )

    currency = next(iter(meals.values())).currency
    order = Order(
        kitchen_id=payload.kitchen_id,
        customer_id=customer_id,
        status=OrderStatus.PENDING,
        total_amount=total_amount,
        currency=currency,
        notes=payload.notes,
        created_at=now_utc(),
        items=items,
    )
    db.add(order)
    await db.commit()

    logger.info(
        "Order %s placed by user %s at kitchen %s (%d items, total %d)",
        order.id, customer_id, payload.kitchen_id, len(items), total_amount,
    )
    return order
