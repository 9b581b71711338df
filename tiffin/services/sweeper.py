"""Grace-period and expiry sweep.

Advances the time-based transitions no request would otherwise trigger:

1. TRIALING/ACTIVE subscriptions past ``current_period_end`` become EXPIRED.
2. PAST_DUE subscriptions past ``grace_period_ends_at`` become SUSPENDED,
   and so does their kitchen.
3. ACTIVE boosts past ``expires_at`` become EXPIRED and the kitchen's boost
   mirror is reset.

Every row is updated on its own, conditioned on its current status, and
committed separately. Overlapping sweeps therefore never double-apply a
transition, and one failing row does not stop the rest.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.models.boost import Boost
from tiffin.models.enums import BoostStatus, KitchenStatus, SubscriptionStatus
from tiffin.models.kitchen import Kitchen
from tiffin.models.subscription import Subscription
from tiffin.schemas.subscription import SweepResult
from tiffin.services import boost_service
from tiffin.services.subscription_service import invalidate_status
from tiffin.utils import now_utc

logger = logging.getLogger(__name__)


async def _expire_subscription(db: AsyncSession, subscription_id: int, now: datetime) -> bool:
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.status.in_([SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE]),
        )
        .values(status=SubscriptionStatus.EXPIRED, updated_at=now)
    )
    return result.rowcount > 0


async def _suspend_subscription(
    db: AsyncSession, subscription_id: int, kitchen_id: int, now: datetime
) -> bool:
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.status == SubscriptionStatus.PAST_DUE,
        )
        .values(status=SubscriptionStatus.SUSPENDED, updated_at=now)
    )
    if result.rowcount == 0:
        return False
    await db.execute(
        update(Kitchen)
        .where(Kitchen.id == kitchen_id)
        .values(status=KitchenStatus.SUSPENDED, updated_at=now)
    )
    return True


async def check_grace_period(db: AsyncSession, kitchen_id: int, now: datetime | None = None) -> bool:
    """Suspend one kitchen whose grace window has run out, without waiting for the sweep.

    Returns True if the kitchen was suspended by this call.
    """
    now = now or now_utc()
    result = await db.execute(
        select(Subscription.id).where(
            Subscription.kitchen_id == kitchen_id,
            Subscription.status == SubscriptionStatus.PAST_DUE,
            Subscription.grace_period_ends_at < now,
        )
    )
    suspended = False
    for sub_id in result.scalars().all():
        suspended = await _suspend_subscription(db, sub_id, kitchen_id, now) or suspended
    if not suspended:
        return False

    await db.commit()
    await invalidate_status(kitchen_id)
    logger.warning("Kitchen %s suspended, grace period expired", kitchen_id)
    return True


async def _apply(db: AsyncSession, label: str, row_id: int, step: Callable[[], Awaitable[bool]]) -> bool | None:
    """Run one row transition in its own transaction.

    Returns whether the row transitioned, or None if it failed.
    """
    try:
        changed = await step()
        await db.commit()
        return changed
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Sweep failed to %s row %s", label, row_id)
        return None


async def run_sweep(db: AsyncSession, now: datetime | None = None) -> SweepResult:
    """Run one sweep pass and return the transition counts."""
    now = now or now_utc()
    result = SweepResult(timestamp=now)
    touched: set[int] = set()

    lapsed = await db.execute(
        select(Subscription.id, Subscription.kitchen_id).where(
            Subscription.status.in_([SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE]),
            Subscription.current_period_end < now,
        )
    )
    for sub_id, kitchen_id in lapsed.all():
        changed = await _apply(db, "expire subscription", sub_id, lambda: _expire_subscription(db, sub_id, now))
        if changed is None:
            result.failures += 1
        elif changed:
            result.expired_subscriptions += 1
            touched.add(kitchen_id)

    overdue = await db.execute(
        select(Subscription.id, Subscription.kitchen_id).where(
            Subscription.status == SubscriptionStatus.PAST_DUE,
            Subscription.grace_period_ends_at < now,
        )
    )
    for sub_id, kitchen_id in overdue.all():
        changed = await _apply(
            db, "suspend subscription", sub_id, lambda: _suspend_subscription(db, sub_id, kitchen_id, now)
        )
        if changed is None:
            result.failures += 1
        elif changed:
            result.suspended_kitchens += 1
            touched.add(kitchen_id)

    stale_boosts = await db.execute(
        select(Boost.id, Boost.kitchen_id).where(
            Boost.status == BoostStatus.ACTIVE,
            Boost.expires_at < now,
        )
    )
    for boost_id, kitchen_id in stale_boosts.all():
        changed = await _apply(
            db, "expire boost", boost_id, lambda: boost_service.expire_boost(db, boost_id, kitchen_id, now)
        )
        if changed is None:
            result.failures += 1
        elif changed:
            result.expired_boosts += 1

    if touched:
        await invalidate_status(*touched)

    logger.info(
        "Sweep complete: %d expired, %d suspended, %d boosts expired, %d failures",
        result.expired_subscriptions, result.suspended_kitchens, result.expired_boosts, result.failures,
    )
    return result
