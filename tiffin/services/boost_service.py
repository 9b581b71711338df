"""Boost records: visibility priority grants and the kitchen mirror fields.

The kitchen's ``boost_priority`` / ``boost_expires_at`` always mirror the
strongest ACTIVE boost, or 0 / None when there is none. Functions here do
not commit; the caller decides the unit of work.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.constants import DEFAULT_BOOST_PRIORITY
from tiffin.errors import ConflictError, NotFoundError
from tiffin.models.boost import Boost
from tiffin.models.enums import BoostStatus
from tiffin.models.kitchen import Kitchen
from tiffin.utils import now_utc

logger = logging.getLogger(__name__)


async def get_active_boost(db: AsyncSession, kitchen_id: int) -> Boost | None:
    """Highest-priority ACTIVE boost, latest expiry first on ties."""
    result = await db.execute(
        select(Boost)
        .where(Boost.kitchen_id == kitchen_id, Boost.status == BoostStatus.ACTIVE)
        .order_by(Boost.priority.desc(), Boost.expires_at.desc(), Boost.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _sync_kitchen_boost(db: AsyncSession, kitchen_id: int, now: datetime) -> None:
    active = await get_active_boost(db, kitchen_id)
    await db.execute(
        update(Kitchen)
        .where(Kitchen.id == kitchen_id)
        .values(
            boost_priority=active.priority if active else 0,
            boost_expires_at=active.expires_at if active else None,
            updated_at=now,
        )
    )


async def activate_boost(
    db: AsyncSession,
    kitchen_id: int,
    user_id: int,
    duration_days: int,
    priority: int = DEFAULT_BOOST_PRIORITY,
    stripe_payment_id: str | None = None,
) -> Boost:
    """Grant an ACTIVE boost and refresh the kitchen mirror."""
    if priority < 1:
        raise ValueError("Boost priority must be >= 1")

    now = now_utc()
    expires_at = now + timedelta(days=duration_days)

    boost = Boost(
        kitchen_id=kitchen_id,
        user_id=user_id,
        status=BoostStatus.ACTIVE,
        priority=priority,
        stripe_payment_id=stripe_payment_id,
        starts_at=now,
        expires_at=expires_at,
        created_at=now,
    )
    db.add(boost)
    await db.flush()
    await _sync_kitchen_boost(db, kitchen_id, now)

    logger.info(
        "Boost activated for kitchen %s (priority %d, expires %s)",
        kitchen_id, priority, expires_at.isoformat(),
    )
    return boost


async def expire_boost(db: AsyncSession, boost_id: int, kitchen_id: int, now: datetime) -> bool:
    """ACTIVE → EXPIRED and refresh the kitchen mirror. False if the boost was no longer ACTIVE."""
    result = await db.execute(
        update(Boost)
        .where(Boost.id == boost_id, Boost.status == BoostStatus.ACTIVE)
        .values(status=BoostStatus.EXPIRED)
    )
    if result.rowcount == 0:
        return False
    await _sync_kitchen_boost(db, kitchen_id, now)
    return True


async def cancel_boost(db: AsyncSession, boost_id: int) -> Boost:
    """ACTIVE → CANCELLED and refresh the kitchen mirror."""
    boost = await db.get(Boost, boost_id)
    if not boost:
        raise NotFoundError("Boost")
    if boost.status != BoostStatus.ACTIVE:
        raise ConflictError("Boost is not active")

    now = now_utc()
    boost.status = BoostStatus.CANCELLED
    await db.flush()
    await _sync_kitchen_boost(db, boost.kitchen_id, now)

    logger.info("Boost %s cancelled for kitchen %s", boost.id, boost.kitchen_id)
    return boost
