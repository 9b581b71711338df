"""Stripe webhook event handlers.

Each handler is safe under at-least-once delivery: checkout completion
checks for an existing row before inserting, and the status handlers only
overwrite fields.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.constants import FALLBACK_PERIOD_DAYS, GRACE_PERIOD_DAYS
from tiffin.models.enums import KitchenStatus, PaymentMethod, PlanType, SubscriptionStatus
from tiffin.models.kitchen import Kitchen
from tiffin.models.plan import Plan
from tiffin.models.subscription import Subscription
from tiffin.models.user import User
from tiffin.services import boost_service, notification_service
from tiffin.services.payment_processor import ProcessorEvent, get_period_timestamps
from tiffin.services.plan_catalog import SUBSCRIPTION_PLANS
from tiffin.services.subscription_service import invalidate_status
from tiffin.utils import from_unix, now_utc

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "trialing": SubscriptionStatus.TRIALING,
    "canceled": SubscriptionStatus.CANCELLED,
    "unpaid": SubscriptionStatus.SUSPENDED,
}


def map_stripe_status(stripe_status: str | None) -> SubscriptionStatus:
    """Unknown processor statuses are treated as payment trouble."""
    return STRIPE_STATUS_MAP.get(stripe_status or "", SubscriptionStatus.PAST_DUE)


def _invoice_subscription_id(invoice_data: dict[str, Any]) -> str | None:
    """Newer API versions moved invoice.subscription under parent.subscription_details."""
    if invoice_data.get("subscription"):
        return invoice_data["subscription"]
    parent = invoice_data.get("parent") or {}
    return (parent.get("subscription_details") or {}).get("subscription")


async def _subscriptions_for(db: AsyncSession, stripe_subscription_id: str) -> list[Subscription]:
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return list(result.scalars().all())


async def handle_checkout_completed(session_data: dict[str, Any], db: AsyncSession) -> None:
    """Record a paid checkout as a new ACTIVE subscription (idempotent)."""
    metadata = session_data.get("metadata") or {}
    try:
        user_id = int(metadata["user_id"])
        kitchen_id = int(metadata["kitchen_id"])
        plan_id = int(metadata["plan_id"])
    except (KeyError, TypeError, ValueError):
        logger.error("Missing metadata in checkout.session.completed (session %s)", session_data.get("id"))
        return

    stripe_subscription_id = session_data.get("subscription")
    checkout_session_id = session_data.get("id")

    if stripe_subscription_id:
        duplicate = Subscription.stripe_subscription_id == stripe_subscription_id
    elif checkout_session_id:
        duplicate = Subscription.stripe_checkout_session_id == checkout_session_id
    else:
        logger.error("checkout.session.completed without session or subscription id; ignoring")
        return
    existing = await db.execute(select(Subscription.id).where(duplicate).limit(1))
    if existing.scalar_one_or_none() is not None:
        logger.warning(
            "Duplicate checkout webhook, subscription exists (stripe sub %s, session %s)",
            stripe_subscription_id, checkout_session_id,
        )
        return

    try:
        plan_type = PlanType(metadata.get("plan_type") or PlanType.BASE_MONTHLY)
    except ValueError:
        logger.warning("Unknown plan_type %r in checkout metadata, using BASE_MONTHLY", metadata.get("plan_type"))
        plan_type = PlanType.BASE_MONTHLY

    kitchen = await db.get(Kitchen, kitchen_id)
    plan = await db.get(Plan, plan_id)
    if not kitchen or not plan:
        logger.error(
            "checkout.session.completed for unknown kitchen %s or plan %s (session %s); ignoring",
            kitchen_id, plan_id, checkout_session_id,
        )
        return

    now = now_utc()
    period_end = now + timedelta(days=SUBSCRIPTION_PLANS[plan_type].duration_days)

    db.add(
        Subscription(
            user_id=user_id,
            kitchen_id=kitchen_id,
            plan_id=plan_id,
            plan_type=plan_type,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id=session_data.get("customer"),
            stripe_checkout_session_id=checkout_session_id,
            payment_method=PaymentMethod.STRIPE,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=period_end,
            auto_renew=session_data.get("mode") == "subscription",
            created_at=now,
            updated_at=now,
        )
    )

    kitchen.status = KitchenStatus.ACTIVE
    kitchen.updated_at = now

    if plan.includes_boost and plan.boost_duration_days:
        await boost_service.activate_boost(
            db,
            kitchen_id,
            user_id,
            plan.boost_duration_days,
            stripe_payment_id=session_data.get("payment_intent"),
        )
    if plan.includes_verified_badge:
        kitchen.is_verified = True

    await db.commit()
    await invalidate_status(kitchen_id)

    logger.info(
        "Subscription activated via checkout for kitchen %s (%s, ends %s)",
        kitchen_id, plan_type.value, period_end.isoformat(),
    )

    user = await db.get(User, user_id)
    notification_service.notify_payment_received(
        user_id,
        user.email if user else None,
        kitchen.name,
        SUBSCRIPTION_PLANS[plan_type].label,
    )


async def handle_subscription_updated(sub_data: dict[str, Any], db: AsyncSession) -> None:
    """Mirror a processor-side status change (renewal, dunning) onto the local rows."""
    subscription_id = sub_data.get("id")
    if not subscription_id:
        return
    subs = await _subscriptions_for(db, subscription_id)
    if not subs:
        logger.info("subscription.updated for unknown Stripe subscription %s", subscription_id)
        return

    now = now_utc()
    status = map_stripe_status(sub_data.get("status"))
    period_start, period_end = get_period_timestamps(sub_data)
    for sub in subs:
        sub.status = status
        sub.current_period_start = from_unix(period_start) or now
        sub.current_period_end = from_unix(period_end) or now + timedelta(days=FALLBACK_PERIOD_DAYS)
        if status != SubscriptionStatus.PAST_DUE:
            sub.grace_period_ends_at = None
        sub.updated_at = now

    await db.commit()
    await invalidate_status(*(s.kitchen_id for s in subs))

    logger.info(
        "Subscription %s updated via webhook: %s -> %s",
        subscription_id, sub_data.get("status"), status.value,
    )


async def handle_subscription_deleted(sub_data: dict[str, Any], db: AsyncSession) -> None:
    subscription_id = sub_data.get("id")
    if not subscription_id:
        return
    subs = await _subscriptions_for(db, subscription_id)
    if not subs:
        return

    now = now_utc()
    for sub in subs:
        sub.status = SubscriptionStatus.CANCELLED
        sub.cancelled_at = now
        sub.updated_at = now

    await db.commit()
    await invalidate_status(*(s.kitchen_id for s in subs))
    logger.info("Subscription %s deleted via webhook", subscription_id)


async def handle_invoice_payment_failed(invoice_data: dict[str, Any], db: AsyncSession) -> None:
    """Start the grace window. The only writer of grace_period_ends_at."""
    subscription_id = _invoice_subscription_id(invoice_data)
    if not subscription_id:
        return
    subs = await _subscriptions_for(db, subscription_id)
    if not subs:
        return

    now = now_utc()
    grace_period_ends_at = now + timedelta(days=GRACE_PERIOD_DAYS)
    for sub in subs:
        sub.status = SubscriptionStatus.PAST_DUE
        sub.grace_period_ends_at = grace_period_ends_at
        sub.updated_at = now

    await db.commit()
    await invalidate_status(*(s.kitchen_id for s in subs))

    logger.warning(
        "Invoice payment failed for %s, grace period until %s",
        subscription_id, grace_period_ends_at.isoformat(),
    )


async def handle_invoice_paid(invoice_data: dict[str, Any], db: AsyncSession) -> None:
    subscription_id = _invoice_subscription_id(invoice_data)
    if not subscription_id:
        return
    subs = await _subscriptions_for(db, subscription_id)
    if not subs:
        return

    now = now_utc()
    for sub in subs:
        sub.status = SubscriptionStatus.ACTIVE
        sub.grace_period_ends_at = None
        sub.updated_at = now

    await db.commit()
    await invalidate_status(*(s.kitchen_id for s in subs))
    logger.info("Invoice paid, subscription %s reactivated", subscription_id)


async def handle_processor_event(db: AsyncSession, event: ProcessorEvent) -> None:
    """Dispatch a verified processor event. Unknown types are ignored."""
    logger.info("Stripe webhook: %s (%s)", event.type, event.id)

    if event.type == "checkout.session.completed":
        await handle_checkout_completed(event.data, db)
    elif event.type == "customer.subscription.updated":
        await handle_subscription_updated(event.data, db)
    elif event.type == "customer.subscription.deleted":
        await handle_subscription_deleted(event.data, db)
    elif event.type == "invoice.payment_failed":
        await handle_invoice_payment_failed(event.data, db)
    elif event.type == "invoice.paid":
        await handle_invoice_paid(event.data, db)
    else:
        logger.debug("Unhandled Stripe event type: %s", event.type)
