"""Subscription lifecycle: status derivation, free trial, checkout, cancellation.

A kitchen's current subscription is its most recently created row; there is
no "active subscription" pointer. Every mutation commits once and then drops
the kitchen's cached status before returning.
"""

import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin import cache
from tiffin.config import get_settings
from tiffin.constants import (
    CHECKOUT_CANCEL_PATH,
    CHECKOUT_SUCCESS_PATH,
    SUBSCRIPTION_CACHE_TTL,
    TRIAL_DURATION_DAYS,
)
from tiffin.errors import ConflictError, NotFoundError, PaymentProcessorError
from tiffin.models.enums import (
    ORDER_ACCEPTING_STATUSES,
    PaymentMethod,
    PlanType,
    SubscriptionStatus,
)
from tiffin.models.kitchen import Kitchen
from tiffin.models.subscription import Subscription
from tiffin.schemas.subscription import (
    CancelResult,
    CheckoutResult,
    SubscriptionOut,
    SubscriptionStatusResult,
)
from tiffin.services import payment_processor
from tiffin.services.plan_catalog import (
    ensure_default_plan,
    get_active_plan,
    get_plan_config,
    resolve_price_id,
)
from tiffin.utils import ONE_DAY, now_utc

logger = logging.getLogger(__name__)


def days_remaining(period_end: datetime | None, now: datetime) -> int:
    """Whole days left in the period, rounded up, never negative."""
    if period_end is None:
        return 0
    return max(0, math.ceil((period_end - now) / ONE_DAY))


def can_accept_orders(status: SubscriptionStatus | str) -> bool:
    """TRIALING, ACTIVE and PAST_DUE (grace window) may trade; everything else may not."""
    try:
        return SubscriptionStatus(status) in ORDER_ACCEPTING_STATUSES
    except ValueError:
        return False


async def get_latest_subscription(db: AsyncSession, kitchen_id: int) -> Subscription | None:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.kitchen_id == kitchen_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _compute_status(db: AsyncSession, kitchen_id: int) -> SubscriptionStatusResult:
    kitchen = await db.get(Kitchen, kitchen_id)
    if not kitchen:
        raise NotFoundError("Kitchen")

    subscription = await get_latest_subscription(db, kitchen_id)
    if not subscription:
        return SubscriptionStatusResult(
            status="NONE",
            subscription=None,
            trial_ends_at=kitchen.trial_ends_at,
            is_trial_used=kitchen.is_trial_used,
            days_remaining=0,
            grace_period_ends_at=None,
            can_accept_orders=False,
        )

    return SubscriptionStatusResult(
        status=subscription.status.value,
        subscription=SubscriptionOut.model_validate(subscription),
        trial_ends_at=kitchen.trial_ends_at,
        is_trial_used=kitchen.is_trial_used,
        days_remaining=days_remaining(subscription.current_period_end, now_utc()),
        grace_period_ends_at=subscription.grace_period_ends_at,
        can_accept_orders=can_accept_orders(subscription.status),
    )


async def get_subscription_status(db: AsyncSession, kitchen_id: int) -> SubscriptionStatusResult:
    """Current subscription status for a kitchen, cached for SUBSCRIPTION_CACHE_TTL."""
    key = cache.subscription_status_key(kitchen_id)

    raw = await cache.get_cached(key)
    if raw is not None:
        return SubscriptionStatusResult.model_validate_json(raw)

    status = await _compute_status(db, kitchen_id)
    await cache.set_cached(key, status.model_dump_json(), SUBSCRIPTION_CACHE_TTL)
    return status


async def invalidate_status(*kitchen_ids: int) -> None:
    await cache.invalidate(*(cache.subscription_status_key(k) for k in set(kitchen_ids)))


async def start_free_trial(db: AsyncSession, kitchen_id: int, user_id: int) -> Subscription:
    """Start the kitchen's one-time, non-renewing free trial.

    Trial eligibility lives on the kitchen, not on subscription rows, so it
    cannot be regained by any subscription history change.
    """
    kitchen = await db.get(Kitchen, kitchen_id)
    if not kitchen:
        raise NotFoundError("Kitchen")

    if kitchen.is_trial_used:
        raise ConflictError("Free trial has already been used for this kitchen")

    now = now_utc()
    trial_ends_at = now + timedelta(days=TRIAL_DURATION_DAYS)

    plan = await ensure_default_plan(db, kitchen.region)

    subscription = Subscription(
        user_id=user_id,
        kitchen_id=kitchen_id,
        plan_id=plan.id,
        plan_type=PlanType.BASE_MONTHLY,
        payment_method=PaymentMethod.FREE_TRIAL,
        status=SubscriptionStatus.TRIALING,
        current_period_start=now,
        current_period_end=trial_ends_at,
        auto_renew=False,
        created_at=now,
        updated_at=now,
    )
    db.add(subscription)

    kitchen.is_trial_used = True
    kitchen.trial_ends_at = trial_ends_at
    kitchen.updated_at = now

    await db.commit()
    await db.refresh(subscription)
    await invalidate_status(kitchen_id)

    logger.info(
        "Free trial started for kitchen %s by user %s (ends %s)",
        kitchen_id, user_id, trial_ends_at.isoformat(),
    )
    return subscription


async def create_subscription_checkout(
    db: AsyncSession,
    user_id: int,
    kitchen_id: int,
    plan_type: PlanType | str,
    payment_method: PaymentMethod | str,
) -> CheckoutResult:
    """Start a processor checkout for a plan.

    No subscription row is written here; the row appears only when the
    processor confirms payment through the checkout-completed webhook.
    """
    plan_config = get_plan_config(plan_type)
    method = payment_method.value if isinstance(payment_method, PaymentMethod) else str(payment_method)

    if method != PaymentMethod.STRIPE.value:
        logger.info(
            "Non-Stripe payment method %s requested for kitchen %s (%s)",
            method, kitchen_id, plan_config.type.value,
        )
        return CheckoutResult(
            url=None,
            payment_method=method,
            status="COMING_SOON",
            message=f"{method} payments are coming soon. Please use Stripe for now.",
        )

    kitchen = await db.get(Kitchen, kitchen_id)
    if not kitchen:
        raise NotFoundError("Kitchen")

    settings = get_settings()
    plan = await get_active_plan(db, kitchen.region)
    price_id = resolve_price_id(plan, plan_config.type)

    metadata = {
        "user_id": str(user_id),
        "kitchen_id": str(kitchen_id),
        "plan_id": str(plan.id),
        "plan_type": plan_config.type.value,
    }
    success_url = settings.app_url + CHECKOUT_SUCCESS_PATH.format(plan_type=plan_config.type.value)
    cancel_url = settings.app_url + CHECKOUT_CANCEL_PATH

    if price_id:
        mode = "subscription"
        line_items = [{"price": price_id, "quantity": 1}]
    else:
        # Recurring price not provisioned on Stripe yet: charge the catalog amount once
        mode = "payment"
        line_items = [
            {
                "price_data": {
                    "currency": plan.currency.lower(),
                    "product_data": {
                        "name": f"Smart Tiffin {plan_config.label} Plan",
                        "description": plan_config.description,
                    },
                    "unit_amount": plan_config.price,
                },
                "quantity": 1,
            }
        ]

    session = await payment_processor.create_checkout_session(
        mode=mode,
        line_items=line_items,
        metadata=metadata,
        success_url=success_url,
        cancel_url=cancel_url,
    )

    logger.info(
        "Stripe checkout session %s created (%s) for kitchen %s, plan %s",
        session.id, mode, kitchen_id, plan_config.type.value,
    )
    return CheckoutResult(url=session.url, payment_method=method, status="REDIRECT")


async def cancel_subscription(
    db: AsyncSession,
    subscription_id: int,
    user_id: int,
    reason: str | None = None,
) -> CancelResult:
    """Turn off auto-renew. Status is left alone until the period runs out."""
    result = await db.execute(
        select(Subscription).where(
            Subscription.id == subscription_id,
            Subscription.user_id == user_id,
        )
    )
    subscription = result.scalar_one_or_none()
    if not subscription:
        raise NotFoundError("Subscription")

    if subscription.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
        raise ConflictError("Subscription is already cancelled or expired")

    if subscription.stripe_subscription_id:
        try:
            await payment_processor.cancel_at_period_end(subscription.stripe_subscription_id)
        except PaymentProcessorError as e:
            # Local state is authoritative; the processor catches up via webhooks
            logger.error(
                "Stripe cancel failed for %s, continuing with local cancellation: %s",
                subscription.stripe_subscription_id, e,
            )

    now = now_utc()
    subscription.auto_renew = False
    subscription.cancelled_at = now
    subscription.cancel_reason = reason
    subscription.updated_at = now

    await db.commit()
    await invalidate_status(subscription.kitchen_id)

    logger.info(
        "Subscription %s cancelled by user %s (kitchen %s, reason: %s)",
        subscription_id, user_id, subscription.kitchen_id, reason,
    )
    return CancelResult(success=True, cancelled_at=now)
