"""Tests for the subscription lifecycle engine."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from sqlalchemy import func, select

from tiffin.errors import ConflictError, NotFoundError, PaymentProcessorError, ValidationError
from tiffin.models import Plan, Subscription
from tiffin.models.enums import PaymentMethod, PlanType, SubscriptionStatus
from tiffin.services import subscription_service
from tiffin.services.payment_processor import CheckoutSession
from tiffin.services.subscription_service import (
    can_accept_orders,
    cancel_subscription,
    create_subscription_checkout,
    days_remaining,
    get_subscription_status,
    start_free_trial,
)


async def _count_subscriptions(db) -> int:
    return (await db.execute(select(func.count(Subscription.id)))).scalar_one()


# --- status derivation ---


async def test_status_none_without_subscription(db, kitchen):
    status = await get_subscription_status(db, kitchen.id)
    assert status.status == "NONE"
    assert status.subscription is None
    assert status.can_accept_orders is False
    assert status.days_remaining == 0


async def test_status_unknown_kitchen(db):
    with pytest.raises(NotFoundError):
        await get_subscription_status(db, 999)


async def test_status_uses_most_recent_row(db, kitchen, make_subscription, clock):
    await make_subscription(status=SubscriptionStatus.ACTIVE, created_at=clock.now - timedelta(days=40))
    await make_subscription(status=SubscriptionStatus.EXPIRED, created_at=clock.now - timedelta(days=1))

    status = await get_subscription_status(db, kitchen.id)
    assert status.status == "EXPIRED"
    assert status.can_accept_orders is False

    newest = await make_subscription(status=SubscriptionStatus.TRIALING, created_at=clock.now)
    status = await get_subscription_status(db, kitchen.id)
    assert status.status == "TRIALING"
    assert status.subscription.id == newest.id


async def test_status_tie_on_created_at_prefers_later_insert(db, kitchen, make_subscription, clock):
    await make_subscription(status=SubscriptionStatus.ACTIVE, created_at=clock.now)
    later = await make_subscription(status=SubscriptionStatus.PAST_DUE, created_at=clock.now)

    status = await get_subscription_status(db, kitchen.id)
    assert status.subscription.id == later.id
    assert status.status == "PAST_DUE"


@pytest.mark.parametrize(
    "status, expected",
    [
        (SubscriptionStatus.TRIALING, True),
        (SubscriptionStatus.ACTIVE, True),
        (SubscriptionStatus.PAST_DUE, True),
        (SubscriptionStatus.SUSPENDED, False),
        (SubscriptionStatus.EXPIRED, False),
        (SubscriptionStatus.CANCELLED, False),
    ],
)
async def test_can_accept_orders_by_status(db, kitchen, make_subscription, status, expected):
    await make_subscription(status=status)
    result = await get_subscription_status(db, kitchen.id)
    assert result.can_accept_orders is expected
    assert can_accept_orders(status) is expected


def test_can_accept_orders_rejects_none():
    assert can_accept_orders("NONE") is False


def test_days_remaining_rounds_up_and_floors_at_zero(clock):
    now = clock.now
    assert days_remaining(now + timedelta(days=30), now) == 30
    assert days_remaining(now + timedelta(days=2, hours=1), now) == 3
    assert days_remaining(now - timedelta(days=5), now) == 0
    assert days_remaining(None, now) == 0


# --- free trial ---


async def test_start_free_trial(db, kitchen, cook, clock):
    sub = await start_free_trial(db, kitchen.id, cook.id)

    assert sub.status == SubscriptionStatus.TRIALING
    assert sub.payment_method == PaymentMethod.FREE_TRIAL
    assert sub.auto_renew is False
    assert sub.current_period_start == clock.now
    assert sub.current_period_end == clock.now + timedelta(days=30)

    await db.refresh(kitchen)
    assert kitchen.is_trial_used is True
    assert kitchen.trial_ends_at == clock.now + timedelta(days=30)

    status = await get_subscription_status(db, kitchen.id)
    assert status.status == "TRIALING"
    assert status.days_remaining == 30
    assert status.can_accept_orders is True


async def test_trial_seeds_default_plan_when_catalog_empty(db, kitchen, cook, clock):
    assert (await db.execute(select(Plan))).scalars().all() == []

    sub = await start_free_trial(db, kitchen.id, cook.id)

    plans = (await db.execute(select(Plan))).scalars().all()
    assert len(plans) == 1
    assert plans[0].region == "PK"
    assert sub.plan_id == plans[0].id


async def test_trial_is_one_shot(db, kitchen, cook, clock):
    await start_free_trial(db, kitchen.id, cook.id)

    clock.advance(days=400)
    with pytest.raises(ConflictError):
        await start_free_trial(db, kitchen.id, cook.id)
    assert await _count_subscriptions(db) == 1


async def test_trial_not_regained_after_history_changes(db, kitchen, cook, clock):
    sub = await start_free_trial(db, kitchen.id, cook.id)
    sub.status = SubscriptionStatus.EXPIRED
    await db.commit()

    with pytest.raises(ConflictError):
        await start_free_trial(db, kitchen.id, cook.id)


async def test_trial_unknown_kitchen(db, cook):
    with pytest.raises(NotFoundError):
        await start_free_trial(db, 404, cook.id)


# --- checkout ---


async def test_checkout_non_stripe_is_coming_soon(db, kitchen, cook, plan):
    with patch.object(subscription_service.payment_processor, "create_checkout_session", new_callable=AsyncMock) as create:
        result = await create_subscription_checkout(db, cook.id, kitchen.id, "BASE_MONTHLY", "JAZZCASH")

    assert result.status == "COMING_SOON"
    assert result.url is None
    assert result.payment_method == "JAZZCASH"
    create.assert_not_called()
    assert await _count_subscriptions(db) == 0


async def test_checkout_falls_back_to_one_time_payment(db, kitchen, cook, plan):
    session = CheckoutSession(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")
    with patch.object(
        subscription_service.payment_processor, "create_checkout_session",
        new_callable=AsyncMock, return_value=session,
    ) as create:
        result = await create_subscription_checkout(db, cook.id, kitchen.id, PlanType.BASE_2MONTH, "STRIPE")

    assert result.status == "REDIRECT"
    assert result.url == session.url

    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "payment"
    price_data = kwargs["line_items"][0]["price_data"]
    assert price_data["unit_amount"] == 109900
    assert price_data["currency"] == "pkr"
    assert price_data["product_data"]["name"] == "Smart Tiffin 2 Months Plan"
    assert kwargs["metadata"] == {
        "user_id": str(cook.id),
        "kitchen_id": str(kitchen.id),
        "plan_id": str(plan.id),
        "plan_type": "BASE_2MONTH",
    }
    assert "plan=BASE_2MONTH" in kwargs["success_url"]
    assert await _count_subscriptions(db) == 0


async def test_checkout_uses_recurring_price_when_provisioned(db, kitchen, cook, plan):
    plan.stripe_price_id_monthly = "price_monthly_123"
    await db.commit()

    session = CheckoutSession(id="cs_test_2", url="https://checkout.stripe.com/c/cs_test_2")
    with patch.object(
        subscription_service.payment_processor, "create_checkout_session",
        new_callable=AsyncMock, return_value=session,
    ) as create:
        await create_subscription_checkout(db, cook.id, kitchen.id, "BASE_MONTHLY", "STRIPE")

    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_monthly_123", "quantity": 1}]


async def test_checkout_invalid_plan_type(db, kitchen, cook, plan):
    with pytest.raises(ValidationError):
        await create_subscription_checkout(db, cook.id, kitchen.id, "BASE_LIFETIME", "STRIPE")


async def test_checkout_without_active_plan(db, kitchen, cook):
    with pytest.raises(NotFoundError):
        await create_subscription_checkout(db, cook.id, kitchen.id, "BASE_MONTHLY", "STRIPE")


async def test_checkout_processor_failure_surfaces(db, kitchen, cook, plan):
    with patch(
        "tiffin.services.payment_processor.stripe.checkout.Session.create",
        side_effect=stripe.StripeError("network down"),
    ):
        with pytest.raises(PaymentProcessorError):
            await create_subscription_checkout(db, cook.id, kitchen.id, "BASE_MONTHLY", "STRIPE")


# --- cancellation ---


async def test_cancel_disables_renewal_without_changing_status(db, kitchen, cook, make_subscription, clock):
    sub = await make_subscription(status=SubscriptionStatus.ACTIVE)

    result = await cancel_subscription(db, sub.id, cook.id, "Closing for Ramadan")

    assert result.success is True
    assert result.cancelled_at == clock.now
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.auto_renew is False
    assert sub.cancel_reason == "Closing for Ramadan"

    status = await get_subscription_status(db, kitchen.id)
    assert status.status == "ACTIVE"
    assert status.can_accept_orders is True


async def test_cancel_trial_keeps_trialing(db, kitchen, cook, clock):
    trial = await start_free_trial(db, kitchen.id, cook.id)
    await cancel_subscription(db, trial.id, cook.id)
    await db.refresh(trial)
    assert trial.status == SubscriptionStatus.TRIALING


async def test_cancel_requires_ownership(db, customer, make_subscription):
    sub = await make_subscription()
    with pytest.raises(NotFoundError):
        await cancel_subscription(db, sub.id, customer.id)


@pytest.mark.parametrize("status", [SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED])
async def test_cancel_rejects_finished_subscriptions(db, cook, make_subscription, status):
    sub = await make_subscription(status=status)
    with pytest.raises(ConflictError):
        await cancel_subscription(db, sub.id, cook.id)


async def test_cancel_swallows_processor_failure(db, cook, make_subscription, clock):
    sub = await make_subscription(stripe_subscription_id="sub_123")
    with patch.object(
        subscription_service.payment_processor, "cancel_at_period_end",
        new_callable=AsyncMock, side_effect=PaymentProcessorError("stripe down"),
    ) as cancel:
        result = await cancel_subscription(db, sub.id, cook.id)

    cancel.assert_awaited_once_with("sub_123")
    assert result.success is True
    await db.refresh(sub)
    assert sub.auto_renew is False
    assert sub.cancelled_at == clock.now
