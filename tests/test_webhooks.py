"""Tests for Stripe webhook handling."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from tiffin.config import get_settings
from tiffin.models import Boost, Subscription
from tiffin.models.enums import BoostStatus, KitchenStatus, SubscriptionStatus
from tiffin.services.payment_processor import ProcessorEvent
from tiffin.services.subscription_service import start_free_trial
from tiffin.services.webhook_service import handle_processor_event, map_stripe_status


def _checkout_event(kitchen, plan, **overrides) -> ProcessorEvent:
    data = {
        "id": "cs_test_abc",
        "mode": "subscription",
        "subscription": "sub_abc",
        "customer": "cus_abc",
        "payment_intent": None,
        "metadata": {
            "user_id": str(kitchen.owner_id),
            "kitchen_id": str(kitchen.id),
            "plan_id": str(plan.id),
            "plan_type": "BASE_MONTHLY",
        },
    }
    data.update(overrides)
    return ProcessorEvent(type="checkout.session.completed", id="evt_1", data=data)


async def _subscription_count(db) -> int:
    return (await db.execute(select(func.count(Subscription.id)))).scalar_one()


# --- checkout.session.completed ---


async def test_checkout_completed_creates_active_subscription(db, kitchen, plan, clock):
    kitchen.status = KitchenStatus.SUSPENDED
    await db.commit()

    with patch("tiffin.services.webhook_service.notification_service.notify_payment_received") as notify:
        await handle_processor_event(db, _checkout_event(kitchen, plan))

    sub = (await db.execute(select(Subscription))).scalar_one()
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.stripe_subscription_id == "sub_abc"
    assert sub.stripe_customer_id == "cus_abc"
    assert sub.auto_renew is True
    assert sub.current_period_end == clock.now + timedelta(days=30)

    await db.refresh(kitchen)
    assert kitchen.status == KitchenStatus.ACTIVE
    assert kitchen.is_verified is False
    notify.assert_called_once()
    assert notify.call_args.args[0] == kitchen.owner_id


async def test_checkout_completed_duplicate_is_noop(db, kitchen, plan, clock):
    with patch("tiffin.services.webhook_service.notification_service.notify_payment_received") as notify:
        await handle_processor_event(db, _checkout_event(kitchen, plan))
        await handle_processor_event(db, _checkout_event(kitchen, plan))

    assert await _subscription_count(db) == 1
    assert notify.call_count == 1


async def test_one_time_checkout_duplicate_is_noop(db, kitchen, plan, clock):
    event = _checkout_event(kitchen, plan, mode="payment", subscription=None, id="cs_one_time")
    with patch("tiffin.services.webhook_service.notification_service.notify_payment_received"):
        await handle_processor_event(db, event)
        await handle_processor_event(db, event)

    sub = (await db.execute(select(Subscription))).scalar_one()
    assert sub.auto_renew is False
    assert sub.stripe_checkout_session_id == "cs_one_time"


async def test_checkout_without_ids_does_not_match_trials(db, kitchen, cook, plan, clock):
    await start_free_trial(db, kitchen.id, cook.id)
    await handle_processor_event(db, _checkout_event(kitchen, plan, id=None, subscription=None))

    assert await _subscription_count(db) == 1


@pytest.mark.parametrize("field", ["kitchen_id", "plan_id"])
async def test_checkout_for_unknown_kitchen_or_plan_ignored(db, kitchen, plan, clock, field):
    event = _checkout_event(kitchen, plan)
    event.data["metadata"][field] = "9999"

    with patch("tiffin.services.webhook_service.notification_service.notify_payment_received") as notify:
        await handle_processor_event(db, event)

    assert await _subscription_count(db) == 0
    notify.assert_not_called()


async def test_checkout_completed_missing_metadata_ignored(db, kitchen, plan):
    await handle_processor_event(db, _checkout_event(kitchen, plan, metadata={}))
    assert await _subscription_count(db) == 0


async def test_checkout_completed_applies_plan_perks(db, kitchen, plan, clock):
    plan.includes_boost = True
    plan.boost_duration_days = 7
    plan.includes_verified_badge = True
    await db.commit()

    event = _checkout_event(kitchen, plan)
    event.data["metadata"]["plan_type"] = "BASE_4MONTH"
    with patch("tiffin.services.webhook_service.notification_service.notify_payment_received"):
        await handle_processor_event(db, event)

    sub = (await db.execute(select(Subscription))).scalar_one()
    assert sub.current_period_end == clock.now + timedelta(days=120)

    boost = (await db.execute(select(Boost))).scalar_one()
    assert boost.status == BoostStatus.ACTIVE
    assert boost.expires_at == clock.now + timedelta(days=7)

    await db.refresh(kitchen)
    assert kitchen.is_verified is True
    assert kitchen.boost_priority == 1
    assert kitchen.boost_expires_at == boost.expires_at


# --- subscription / invoice events ---


@pytest.mark.parametrize(
    "stripe_status, expected",
    [
        ("active", SubscriptionStatus.ACTIVE),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("trialing", SubscriptionStatus.TRIALING),
        ("canceled", SubscriptionStatus.CANCELLED),
        ("unpaid", SubscriptionStatus.SUSPENDED),
        ("incomplete_expired", SubscriptionStatus.PAST_DUE),
        ("paused", SubscriptionStatus.PAST_DUE),
    ],
)
def test_map_stripe_status(stripe_status, expected):
    assert map_stripe_status(stripe_status) == expected


async def test_subscription_updated_overwrites_status_and_period(db, make_subscription, clock):
    sub = await make_subscription(stripe_subscription_id="sub_upd")
    start = int(clock.now.timestamp())
    end = int((clock.now + timedelta(days=30)).timestamp())

    await handle_processor_event(db, ProcessorEvent(
        type="customer.subscription.updated",
        data={"id": "sub_upd", "status": "something_new", "items": {"data": [
            {"current_period_start": start, "current_period_end": end},
        ]}},
    ))

    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.PAST_DUE
    assert sub.current_period_start == clock.now
    assert sub.current_period_end == clock.now + timedelta(days=30)


async def test_subscription_updated_defaults_missing_period(db, make_subscription, clock):
    sub = await make_subscription(stripe_subscription_id="sub_noperiod")

    await handle_processor_event(db, ProcessorEvent(
        type="customer.subscription.updated",
        data={"id": "sub_noperiod", "status": "active"},
    ))

    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.current_period_start == clock.now
    assert sub.current_period_end == clock.now + timedelta(days=30)


async def test_subscription_updated_out_of_past_due_clears_grace(db, make_subscription, clock):
    sub = await make_subscription(
        stripe_subscription_id="sub_recovered",
        status=SubscriptionStatus.PAST_DUE,
        grace_period_ends_at=clock.now + timedelta(days=2),
    )

    await handle_processor_event(db, ProcessorEvent(
        type="customer.subscription.updated", data={"id": "sub_recovered", "status": "active"},
    ))

    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.grace_period_ends_at is None


async def test_subscription_updated_keeps_grace_while_past_due(db, make_subscription, clock):
    grace = clock.now + timedelta(days=2)
    sub = await make_subscription(
        stripe_subscription_id="sub_dunning", status=SubscriptionStatus.PAST_DUE, grace_period_ends_at=grace,
    )

    await handle_processor_event(db, ProcessorEvent(
        type="customer.subscription.updated", data={"id": "sub_dunning", "status": "past_due"},
    ))

    await db.refresh(sub)
    assert sub.grace_period_ends_at == grace


async def test_subscription_deleted_cancels(db, make_subscription, clock):
    sub = await make_subscription(stripe_subscription_id="sub_del")
    await handle_processor_event(db, ProcessorEvent(
        type="customer.subscription.deleted", data={"id": "sub_del"},
    ))
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.CANCELLED
    assert sub.cancelled_at == clock.now


async def test_invoice_payment_failed_starts_grace(db, make_subscription, clock):
    sub = await make_subscription(stripe_subscription_id="sub_fail")
    await handle_processor_event(db, ProcessorEvent(
        type="invoice.payment_failed", data={"id": "in_1", "subscription": "sub_fail"},
    ))
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.PAST_DUE
    assert sub.grace_period_ends_at == clock.now + timedelta(days=3)


async def test_invoice_paid_reads_nested_subscription_id(db, make_subscription, clock):
    sub = await make_subscription(
        stripe_subscription_id="sub_nested",
        status=SubscriptionStatus.PAST_DUE,
        grace_period_ends_at=clock.now + timedelta(days=2),
    )
    await handle_processor_event(db, ProcessorEvent(
        type="invoice.paid",
        data={"id": "in_2", "parent": {"subscription_details": {"subscription": "sub_nested"}}},
    ))
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.grace_period_ends_at is None


async def test_unknown_event_ignored(db, make_subscription):
    sub = await make_subscription(stripe_subscription_id="sub_x")
    await handle_processor_event(db, ProcessorEvent(type="customer.tax_id.created", data={"id": "txi_1"}))
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.ACTIVE


# --- HTTP endpoint ---


async def test_webhook_endpoint_accepts_unsigned_in_debug(client, db, make_subscription):
    sub = await make_subscription(stripe_subscription_id="sub_http")
    resp = await client.post("/webhooks/stripe", json={
        "id": "evt_http",
        "type": "invoice.payment_failed",
        "data": {"object": {"id": "in_3", "subscription": "sub_http"}},
    })
    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.PAST_DUE


async def test_webhook_endpoint_unknown_event(client):
    resp = await client.post("/webhooks/stripe", json={"id": "evt_u", "type": "radar.early_fraud_warning.created", "data": {"object": {}}})
    assert resp.status_code == 200


async def test_webhook_endpoint_rejects_bad_signature(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")
    resp = await client.post(
        "/webhooks/stripe",
        content=b'{"type": "invoice.paid", "data": {"object": {}}}',
        headers={"stripe-signature": "t=1,v1=deadbeef"},
    )
    assert resp.status_code == 400


async def test_webhook_endpoint_rejects_missing_signature(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "whsec_test")
    resp = await client.post("/webhooks/stripe", json={"type": "invoice.paid", "data": {"object": {}}})
    assert resp.status_code == 400


async def test_webhook_endpoint_accepts_valid_signature(client, db, make_subscription, monkeypatch):
    secret = "whsec_test"
    monkeypatch.setattr(get_settings(), "stripe_webhook_secret", secret)
    sub = await make_subscription(stripe_subscription_id="sub_signed")

    payload = json.dumps({
        "id": "evt_signed",
        "object": "event",
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": "sub_signed", "object": "subscription"}},
    })
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()

    resp = await client.post(
        "/webhooks/stripe",
        content=payload.encode(),
        headers={"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"},
    )
    assert resp.status_code == 200
    await db.refresh(sub)
    assert sub.status == SubscriptionStatus.CANCELLED


async def test_webhook_endpoint_handler_failure_returns_500(client):
    with patch(
        "tiffin.routers.webhooks.handle_processor_event",
        side_effect=RuntimeError("db gone"),
    ):
        resp = await client.post("/webhooks/stripe", json={"id": "evt_f", "type": "invoice.paid", "data": {"object": {}}})
    assert resp.status_code == 500
