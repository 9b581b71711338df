"""Stripe adapter: the only module that talks to the payment processor.

The lifecycle engine sees three operations: create a checkout session,
cancel at period end, and turn a webhook payload into a ``ProcessorEvent``.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import stripe

from tiffin.config import get_settings
from tiffin.errors import PaymentProcessorError

logger = logging.getLogger(__name__)


@dataclass
class ProcessorEvent:
    """A verified webhook event reduced to plain data."""

    type: str
    id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    id: str
    url: str | None


class WebhookVerificationError(Exception):
    """Webhook payload or signature could not be trusted."""


def init_stripe() -> None:
    """Set the Stripe API key from settings. Call once at startup."""
    settings = get_settings()
    stripe.api_key = settings.stripe_secret_key


async def create_checkout_session(
    *,
    mode: str,
    line_items: list[dict[str, Any]],
    metadata: dict[str, str],
    success_url: str,
    cancel_url: str,
) -> CheckoutSession:
    """Create a Stripe Checkout session (``subscription`` or one-time ``payment`` mode)."""
    try:
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            mode=mode,
            line_items=line_items,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout session: %s", e)
        raise PaymentProcessorError("Payment processor is unavailable, please try again") from e
    return CheckoutSession(id=session.id, url=session.url)


async def cancel_at_period_end(stripe_subscription_id: str) -> None:
    """Ask Stripe to stop renewing a subscription once its current period ends."""
    try:
        await asyncio.to_thread(
            stripe.Subscription.modify,
            stripe_subscription_id,
            cancel_at_period_end=True,
        )
    except stripe.StripeError as e:
        raise PaymentProcessorError(f"Failed to cancel Stripe subscription: {e}") from e


def construct_event(payload: bytes, signature: str | None) -> ProcessorEvent:
    """Verify a webhook payload against the signing secret and parse it.

    With no signing secret configured, unsigned payloads are accepted only in
    debug mode.
    """
    settings = get_settings()

    if settings.stripe_webhook_secret:
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
        except ValueError as e:
            raise WebhookVerificationError("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError("Invalid signature") from e
    elif settings.debug:
        logger.warning("Stripe webhook secret not configured; skipping verification")
    else:
        raise WebhookVerificationError("Webhook signing secret not configured")

    try:
        body = json.loads(payload)
    except ValueError as e:
        raise WebhookVerificationError("Invalid payload") from e
    return translate_event(body)


def translate_event(body: dict[str, Any]) -> ProcessorEvent:
    """Reduce a Stripe event body to a ``ProcessorEvent``."""
    if not isinstance(body, dict) or "type" not in body:
        raise WebhookVerificationError("Invalid payload")
    data = (body.get("data") or {}).get("object") or {}
    return ProcessorEvent(type=body["type"], id=body.get("id"), data=data)


def get_period_timestamps(stripe_sub: dict[str, Any]) -> tuple[int | None, int | None]:
    """Extract current_period_start/end, handling Stripe API version differences.

    Newer API versions (2024-06-20+) moved these fields to items.data[0].
    """
    start = stripe_sub.get("current_period_start")
    end = stripe_sub.get("current_period_end")
    if start or end:
        return start, end
    try:
        item = stripe_sub["items"]["data"][0]
        return item.get("current_period_start"), item.get("current_period_end")
    except (KeyError, TypeError, IndexError):
        pass
    return None, None
