"""Fire-and-forget notifications to cooks via Resend email.

Billing code calls ``dispatch`` and moves on; delivery runs as a background
task and every failure is logged, never raised.
"""

import asyncio
import logging
from dataclasses import dataclass

import resend

from tiffin.config import get_settings

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage-collected mid-flight
_background_tasks: set[asyncio.Task] = set()


@dataclass(frozen=True)
class Notification:
    type: str
    recipient_id: int
    recipient_email: str | None
    title: str
    body: str


async def send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send an email via Resend.

    Returns True on success, False on failure.
    """
    settings = get_settings()
    if not settings.resend_api_key:
        logger.warning("Resend API key not configured, skipping email")
        return False

    try:
        resend.api_key = settings.resend_api_key
        await asyncio.to_thread(
            resend.Emails.send,
            {
                "from": settings.email_from,
                "to": [to_email],
                "subject": subject,
                "html": html_body,
            },
        )
        logger.info("Notification email sent to %s", to_email)
        return True
    except Exception as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return False


async def _deliver(notification: Notification) -> None:
    logger.info(
        "[Notification] %s -> user %s: %s",
        notification.type, notification.recipient_id, notification.title,
    )
    if notification.recipient_email:
        await send_email(
            notification.recipient_email,
            notification.title,
            f"<p>{notification.body}</p>",
        )


def dispatch(notification: Notification) -> None:
    """Schedule delivery without waiting for it."""
    try:
        task = asyncio.get_running_loop().create_task(_deliver(notification))
    except RuntimeError:
        logger.warning("No running event loop; dropping %s notification", notification.type)
        return
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def notify_payment_received(user_id: int, email: str | None, kitchen_name: str, plan_label: str) -> None:
    dispatch(
        Notification(
            type="PAYMENT_RECEIVED",
            recipient_id=user_id,
            recipient_email=email,
            title="Payment received: your kitchen is live",
            body=(
                f"Thanks! Your {plan_label} subscription for {kitchen_name} is active "
                "and you can keep taking orders."
            ),
        )
    )
