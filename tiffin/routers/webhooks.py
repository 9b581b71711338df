"""Webhook routes: Stripe."""

import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.db.session import get_db
from tiffin.services.payment_processor import WebhookVerificationError, construct_event
from tiffin.services.webhook_service import handle_processor_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
):
    payload = await request.body()

    try:
        event = construct_event(payload, stripe_signature)
    except WebhookVerificationError as e:
        logger.warning("Stripe webhook rejected: %s", e)
        return JSONResponse(status_code=400, content={"error": str(e)})

    try:
        await handle_processor_event(db, event)
    except Exception:
        # Left unprocessed; Stripe redelivers and the handlers are idempotent
        logger.exception("Stripe webhook %s (%s) failed", event.type, event.id)
        await db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return {"received": True}
