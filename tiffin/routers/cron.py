"""Scheduler-facing routes, authenticated by the shared CRON_SECRET."""

import hmac
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.config import get_settings
from tiffin.db.session import get_db
from tiffin.errors import AuthenticationError
from tiffin.schemas.subscription import SweepResult
from tiffin.services.sweeper import run_sweep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(request: Request) -> None:
    """401 unless the bearer token matches CRON_SECRET. No secret configured means no access."""
    secret = get_settings().cron_secret
    supplied = request.headers.get("Authorization", "")
    if not secret or not hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode()):
        logger.warning("Rejected cron request from %s", request.client.host if request.client else "unknown")
        raise AuthenticationError("Invalid cron secret")


@router.get("/cleanup", response_model=SweepResult, dependencies=[Depends(verify_cron_secret)])
async def cleanup(db: AsyncSession = Depends(get_db)):
    return await run_sweep(db)
