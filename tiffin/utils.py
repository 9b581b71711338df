"""Shared utility functions."""

import logging
from datetime import datetime, timedelta, UTC

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def from_unix(timestamp: int | float | None) -> datetime | None:
    """Convert a processor unix timestamp to an aware UTC datetime."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=UTC)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
