"""Shared utility functions for learngate."""

import logging
from datetime import datetime, UTC

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to a naive datetime, convert an aware one to UTC.

    Args:
        value: Datetime read from the database or a request payload.

    Returns:
        Timezone-aware UTC datetime, or None.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


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
