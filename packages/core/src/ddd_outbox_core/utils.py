"""Common utility functions and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

from .primitives.exceptions import OperationCancelledError

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to UTC.

    Naive values are taken to already be UTC; databases such as SQLite
    drop the offset on the way back.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def raise_if_cancelled(cancel_event: asyncio.Event | None, operation: str) -> None:
    """Raise :class:`OperationCancelledError` when *cancel_event* is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"{operation} cancelled")
