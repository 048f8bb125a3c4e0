"""Tracing ids that travel from the producer, through the outbox, to handlers.

The writer stores the current correlation id on each message. The processor
restores it, and sets the causation id to the message id, for the duration
of the handler call.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar(
    "outbox_correlation_id", default=None
)
_causation_id: ContextVar[str | None] = ContextVar("outbox_causation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def get_causation_id() -> str | None:
    """Id of the outbox message being dispatched, if any."""
    return _causation_id.get()


def set_causation_id(causation_id: str | None) -> None:
    _causation_id.set(causation_id)


def generate_correlation_id() -> str:
    """Fresh id for a request that arrived without one."""
    return str(uuid.uuid4())
