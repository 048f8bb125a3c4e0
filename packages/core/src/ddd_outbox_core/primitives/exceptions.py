"""Outbox exception hierarchy.

Only :class:`SerializationError` (on enqueue) and
:class:`OperationCancelledError` are meant to reach producers. Everything else
is absorbed by the polling cycle and surfaces through logs and the stored
``error`` / ``retry_count`` / ``quarantined_at`` columns.
"""

from __future__ import annotations


class OutboxError(Exception):
    """Root exception for the whole outbox toolkit."""


class SerializationError(OutboxError):
    """Raised when an event cannot be encoded to, or decoded from, its content.

    Fatal for a single enqueue (nothing is written) or a single dispatch
    attempt (the message stays unprocessed).
    """

    def __init__(self, message: str, *, message_type: str | None = None) -> None:
        self.message_type = message_type
        super().__init__(message)


class UnknownMessageTypeError(SerializationError):
    """Raised when no event class is registered for a type key or class."""

    def __init__(self, message_type: str) -> None:
        super().__init__(
            f"No event type registered for {message_type!r}",
            message_type=message_type,
        )


class EventRegistrationError(OutboxError):
    """Raised when a type key or event class is registered twice."""


class HandlerError(OutboxError):
    """Wraps an exception raised by an event handler for one message."""

    def __init__(self, message_id: str, cause: BaseException) -> None:
        self.message_id = message_id
        self.cause = cause
        super().__init__(
            f"Handler failed for outbox message {message_id}: "
            f"{type(cause).__name__}: {cause}"
        )


class OperationCancelledError(OutboxError):
    """Raised when an outbox operation observes its cancellation signal."""


class InfrastructureError(OutboxError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class TransientStoreError(PersistenceError):
    """Claim or commit conflict. Retried by the next poll cycle."""


class UnitOfWorkError(PersistenceError):
    """Raised when a unit of work is missing or misused."""
