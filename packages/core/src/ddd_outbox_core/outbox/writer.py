"""OutboxWriter — turns typed events into outbox messages inside a transaction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..correlation import get_correlation_id
from ..domain.event_registry import same_payload
from ..ports.outbox import OutboxMessage
from ..primitives.exceptions import SerializationError, UnitOfWorkError
from ..primitives.id_generator import UUID4Generator
from ..utils import ensure_utc, raise_if_cancelled, utc_now

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable, Sequence
    from datetime import datetime

    from pydantic import BaseModel

    from ..domain.event_registry import EventTypeRegistry
    from ..ports.outbox import IOutboxStorage
    from ..ports.unit_of_work import UnitOfWork
    from ..primitives.id_generator import IIDGenerator
    from ..utils import Clock

logger = logging.getLogger("ddd_outbox.writer")


class OutboxWriter:
    """
    Serialises events into :class:`OutboxMessage` records and saves them
    through the storage **in the caller's unit of work**.

    The writer never commits. The message exists if and only if the
    surrounding transaction commits, together with the state change that
    produced the event.

    Every payload is round-tripped through the registry before it is
    written, so an event the processor could not decode later is rejected
    now with :class:`SerializationError`, and nothing is saved.

    Usage::

        writer = OutboxWriter(storage, registry)

        async with uow:
            order.place()
            await orders.save(order, uow=uow)
            await writer.enqueue(OrderPlaced(order_id=order.id), uow=uow)
    """

    def __init__(
        self,
        storage: IOutboxStorage,
        registry: EventTypeRegistry,
        *,
        id_generator: IIDGenerator | None = None,
        clock: Clock = utc_now,
        on_commit: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.storage = storage
        self.registry = registry
        self._id_generator = id_generator or UUID4Generator()
        self._clock = clock
        self._on_commit = on_commit

    async def enqueue(
        self,
        event: BaseModel,
        scheduled_at: datetime | None = None,
        *,
        uow: UnitOfWork,
        cancel_event: asyncio.Event | None = None,
    ) -> OutboxMessage:
        """
        Write one event to the outbox.

        Args:
            event: Registered pydantic event.
            scheduled_at: Earliest dispatch time. ``None`` or a time in the
                past means "as soon as possible". Must be timezone-aware.
            uow: Unit of work carrying the business transaction.
            cancel_event: Set to abandon the enqueue before anything is saved.

        Raises:
            SerializationError: The event cannot be encoded and decoded back.
            OperationCancelledError: *cancel_event* was set.
        """
        messages = await self.enqueue_many(
            [event], scheduled_at, uow=uow, cancel_event=cancel_event
        )
        return messages[0]

    async def enqueue_many(
        self,
        events: Sequence[BaseModel],
        scheduled_at: datetime | None = None,
        *,
        uow: UnitOfWork,
        cancel_event: asyncio.Event | None = None,
    ) -> list[OutboxMessage]:
        """Write several events in one go; all are encoded before any is saved."""
        if uow is None:
            raise UnitOfWorkError(
                "Outbox messages can only be written inside a unit of work"
            )
        raise_if_cancelled(cancel_event, "enqueue")

        now = self._clock()
        due_at = self._resolve_schedule(scheduled_at, now)
        correlation_id = get_correlation_id()

        messages = [
            self._build(event, now, due_at, correlation_id) for event in events
        ]
        if not messages:
            return []

        raise_if_cancelled(cancel_event, "enqueue")
        await self.storage.save_messages(messages, uow=uow)
        if self._on_commit is not None:
            uow.on_commit(self._on_commit)

        for msg in messages:
            logger.debug(
                "Enqueued outbox message %s (%s) due at %s",
                msg.message_id,
                msg.message_type,
                msg.scheduled_at,
            )
        return messages

    def _build(
        self,
        event: BaseModel,
        now: datetime,
        scheduled_at: datetime,
        correlation_id: str | None,
    ) -> OutboxMessage:
        message_type, content = self.registry.encode(event)
        decoded = self.registry.decode(message_type, content)
        if not same_payload(event, decoded):
            raise SerializationError(
                f"{type(event).__name__} does not survive a JSON round trip",
                message_type=message_type,
            )
        return OutboxMessage(
            message_id=self._id_generator.next_id(),
            message_type=message_type,
            content=content,
            created_at=now,
            scheduled_at=scheduled_at,
            correlation_id=correlation_id,
        )

    @staticmethod
    def _resolve_schedule(scheduled_at: datetime | None, now: datetime) -> datetime:
        if scheduled_at is None:
            return now
        if scheduled_at.tzinfo is None:
            raise ValueError("scheduled_at must be timezone-aware")
        return max(ensure_utc(scheduled_at), now)
