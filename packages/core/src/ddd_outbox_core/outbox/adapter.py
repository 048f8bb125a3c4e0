"""DomainEventOutboxAdapter — drains aggregate events into the outbox."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..ports.event_publisher import IEventSource
    from ..ports.outbox import OutboxMessage
    from ..ports.unit_of_work import UnitOfWork
    from .writer import OutboxWriter

logger = logging.getLogger("ddd_outbox.adapter")


class DomainEventOutboxAdapter:
    """
    Bridges aggregates and the :class:`OutboxWriter`.

    For each aggregate it writes every pending event exactly once, then
    tells the aggregate to clear its list. It joins the caller's unit of
    work and never commits or rolls back itself: if an event fails to
    serialise the error propagates and the whole unit of work aborts, so
    neither the state change nor any of its events are stored.

    Usage::

        adapter = DomainEventOutboxAdapter(writer)

        async with uow:
            order.cancel(reason="customer request")
            await orders.save(order, uow=uow)
            adapter.attach(uow, order)   # drained right before commit
    """

    def __init__(self, writer: OutboxWriter) -> None:
        self._writer = writer

    async def save_events(
        self, source: IEventSource, uow: UnitOfWork
    ) -> list[OutboxMessage]:
        """Write *source*'s pending events and clear them. No events → no-op."""
        events = list(source.pending_events)
        if not events:
            return []

        messages = await self._writer.enqueue_many(events, uow=uow)
        source.clear_events()
        logger.debug(
            "Drained %d event(s) from %s into the outbox",
            len(messages),
            type(source).__name__,
        )
        return messages

    async def save_all(
        self, sources: list[IEventSource], uow: UnitOfWork
    ) -> list[OutboxMessage]:
        """Drain several aggregates, in order, into the same unit of work."""
        written: list[OutboxMessage] = []
        for source in sources:
            written.extend(await self.save_events(source, uow))
        return written

    def attach(self, uow: UnitOfWork, *sources: IEventSource) -> None:
        """Drain *sources* automatically right before *uow* commits."""

        async def _drain() -> None:
            await self.save_all(list(sources), uow)

        uow.before_commit(_drain)
