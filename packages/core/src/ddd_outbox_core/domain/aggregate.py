"""Aggregate Root base class with an explicitly drained event list."""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar, cast
from uuid import UUID

from pydantic import BaseModel, ConfigDict, PrivateAttr

if TYPE_CHECKING:
    from .events import DomainEvent

ID = TypeVar("ID", str, int, UUID)


class AggregateRoot(BaseModel, Generic[ID]):
    """Base class for all Aggregate Roots.

    Business methods record facts with :meth:`add_event`. The pending list is
    only read and cleared through explicit calls (``pending_events`` /
    ``clear_events``) made by the outbox adapter inside the unit of work.

    Usage::

        class Order(AggregateRoot[str]):
            status: str = "placed"

            def cancel(self, reason: str) -> None:
                self.status = "cancelled"
                self.add_event(OrderCancelled(aggregate_id=self.id, reason=reason))
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: ID
    _domain_events: list[DomainEvent] = PrivateAttr(
        default_factory=lambda: cast("list[DomainEvent]", [])
    )

    def add_event(self, event: DomainEvent) -> None:
        """Record a domain event to be written to the outbox."""
        self._domain_events.append(event)

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        """Events recorded since the last drain, oldest first."""
        return tuple(self._domain_events)

    def clear_events(self) -> None:
        """Forget all pending events (called once they are enqueued)."""
        self._domain_events.clear()
