"""Ports between the outbox and its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic import BaseModel


@runtime_checkable
class IEventPublisher(Protocol):
    """
    Port for the in-process handler pipeline the processor publishes to.

    ``publish`` must raise if any handler failed; the outbox then keeps the
    message unprocessed and retries it. Handlers see each event at least
    once, so they must be idempotent.
    """

    async def publish(self, event: BaseModel) -> None:
        """Deliver *event* to every handler registered for its type."""
        ...


@runtime_checkable
class IEventSource(Protocol):
    """
    What an aggregate exposes to the outbox adapter: a drainable list of
    pending events, and nothing more.
    """

    @property
    def pending_events(self) -> Sequence[BaseModel]: ...

    def clear_events(self) -> None: ...
