"""EventDispatcher — in-process handler pipeline fed by the outbox processor."""

from __future__ import annotations

import asyncio
import logging
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, cast

from pydantic import BaseModel

from ..ports.event_publisher import IEventPublisher

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("ddd_outbox.dispatcher")

E = TypeVar("E", bound=BaseModel)
E_contra = TypeVar("E_contra", bound=BaseModel, contravariant=True)


class EventHandler(Protocol[E_contra]):
    """Object-style handler: anything with an (async) ``handle(event)``."""

    def handle(self, event: E_contra) -> Awaitable[None] | None: ...


class EventDispatcher(IEventPublisher):
    """Local execution engine for events delivered by the outbox.

    Handlers are registered per event class at startup and looked up by
    ``type(event)``. All handlers of one event run concurrently, bounded by
    a semaphore. If any of them raises, :meth:`publish` raises, so the
    outbox keeps the message and redelivers it to *every* handler later;
    handlers must therefore be idempotent.
    """

    def __init__(self, max_concurrency: int = 10) -> None:
        self._handlers: dict[type[BaseModel], list[Any]] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)

    # ── Registration ─────────────────────────────────────────────

    def register(
        self,
        event_type: type[E],
        handler: EventHandler[E] | Callable[[E], Awaitable[None] | None],
    ) -> None:
        """Register a handler for a specific event type."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    # ── Dispatching ──────────────────────────────────────────────

    async def publish(self, event: BaseModel) -> None:
        """Run every handler registered for ``type(event)``."""
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug("No handlers registered for %s", type(event).__name__)
            return
        await asyncio.gather(*(self._invoke(h, event) for h in handlers))

    async def _invoke(self, handler: Any, event: BaseModel) -> None:
        """Invoke a single handler within the concurrency limit."""
        async with self._semaphore:
            try:
                if hasattr(handler, "handle"):
                    result = handler.handle(event)
                elif callable(handler):
                    result = cast("Callable[[BaseModel], Any]", handler)(event)
                else:
                    raise TypeError(
                        "Handler must be a callable or have a handle() method"
                    )

                if isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Error executing handler %s for event %s",
                    getattr(handler, "__name__", type(handler).__name__),
                    type(event).__name__,
                )
                raise

    # ── Introspection ────────────────────────────────────────────

    def get_registered_handlers(self) -> dict[type[BaseModel], list[Any]]:
        """Return all registered handlers (debugging utility)."""
        return {k: list(v) for k, v in self._handlers.items()}

    def clear(self) -> None:
        """Remove all handler registrations (testing utility)."""
        self._handlers.clear()
