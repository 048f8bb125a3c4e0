"""UnitOfWork — transaction boundary shared by aggregates and the outbox."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Hook = Callable[[], Awaitable[Any]]

logger = logging.getLogger("ddd_outbox.uow")


class UnitOfWork(ABC):
    """
    One business transaction, used as ``async with uow: ...``.

    Leaving the block normally commits, leaving it with an exception rolls
    back. Concrete stores subclass this and implement :meth:`commit` and
    :meth:`rollback`; the hook handling below comes for free.

    Two hook queues frame the commit:

    * ``before_commit`` hooks still run inside the transaction. The outbox
      adapter registers one to drain aggregate events, so the messages are
      part of the commit. A failing hook rolls the transaction back and the
      error reaches the caller.
    * ``on_commit`` hooks run once the commit succeeded, typically to wake
      the outbox worker. A failing hook is logged; the commit stands.

    Neither queue survives a rollback.
    """

    def __init__(self) -> None:
        self._before_commit_hooks: deque[Hook] = deque()
        self._on_commit_hooks: deque[Hook] = deque()

    def before_commit(self, callback: Hook) -> None:
        """Queue *callback* to run inside the transaction, just before commit."""
        self._before_commit_hooks.append(callback)

    def on_commit(self, callback: Hook) -> None:
        """Queue *callback* to run after a successful commit."""
        self._on_commit_hooks.append(callback)

    async def trigger_before_commit_hooks(self) -> None:
        # Hooks may queue further hooks; drain until empty.
        while self._before_commit_hooks:
            await self._before_commit_hooks.popleft()()

    async def trigger_commit_hooks(self) -> None:
        while self._on_commit_hooks:
            callback = self._on_commit_hooks.popleft()
            try:
                await callback()
            except Exception as exc:
                logger.error("Error in on_commit hook: %s", exc, exc_info=True)

    def _discard_hooks(self) -> None:
        self._before_commit_hooks.clear()
        self._on_commit_hooks.clear()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
            self._discard_hooks()
            return

        try:
            await self.trigger_before_commit_hooks()
        except BaseException:
            await self.rollback()
            self._discard_hooks()
            raise
        await self.commit()
        await self.trigger_commit_hooks()
