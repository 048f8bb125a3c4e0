"""OutboxWorker — reactive background loop driving dispatch and cleanup."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from ..ports.background_worker import IBackgroundWorker
from ..primitives.exceptions import OperationCancelledError
from .results import ProcessingReport

if TYPE_CHECKING:
    from ..config import OutboxSettings
    from .cleaner import OutboxCleaner
    from .processor import OutboxProcessor

logger = logging.getLogger("ddd_outbox.worker")


class OutboxWorker(IBackgroundWorker):
    """Runs :meth:`OutboxProcessor.process_messages` on a schedule.

    Uses trigger + polling fallback. Call :meth:`trigger` to wake the
    dispatch loop immediately (e.g. from ``uow.on_commit`` after an
    enqueue); otherwise it runs every ``poll_interval`` seconds. When a
    cleaner is given, a second loop prunes processed messages every
    ``cleanup_interval`` seconds.

    Errors inside a cycle are logged and the loop carries on. :meth:`stop`
    sets the shared cancel event, so an in-flight batch releases its
    remaining claims before the task ends.
    """

    def __init__(
        self,
        processor: OutboxProcessor,
        cleaner: OutboxCleaner | None = None,
        settings: OutboxSettings | None = None,
    ) -> None:
        self._processor = processor
        self._cleaner = cleaner
        self._settings = settings or processor.settings
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._trigger = asyncio.Event()
        self._cancel = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    def trigger(self) -> None:
        """Wake the dispatch loop immediately."""
        self._trigger.set()

    async def wake(self) -> None:
        """Async form of :meth:`trigger`, usable as an ``on_commit`` hook."""
        self.trigger()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._cancel.clear()
        self._tasks = [asyncio.create_task(self._dispatch_loop())]
        if self._cleaner is not None:
            self._tasks.append(asyncio.create_task(self._cleanup_loop()))
        logger.info(
            "OutboxWorker started (poll_interval=%.1fs, batch_size=%d)",
            self._settings.poll_interval,
            self._settings.batch_size,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._cancel.set()
        self._trigger.set()
        for task in self._tasks:
            with contextlib.suppress(
                asyncio.CancelledError, asyncio.TimeoutError, OperationCancelledError
            ):
                await asyncio.wait_for(task, timeout=5.0)
        self._tasks = []
        logger.info("OutboxWorker stopped")

    async def run_once(self) -> ProcessingReport:
        """Execute a single dispatch cycle (useful in tests)."""
        return await self._processor.process_messages(self._cancel)

    async def _dispatch_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except OperationCancelledError:
                break
            except Exception:
                logger.exception("OutboxWorker dispatch error")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._trigger.wait(), timeout=self._settings.poll_interval
                )
            self._trigger.clear()

    async def _cleanup_loop(self) -> None:
        assert self._cleaner is not None
        while self._running:
            try:
                await self._cleaner.cleanup_old_messages(
                    self._settings.days_to_keep, cancel_event=self._cancel
                )
            except OperationCancelledError:
                break
            except Exception:
                logger.exception("OutboxWorker cleanup error")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._cancel.wait(), timeout=self._settings.cleanup_interval
                )
