"""OutboxCleaner — retention for processed outbox messages."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from ..utils import raise_if_cancelled, utc_now

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable

    from ..ports.outbox import IOutboxStorage
    from ..ports.unit_of_work import UnitOfWork
    from ..utils import Clock

logger = logging.getLogger("ddd_outbox.cleaner")


class OutboxCleaner:
    """Deletes processed messages older than a retention window.

    Unprocessed and quarantined messages are never touched, however old.
    """

    def __init__(
        self,
        storage: IOutboxStorage,
        uow_factory: Callable[[], UnitOfWork],
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.storage = storage
        self._uow_factory = uow_factory
        self._clock = clock

    async def cleanup_old_messages(
        self,
        days_to_keep: int = 7,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Delete messages processed at or before ``now - days_to_keep``.

        Returns the number of deleted messages. ``days_to_keep=0`` removes
        everything processed up to now.
        """
        if days_to_keep < 0:
            raise ValueError("days_to_keep must be >= 0")
        raise_if_cancelled(cancel_event, "cleanup_old_messages")

        cutoff = self._clock() - timedelta(days=days_to_keep)
        async with self._uow_factory() as uow:
            deleted = await self.storage.delete_processed_before(cutoff, uow=uow)

        if deleted:
            logger.info(
                "Deleted %d processed outbox message(s) older than %s",
                deleted,
                cutoff,
            )
        return deleted
