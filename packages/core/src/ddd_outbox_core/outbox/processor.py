"""OutboxProcessor — claims due outbox messages and delivers them in-process."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from ..config import OutboxSettings
from ..correlation import (
    get_causation_id,
    get_correlation_id,
    set_causation_id,
    set_correlation_id,
)
from ..primitives.exceptions import HandlerError, PersistenceError
from ..utils import raise_if_cancelled, utc_now
from .results import DispatchOutcome, MessageResult, ProcessingReport

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable

    from ..domain.event_registry import EventTypeRegistry
    from ..ports.event_publisher import IEventPublisher
    from ..ports.outbox import IOutboxStorage, OutboxMessage
    from ..ports.unit_of_work import UnitOfWork
    from ..utils import Clock

logger = logging.getLogger("ddd_outbox.processor")


class OutboxProcessor:
    """
    Delivers due outbox messages to the in-process handler pipeline.

    Lifecycle per call of :meth:`process_messages`:

    1. **Claim** up to ``batch_size`` due messages, oldest first, under a
       fresh claim token and a lease of ``lease_seconds``. The claim is its
       own short transaction, so a concurrent processor skips these rows.
    2. **Decode** each message through the :class:`EventTypeRegistry`.
    3. **Publish** the event to the :class:`IEventPublisher`.
    4. **Record** the outcome in a separate short transaction per message:
       processed, retry scheduled, or quarantined once ``max_attempts``
       failed attempts are reached.

    A decode or handler failure only affects its own message. Store
    failures (:class:`PersistenceError`, including commit conflicts) are
    logged and left to the next cycle. If the batch is interrupted, claims
    not yet handled are released. A crash between steps 3 and 4 means the
    message is delivered again once the lease expires: delivery is
    at-least-once.
    """

    def __init__(
        self,
        storage: IOutboxStorage,
        registry: EventTypeRegistry,
        publisher: IEventPublisher,
        uow_factory: Callable[[], UnitOfWork],
        *,
        settings: OutboxSettings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.storage = storage
        self.registry = registry
        self.publisher = publisher
        self.settings = settings or OutboxSettings()
        self._uow_factory = uow_factory
        self._clock = clock

    async def process_messages(
        self, cancel_event: asyncio.Event | None = None
    ) -> ProcessingReport:
        """
        Run one dispatch cycle.

        Raises:
            OperationCancelledError: *cancel_event* was set. Messages not yet
                handled are released first; finished ones keep their outcome.
        """
        raise_if_cancelled(cancel_event, "process_messages")
        report = ProcessingReport()
        claim_token = str(uuid4())

        try:
            claimed = await self._claim(claim_token)
        except PersistenceError as exc:
            logger.warning("Could not claim outbox messages, will retry: %s", exc)
            return report

        if not claimed:
            return report

        report.claimed = len(claimed)
        logger.debug("Claimed %d outbox message(s)", len(claimed))
        pending = [msg.message_id for msg in claimed]
        try:
            for msg in claimed:
                raise_if_cancelled(cancel_event, "process_messages")
                result = await self._process_one(msg, claim_token)
                pending.remove(msg.message_id)
                if result is not None:
                    report.results.append(result)
        except BaseException:
            await self._release(pending, claim_token)
            raise

        logger.info(
            "Outbox batch done: %d processed, %d to retry, %d quarantined",
            report.processed,
            report.failed,
            report.quarantined,
        )
        return report

    async def requeue(self, message_id: str) -> bool:
        """Release a quarantined message for another round of attempts."""
        async with self._uow_factory() as uow:
            released = await self.storage.requeue(message_id, self._clock(), uow=uow)
        if released:
            logger.info("Requeued outbox message %s", message_id)
        return released

    # ── Steps ────────────────────────────────────────────────────────

    async def _claim(self, claim_token: str) -> list[OutboxMessage]:
        now = self._clock()
        async with self._uow_factory() as uow:
            return await self.storage.claim_due(
                self.settings.batch_size,
                now,
                claim_token,
                now + self.settings.lease,
                uow=uow,
            )

    async def _process_one(
        self, msg: OutboxMessage, claim_token: str
    ) -> MessageResult | None:
        error = await self._deliver(msg)
        try:
            if error is None:
                return await self._record_success(msg)
            return await self._record_failure(msg, claim_token, error)
        except PersistenceError as exc:
            # Outcome unknown to the store; the lease expiry brings it back.
            logger.warning(
                "Could not record outcome of outbox message %s: %s",
                msg.message_id,
                exc,
            )
            return None

    async def _deliver(self, msg: OutboxMessage) -> str | None:
        """Decode and publish *msg*. Returns the failure text, or ``None``."""
        try:
            event = self.registry.decode(msg.message_type, msg.content)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Cannot decode outbox message %s (%s): %s",
                msg.message_id,
                msg.message_type,
                exc,
            )
            return f"{type(exc).__name__}: {exc}"

        previous = (get_correlation_id(), get_causation_id())
        set_correlation_id(msg.correlation_id)
        set_causation_id(msg.message_id)
        try:
            await self.publisher.publish(event)
        except Exception as exc:  # noqa: BLE001
            failure = HandlerError(msg.message_id, exc)
            logger.warning("%s", failure)
            return str(failure)
        finally:
            set_correlation_id(previous[0])
            set_causation_id(previous[1])
        return None

    async def _record_success(self, msg: OutboxMessage) -> MessageResult:
        async with self._uow_factory() as uow:
            marked = await self.storage.mark_processed(
                msg.message_id, self._clock(), uow=uow
            )
        if not marked:
            logger.warning(
                "Outbox message %s was already processed elsewhere", msg.message_id
            )
            return MessageResult(
                msg.message_id, msg.message_type, DispatchOutcome.CLAIM_LOST
            )
        logger.debug("Processed outbox message %s", msg.message_id)
        return MessageResult(msg.message_id, msg.message_type, DispatchOutcome.PROCESSED)

    async def _record_failure(
        self, msg: OutboxMessage, claim_token: str, error: str
    ) -> MessageResult:
        attempts = msg.retry_count + 1
        now = self._clock()

        if attempts >= self.settings.max_attempts:
            outcome = DispatchOutcome.QUARANTINED
            async with self._uow_factory() as uow:
                recorded = await self.storage.quarantine(
                    msg.message_id, error, now, claim_token, uow=uow
                )
            if recorded:
                logger.error(
                    "Quarantined outbox message %s (%s) after %d attempts: %s",
                    msg.message_id,
                    msg.message_type,
                    attempts,
                    error,
                )
        else:
            outcome = DispatchOutcome.RETRY_SCHEDULED
            retry_at = now + self.settings.retry_delay(attempts)
            async with self._uow_factory() as uow:
                recorded = await self.storage.mark_failed(
                    msg.message_id, error, retry_at, claim_token, uow=uow
                )
            if recorded:
                logger.warning(
                    "Outbox message %s failed (attempt %d/%d), retry at %s",
                    msg.message_id,
                    attempts,
                    self.settings.max_attempts,
                    retry_at,
                )

        if not recorded:
            return MessageResult(
                msg.message_id, msg.message_type, DispatchOutcome.CLAIM_LOST, error
            )
        return MessageResult(msg.message_id, msg.message_type, outcome, error)

    async def _release(self, message_ids: list[str], claim_token: str) -> None:
        if not message_ids:
            return
        try:
            async with self._uow_factory() as uow:
                await self.storage.release_claims(message_ids, claim_token, uow=uow)
        except PersistenceError as exc:
            logger.warning(
                "Could not release %d claim(s), leases will expire: %s",
                len(message_ids),
                exc,
            )
        else:
            logger.info("Released %d unprocessed claim(s)", len(message_ids))
