"""IOutboxStorage — transactional outbox protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import uuid4

if TYPE_CHECKING:
    from ..ports.unit_of_work import UnitOfWork


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OutboxMessage:
    """A message waiting in the transactional outbox.

    ``processed_at`` is write-once: ``None`` means the message still has to
    be delivered. A message is due when it is unprocessed, not quarantined,
    and ``scheduled_at`` has passed.
    """

    message_id: str = field(default_factory=lambda: str(uuid4()))
    message_type: str = ""
    content: str = "{}"
    created_at: datetime = field(default_factory=_utc_now)
    scheduled_at: datetime | None = None
    processed_at: datetime | None = None
    error: str | None = None
    retry_count: int = 0
    claim_token: str | None = None
    claimed_until: datetime | None = None
    quarantined_at: datetime | None = None
    correlation_id: str | None = field(
        default=None, metadata={"description": "Traces entire request chain"}
    )

    def __post_init__(self) -> None:
        if self.scheduled_at is None:
            self.scheduled_at = self.created_at

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    @property
    def is_quarantined(self) -> bool:
        return self.quarantined_at is not None

    def is_due(self, now: datetime) -> bool:
        """Unprocessed, not quarantined, and scheduled at or before *now*."""
        return (
            self.processed_at is None
            and self.quarantined_at is None
            and self.scheduled_at is not None
            and self.scheduled_at <= now
        )

    def is_claimable(self, now: datetime) -> bool:
        """Due and not held by a live lease."""
        if not self.is_due(now):
            return False
        return (
            self.claim_token is None
            or self.claimed_until is None
            or self.claimed_until <= now
        )


@runtime_checkable
class IOutboxStorage(Protocol):
    """Protocol for the transactional outbox pattern.

    Every mutation takes the unit of work it runs in. Writers pass the
    business transaction; the processor opens one short unit of work per
    claim and per status update.
    """

    async def save_messages(
        self, messages: list[OutboxMessage], uow: UnitOfWork | None = None
    ) -> None:
        """
        Persist outbox messages in the same transaction as aggregate.

        Args:
            messages: Messages to save to outbox
            uow: UnitOfWork carrying the business transaction.
        """
        ...

    async def get_by_id(
        self, message_id: str, uow: UnitOfWork | None = None
    ) -> OutboxMessage | None:
        """Return one message, or ``None`` if it does not exist."""
        ...

    async def get_due(
        self, limit: int, now: datetime, uow: UnitOfWork | None = None
    ) -> list[OutboxMessage]:
        """Retrieve due messages, oldest ``created_at`` first, without claiming."""
        ...

    async def claim_due(
        self,
        limit: int,
        now: datetime,
        claim_token: str,
        lease_until: datetime,
        uow: UnitOfWork | None = None,
    ) -> list[OutboxMessage]:
        """
        Claim up to *limit* due messages for one processor run.

        A message is claimed only if it carries no claim or its lease has
        expired; rows taken by a concurrent processor are skipped.
        """
        ...

    async def release_claims(
        self,
        message_ids: list[str],
        claim_token: str,
        uow: UnitOfWork | None = None,
    ) -> None:
        """Drop the lease on messages still held with *claim_token*."""
        ...

    async def mark_processed(
        self,
        message_id: str,
        processed_at: datetime,
        uow: UnitOfWork | None = None,
    ) -> bool:
        """
        Set ``processed_at`` if it is still unset.

        Returns ``False`` when the message is gone or was already processed.
        """
        ...

    async def mark_failed(
        self,
        message_id: str,
        error: str,
        retry_at: datetime,
        claim_token: str,
        uow: UnitOfWork | None = None,
    ) -> bool:
        """
        Record a dispatch failure for retry logic.

        Increments ``retry_count``, stores *error*, moves ``scheduled_at`` to
        *retry_at* and drops the claim. Only applies while *claim_token* still
        holds the message.
        """
        ...

    async def quarantine(
        self,
        message_id: str,
        error: str,
        quarantined_at: datetime,
        claim_token: str,
        uow: UnitOfWork | None = None,
    ) -> bool:
        """Park a poison message so it no longer takes part in dispatch."""
        ...

    async def requeue(
        self,
        message_id: str,
        scheduled_at: datetime,
        uow: UnitOfWork | None = None,
    ) -> bool:
        """Give an unprocessed (typically quarantined) message a fresh start."""
        ...

    async def delete_processed_before(
        self, cutoff: datetime, uow: UnitOfWork | None = None
    ) -> int:
        """Delete processed messages with ``processed_at <= cutoff``."""
        ...

    async def list_messages(
        self,
        *,
        processed: bool | None = None,
        message_type: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        failed_only: bool = False,
        quarantined_only: bool = False,
        limit: int | None = None,
        uow: UnitOfWork | None = None,
    ) -> list[OutboxMessage]:
        """Operational query, newest ``created_at`` first."""
        ...

    async def count(
        self, *, processed: bool | None = None, uow: UnitOfWork | None = None
    ) -> int:
        """Count all messages, or only processed / unprocessed ones."""
        ...
