"""InMemoryOutboxStorage — dict-backed fake for unit tests."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ...ports.outbox import IOutboxStorage, OutboxMessage
from .unit_of_work import InMemoryUnitOfWork

if TYPE_CHECKING:
    from datetime import datetime


class InMemoryOutboxStorage(IOutboxStorage):
    """In-memory implementation of ``IOutboxStorage``.

    Inserts made through an :class:`InMemoryUnitOfWork` are staged and only
    become visible on commit. Status updates apply immediately: each one is
    already its own tiny transaction. Callers always get copies, never the
    stored objects.
    """

    def __init__(self) -> None:
        self._messages: dict[str, OutboxMessage] = {}

    async def save_messages(
        self,
        messages: list[OutboxMessage],
        uow: Any | None = None,
    ) -> None:
        copies = [replace(m) for m in messages]

        def _apply() -> None:
            for msg in copies:
                if msg.message_id in self._messages:
                    raise ValueError(f"Duplicate outbox message id {msg.message_id}")
            for msg in copies:
                self._messages[msg.message_id] = msg

        if isinstance(uow, InMemoryUnitOfWork):
            uow.stage(_apply)
        else:
            _apply()

    async def get_by_id(
        self,
        message_id: str,
        uow: Any | None = None,  # noqa: ARG002
    ) -> OutboxMessage | None:
        msg = self._messages.get(message_id)
        return replace(msg) if msg is not None else None

    async def get_due(
        self,
        limit: int,
        now: datetime,
        uow: Any | None = None,  # noqa: ARG002
    ) -> list[OutboxMessage]:
        due = [m for m in self._messages.values() if m.is_due(now)]
        due.sort(key=lambda m: (m.created_at, m.message_id))
        return [replace(m) for m in due[: max(limit, 0)]]

    async def claim_due(
        self,
        limit: int,
        now: datetime,
        claim_token: str,
        lease_until: datetime,
        uow: Any | None = None,  # noqa: ARG002
    ) -> list[OutboxMessage]:
        claimable = [m for m in self._messages.values() if m.is_claimable(now)]
        claimable.sort(key=lambda m: (m.created_at, m.message_id))
        claimed: list[OutboxMessage] = []
        for msg in claimable[: max(limit, 0)]:
            msg.claim_token = claim_token
            msg.claimed_until = lease_until
            claimed.append(replace(msg))
        return claimed

    async def release_claims(
        self,
        message_ids: list[str],
        claim_token: str,
        uow: Any | None = None,  # noqa: ARG002
    ) -> None:
        for message_id in message_ids:
            msg = self._messages.get(message_id)
            if msg is not None and msg.claim_token == claim_token:
                msg.claim_token = None
                msg.claimed_until = None

    async def mark_processed(
        self,
        message_id: str,
        processed_at: datetime,
        uow: Any | None = None,  # noqa: ARG002
    ) -> bool:
        msg = self._messages.get(message_id)
        if msg is None or msg.processed_at is not None:
            return False
        msg.processed_at = processed_at
        msg.claim_token = None
        msg.claimed_until = None
        return True

    async def mark_failed(
        self,
        message_id: str,
        error: str,
        retry_at: datetime,
        claim_token: str,
        uow: Any | None = None,  # noqa: ARG002
    ) -> bool:
        msg = self._held(message_id, claim_token)
        if msg is None:
            return False
        msg.error = error
        msg.retry_count += 1
        msg.scheduled_at = retry_at
        msg.claim_token = None
        msg.claimed_until = None
        return True

    async def quarantine(
        self,
        message_id: str,
        error: str,
        quarantined_at: datetime,
        claim_token: str,
        uow: Any | None = None,  # noqa: ARG002
    ) -> bool:
        msg = self._held(message_id, claim_token)
        if msg is None:
            return False
        msg.error = error
        msg.retry_count += 1
        msg.quarantined_at = quarantined_at
        msg.claim_token = None
        msg.claimed_until = None
        return True

    async def requeue(
        self,
        message_id: str,
        scheduled_at: datetime,
        uow: Any | None = None,  # noqa: ARG002
    ) -> bool:
        msg = self._messages.get(message_id)
        if msg is None or msg.processed_at is not None:
            return False
        msg.quarantined_at = None
        msg.retry_count = 0
        msg.scheduled_at = scheduled_at
        msg.claim_token = None
        msg.claimed_until = None
        return True

    async def delete_processed_before(
        self,
        cutoff: datetime,
        uow: Any | None = None,  # noqa: ARG002
    ) -> int:
        doomed = [
            message_id
            for message_id, msg in self._messages.items()
            if msg.processed_at is not None and msg.processed_at <= cutoff
        ]
        for message_id in doomed:
            del self._messages[message_id]
        return len(doomed)

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
        uow: Any | None = None,  # noqa: ARG002
    ) -> list[OutboxMessage]:
        result = [
            m
            for m in self._messages.values()
            if (processed is None or m.is_processed == processed)
            and (message_type is None or m.message_type == message_type)
            and (created_from is None or m.created_at >= created_from)
            and (created_to is None or m.created_at <= created_to)
            and (not failed_only or m.error is not None)
            and (not quarantined_only or m.is_quarantined)
        ]
        result.sort(key=lambda m: (m.created_at, m.message_id), reverse=True)
        if limit is not None:
            result = result[:limit]
        return [replace(m) for m in result]

    async def count(
        self,
        *,
        processed: bool | None = None,
        uow: Any | None = None,  # noqa: ARG002
    ) -> int:
        if processed is None:
            return len(self._messages)
        return sum(1 for m in self._messages.values() if m.is_processed == processed)

    def _held(self, message_id: str, claim_token: str) -> OutboxMessage | None:
        msg = self._messages.get(message_id)
        if msg is None or msg.processed_at is not None:
            return None
        if msg.claim_token != claim_token:
            return None
        return msg

    # ── Test helpers ─────────────────────────────────────────────

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)
