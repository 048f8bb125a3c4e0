"""
SQLAlchemy implementation of the transactional outbox storage.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ddd_outbox_core.ports.outbox import IOutboxStorage, OutboxMessage
from ddd_outbox_core.primitives.exceptions import TransientStoreError

from ..exceptions import SQLAlchemyPersistenceError, UnitOfWorkError
from .models import OutboxMessageModel

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from ddd_outbox_core.ports.unit_of_work import UnitOfWork

    from .uow import SQLAlchemyUnitOfWork

M = OutboxMessageModel


@contextlib.contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Map driver errors to the outbox hierarchy.

    Lock timeouts, serialization failures and lost connections are transient.
    """
    try:
        yield
    except OperationalError as e:
        raise TransientStoreError(f"Outbox {operation} failed: {e}") from e
    except SQLAlchemyError as e:
        raise SQLAlchemyPersistenceError(f"Outbox {operation} failed: {e}") from e


def _due(now: datetime) -> Any:
    return and_(
        M.processed_at.is_(None),
        M.quarantined_at.is_(None),
        M.scheduled_at <= now,
    )


def _claimable(now: datetime) -> Any:
    return and_(
        _due(now),
        or_(
            M.claim_token.is_(None),
            M.claimed_until.is_(None),
            M.claimed_until <= now,
        ),
    )


class SQLAlchemyOutboxStorage(IOutboxStorage):
    """
    Transactional outbox storage implementation using SQLAlchemy.

    Every call runs on the session of the :class:`SQLAlchemyUnitOfWork` it
    is given; the storage never commits. Writers pass the business unit of
    work, so the message rows commit or roll back together with the state
    change.

    Claims and status changes are single conditional ``UPDATE`` statements
    whose ``WHERE`` clause repeats the precondition (still unprocessed,
    lease free or expired, claim token still ours). The affected row count
    tells whether this caller won. On PostgreSQL the candidate ``SELECT`` also
    uses ``FOR UPDATE SKIP LOCKED``; dialects without row locks ignore it.
    """

    def __init__(self, *, skip_locked: bool = True) -> None:
        self._skip_locked = skip_locked

    @staticmethod
    def _session(uow: UnitOfWork | None) -> AsyncSession:
        if uow is None:
            raise UnitOfWorkError("SQLAlchemyOutboxStorage needs a unit of work")
        return cast("SQLAlchemyUnitOfWork", uow).session

    # -- writes from the business transaction ------------------------------

    async def save_messages(
        self,
        messages: list[OutboxMessage],
        uow: UnitOfWork | None = None,
    ) -> None:
        """
        Persist outbox messages in the same transaction as the aggregate changes.
        """
        session = self._session(uow)
        session.add_all([self.to_model(msg) for msg in messages])

    # -- reads --------------------------------------------------------------

    async def get_by_id(
        self, message_id: str, uow: UnitOfWork | None = None
    ) -> OutboxMessage | None:
        session = self._session(uow)
        with _store_errors("get_by_id"):
            result = await session.execute(
                select(M)
                .where(M.message_id == message_id)
                .execution_options(populate_existing=True)
            )
        model = result.scalar_one_or_none()
        return self.from_model(model) if model is not None else None

    async def get_due(
        self, limit: int, now: datetime, uow: UnitOfWork | None = None
    ) -> list[OutboxMessage]:
        """
        Retrieve due messages, ordered by creation time.
        """
        session = self._session(uow)
        stmt = (
            select(M)
            .where(_due(now))
            .order_by(M.created_at, M.message_id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        with _store_errors("get_due"):
            result = await session.execute(stmt)
        return [self.from_model(m) for m in result.scalars().all()]

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
        session = self._session(uow)
        stmt = select(M).where(*self._filters(processed)).order_by(
            M.created_at.desc(), M.message_id.desc()
        )
        if message_type is not None:
            stmt = stmt.where(M.message_type == message_type)
        if created_from is not None:
            stmt = stmt.where(M.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(M.created_at <= created_to)
        if failed_only:
            stmt = stmt.where(M.error.is_not(None))
        if quarantined_only:
            stmt = stmt.where(M.quarantined_at.is_not(None))
        if limit is not None:
            stmt = stmt.limit(limit)

        with _store_errors("list_messages"):
            result = await session.execute(
                stmt.execution_options(populate_existing=True)
            )
        return [self.from_model(m) for m in result.scalars().all()]

    async def count(
        self, *, processed: bool | None = None, uow: UnitOfWork | None = None
    ) -> int:
        session = self._session(uow)
        stmt = select(func.count()).select_from(M).where(*self._filters(processed))
        with _store_errors("count"):
            result = await session.execute(stmt)
        return int(result.scalar_one())

    # -- processor side -----------------------------------------------------

    async def claim_due(
        self,
        limit: int,
        now: datetime,
        claim_token: str,
        lease_until: datetime,
        uow: UnitOfWork | None = None,
    ) -> list[OutboxMessage]:
        session = self._session(uow)
        candidates = (
            select(M.message_id)
            .where(_claimable(now))
            .order_by(M.created_at, M.message_id)
            .limit(limit)
        )
        if self._skip_locked:
            candidates = candidates.with_for_update(skip_locked=True)

        with _store_errors("claim_due"):
            ids = list((await session.execute(candidates)).scalars().all())
            won: list[str] = []
            for message_id in ids:
                result = await session.execute(
                    update(M)
                    .where(M.message_id == message_id, _claimable(now))
                    .values(claim_token=claim_token, claimed_until=lease_until)
                    .execution_options(synchronize_session=False)
                )
                if _rowcount(result) == 1:
                    won.append(message_id)

            if not won:
                return []
            rows = await session.execute(
                select(M)
                .where(M.message_id.in_(won))
                .order_by(M.created_at, M.message_id)
                .execution_options(populate_existing=True)
            )
        return [self.from_model(m) for m in rows.scalars().all()]

    async def release_claims(
        self,
        message_ids: list[str],
        claim_token: str,
        uow: UnitOfWork | None = None,
    ) -> None:
        if not message_ids:
            return
        session = self._session(uow)
        stmt = (
            update(M)
            .where(M.message_id.in_(message_ids), M.claim_token == claim_token)
            .values(claim_token=None, claimed_until=None)
            .execution_options(synchronize_session=False)
        )
        with _store_errors("release_claims"):
            await session.execute(stmt)

    async def mark_processed(
        self,
        message_id: str,
        processed_at: datetime,
        uow: UnitOfWork | None = None,
    ) -> bool:
        """
        Mark a message as successfully processed. ``processed_at`` is write-once.
        """
        stmt = (
            update(M)
            .where(M.message_id == message_id, M.processed_at.is_(None))
            .values(processed_at=processed_at, claim_token=None, claimed_until=None)
        )
        return await self._apply("mark_processed", stmt, uow)

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
        """
        stmt = (
            update(M)
            .where(*self._held(message_id, claim_token))
            .values(
                error=error,
                retry_count=M.retry_count + 1,
                scheduled_at=retry_at,
                claim_token=None,
                claimed_until=None,
            )
        )
        return await self._apply("mark_failed", stmt, uow)

    async def quarantine(
        self,
        message_id: str,
        error: str,
        quarantined_at: datetime,
        claim_token: str,
        uow: UnitOfWork | None = None,
    ) -> bool:
        stmt = (
            update(M)
            .where(*self._held(message_id, claim_token))
            .values(
                error=error,
                retry_count=M.retry_count + 1,
                quarantined_at=quarantined_at,
                claim_token=None,
                claimed_until=None,
            )
        )
        return await self._apply("quarantine", stmt, uow)

    async def requeue(
        self,
        message_id: str,
        scheduled_at: datetime,
        uow: UnitOfWork | None = None,
    ) -> bool:
        stmt = (
            update(M)
            .where(M.message_id == message_id, M.processed_at.is_(None))
            .values(
                quarantined_at=None,
                retry_count=0,
                scheduled_at=scheduled_at,
                claim_token=None,
                claimed_until=None,
            )
        )
        return await self._apply("requeue", stmt, uow)

    async def delete_processed_before(
        self, cutoff: datetime, uow: UnitOfWork | None = None
    ) -> int:
        session = self._session(uow)
        stmt = (
            delete(M)
            .where(M.processed_at.is_not(None), M.processed_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        with _store_errors("delete_processed_before"):
            result = await session.execute(stmt)
        return _rowcount(result)

    # -- mapping ------------------------------------------------------------

    @staticmethod
    def to_model(msg: OutboxMessage) -> OutboxMessageModel:
        return OutboxMessageModel(
            message_id=msg.message_id,
            message_type=msg.message_type,
            content=msg.content,
            created_at=msg.created_at,
            scheduled_at=msg.scheduled_at,
            processed_at=msg.processed_at,
            error=msg.error,
            retry_count=msg.retry_count,
            claim_token=msg.claim_token,
            claimed_until=msg.claimed_until,
            quarantined_at=msg.quarantined_at,
            correlation_id=msg.correlation_id,
        )

    @staticmethod
    def from_model(model: OutboxMessageModel) -> OutboxMessage:
        return OutboxMessage(
            message_id=model.message_id,
            message_type=model.message_type,
            content=model.content,
            created_at=model.created_at,
            scheduled_at=model.scheduled_at,
            processed_at=model.processed_at,
            error=model.error,
            retry_count=model.retry_count,
            claim_token=model.claim_token,
            claimed_until=model.claimed_until,
            quarantined_at=model.quarantined_at,
            correlation_id=model.correlation_id,
        )

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _filters(processed: bool | None) -> list[Any]:
        if processed is None:
            return []
        if processed:
            return [M.processed_at.is_not(None)]
        return [M.processed_at.is_(None)]

    @staticmethod
    def _held(message_id: str, claim_token: str) -> list[Any]:
        return [
            M.message_id == message_id,
            M.processed_at.is_(None),
            M.claim_token == claim_token,
        ]

    async def _apply(self, operation: str, stmt: Any, uow: UnitOfWork | None) -> bool:
        session = self._session(uow)
        with _store_errors(operation):
            result = await session.execute(
                stmt.execution_options(synchronize_session=False)
            )
        return _rowcount(result) == 1


def _rowcount(result: Any) -> int:
    return int(getattr(result, "rowcount", 0) or 0)
