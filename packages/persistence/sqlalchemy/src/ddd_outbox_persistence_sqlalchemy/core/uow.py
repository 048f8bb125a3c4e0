"""
SQLAlchemyUnitOfWork — one AsyncSession transaction per unit of work.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError

from ddd_outbox_core.ports.unit_of_work import UnitOfWork
from ddd_outbox_core.primitives.exceptions import TransientStoreError

from ..exceptions import SessionManagementError, UnitOfWorkError

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

    AsyncSessionFactory = Callable[[], AsyncSession]


class SQLAlchemyUnitOfWork(UnitOfWork):
    """
    Wraps an ``AsyncSession`` transaction.

    Give it **either** an open session **or** a session factory:

    * ``SQLAlchemyUnitOfWork(session=session)`` joins a session owned by the
      caller (request scope, DI container). The session is left open.
    * ``SQLAlchemyUnitOfWork(session_factory=factory)`` opens a fresh
      session on enter and closes it on exit. The processor and cleaner use
      this form through :func:`unit_of_work_factory`, one short transaction
      per claim or status update.

    Example::

        factory = async_sessionmaker(engine, expire_on_commit=False)
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            uow.session.add(OrderRow(id="ord-1", status="placed"))
            await writer.enqueue(OrderPlaced(order_id="ord-1"), uow=uow)

    Commit failures are classified: ``OperationalError`` (lock timeout,
    serialization failure, dropped connection) raises
    :class:`TransientStoreError`, anything else :class:`UnitOfWorkError`.
    The transaction is rolled back in both cases.
    """

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: AsyncSessionFactory | None = None,
    ) -> None:
        if (session is None) == (session_factory is None):
            raise SessionManagementError(
                "Pass exactly one of 'session' (caller-managed) or "
                "'session_factory' (self-managed)."
            )
        super().__init__()
        self._session = session
        self._session_factory = session_factory

    @property
    def owns_session(self) -> bool:
        return self._session_factory is not None

    @property
    def session(self) -> AsyncSession:
        """The session of the running transaction."""
        if self._session is None:
            raise UnitOfWorkError("No active session; use 'async with uow:' first.")
        return self._session

    async def __aenter__(self) -> SQLAlchemyUnitOfWork:
        if self._session_factory is not None:
            try:
                self._session = self._session_factory()
            except Exception as e:  # noqa: BLE001
                raise SessionManagementError(f"Cannot open session: {e}") from e

        try:
            if not self.session.in_transaction():
                await self.session.begin()
        except OperationalError as e:
            raise TransientStoreError(f"Cannot begin transaction: {e}") from e
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            await super().__aexit__(exc_type, exc_val, exc_tb)
        finally:
            if self.owns_session:
                await self._close()

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except OperationalError as e:
            await self._quiet_rollback()
            raise TransientStoreError(f"Commit conflict: {e}") from e
        except Exception as e:  # noqa: BLE001
            await self._quiet_rollback()
            raise UnitOfWorkError(f"Commit failed: {e}") from e

    async def rollback(self) -> None:
        if not self.session.in_transaction():
            return
        try:
            await self.session.rollback()
        except Exception as e:  # noqa: BLE001
            raise UnitOfWorkError(f"Rollback failed: {e}") from e

    async def _quiet_rollback(self) -> None:
        with contextlib.suppress(Exception):
            await self.rollback()

    async def _close(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:  # noqa: BLE001
            raise SessionManagementError(f"Cannot close session: {e}") from e


def unit_of_work_factory(
    session_factory: AsyncSessionFactory,
) -> Callable[[], SQLAlchemyUnitOfWork]:
    """Build the ``uow_factory`` the outbox processor and cleaner expect."""

    def _factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory)

    return _factory
