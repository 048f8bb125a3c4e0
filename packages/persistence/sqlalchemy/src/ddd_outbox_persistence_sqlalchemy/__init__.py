"""SQLAlchemy persistence adapter for the outbox."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core.models import Base, OutboxMessageModel
from .core.outbox import SQLAlchemyOutboxStorage
from .core.types.utc import UTCDateTime
from .core.uow import SQLAlchemyUnitOfWork, unit_of_work_factory
from .exceptions import (
    SessionManagementError,
    SQLAlchemyPersistenceError,
    TransientStoreError,
    UnitOfWorkError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def create_outbox_schema(engine: AsyncEngine) -> None:
    """Create the ``outbox_messages`` table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "OutboxMessageModel",
    "SQLAlchemyOutboxStorage",
    "SQLAlchemyUnitOfWork",
    "UTCDateTime",
    "unit_of_work_factory",
    "create_outbox_schema",
    "SessionManagementError",
    "SQLAlchemyPersistenceError",
    "TransientStoreError",
    "UnitOfWorkError",
]
