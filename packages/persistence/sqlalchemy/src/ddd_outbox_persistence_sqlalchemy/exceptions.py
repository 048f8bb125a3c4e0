"""Exceptions for the SQLAlchemy persistence layer."""

from __future__ import annotations

from ddd_outbox_core.primitives.exceptions import (
    PersistenceError,
    TransientStoreError,
)
from ddd_outbox_core.primitives.exceptions import (
    UnitOfWorkError as CoreUnitOfWorkError,
)


class SQLAlchemyPersistenceError(PersistenceError):
    """Base exception for all SQLAlchemy-specific persistence errors."""


class SessionManagementError(SQLAlchemyPersistenceError):
    """Raised when session creation or management fails."""


class UnitOfWorkError(SQLAlchemyPersistenceError, CoreUnitOfWorkError):
    """Raised when Unit of Work operations fail."""


__all__: list[str] = [
    "SessionManagementError",
    "SQLAlchemyPersistenceError",
    "TransientStoreError",
    "UnitOfWorkError",
]
