"""InMemoryUnitOfWork — staged writes plus commit/rollback tracking for tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...ports.unit_of_work import UnitOfWork

if TYPE_CHECKING:
    from collections.abc import Callable


class InMemoryUnitOfWork(UnitOfWork):
    """In-memory implementation of UnitOfWork for testing.

    Extends UnitOfWork to get before/on-commit hook support.
    In-memory adapters :meth:`stage` their writes here; staged writes are
    applied on commit and discarded on rollback, which gives the fakes the
    same all-or-nothing behaviour as a database transaction.
    Records commit/rollback calls for assertions.
    """

    def __init__(self) -> None:
        super().__init__()
        self.committed: bool = False
        self.rolled_back: bool = False
        self.commit_count: int = 0
        self.rollback_count: int = 0
        self._staged: list[Callable[[], None]] = []

    def stage(self, apply: Callable[[], None]) -> None:
        """Defer *apply* until commit."""
        self._staged.append(apply)

    async def commit(self) -> None:
        """Apply staged writes and record that commit was called."""
        if self.committed or self.rolled_back:
            return
        staged, self._staged = self._staged, []
        for apply in staged:
            apply()
        self.committed = True
        self.commit_count += 1

    async def rollback(self) -> None:
        """Discard staged writes and record that rollback was called."""
        if self.committed or self.rolled_back:
            return
        self._staged.clear()
        self.rolled_back = True
        self.rollback_count += 1

    # ── Test helpers ─────────────────────────────────────────────

    @property
    def staged_count(self) -> int:
        return len(self._staged)

    def reset(self) -> None:
        """Reset commit/rollback tracking (for test setup)."""
        self.committed = False
        self.rolled_back = False
        self.commit_count = 0
        self.rollback_count = 0
        self._staged.clear()
