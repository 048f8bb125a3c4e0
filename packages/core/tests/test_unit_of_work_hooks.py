from typing import NoReturn
from unittest.mock import AsyncMock

import pytest

from ddd_outbox_core.adapters.memory.unit_of_work import InMemoryUnitOfWork


@pytest.mark.asyncio()
async def test_uow_context_manager_commit() -> None:
    uow = InMemoryUnitOfWork()

    async with uow:
        pass

    assert uow.committed
    assert uow.commit_count == 1
    assert not uow.rolled_back


@pytest.mark.asyncio()
async def test_uow_context_manager_rollback_on_error() -> NoReturn:
    uow = InMemoryUnitOfWork()

    with pytest.raises(ValueError, match="oops"):
        async with uow:
            raise ValueError("oops")

    assert not uow.committed
    assert uow.rolled_back
    assert uow.rollback_count == 1


@pytest.mark.asyncio()
async def test_staged_writes_apply_on_commit_only() -> None:
    applied: list[str] = []

    async with InMemoryUnitOfWork() as uow:
        uow.stage(lambda: applied.append("order"))
        assert applied == []
    assert applied == ["order"]

    with pytest.raises(RuntimeError):
        async with InMemoryUnitOfWork() as uow:
            uow.stage(lambda: applied.append("lost"))
            raise RuntimeError("boom")
    assert applied == ["order"]


@pytest.mark.asyncio()
async def test_commit_is_idempotent() -> None:
    uow = InMemoryUnitOfWork()
    await uow.commit()
    await uow.commit()
    await uow.rollback()

    assert uow.commit_count == 1
    assert not uow.rolled_back


@pytest.mark.asyncio()
async def test_before_commit_runs_inside_transaction() -> None:
    order: list[str] = []
    uow = InMemoryUnitOfWork()

    async def before() -> None:
        order.append(f"before(committed={uow.committed})")

    async def after() -> None:
        order.append(f"after(committed={uow.committed})")

    async with uow:
        uow.on_commit(after)
        uow.before_commit(before)

    assert order == ["before(committed=False)", "after(committed=True)"]


@pytest.mark.asyncio()
async def test_failing_before_commit_rolls_back_and_propagates() -> None:
    uow = InMemoryUnitOfWork()
    after = AsyncMock()

    async def broken() -> None:
        raise LookupError("no such product")

    with pytest.raises(LookupError):
        async with uow:
            uow.before_commit(broken)
            uow.on_commit(after)

    assert uow.rolled_back
    assert not uow.committed
    after.assert_not_called()


@pytest.mark.asyncio()
async def test_failing_on_commit_hook_is_logged_not_raised(caplog) -> None:
    uow = InMemoryUnitOfWork()
    second = AsyncMock()

    async def broken() -> None:
        raise RuntimeError("notifier down")

    async with uow:
        uow.on_commit(broken)
        uow.on_commit(second)

    assert uow.committed
    second.assert_awaited_once()
    assert "Error in on_commit hook" in caplog.text


@pytest.mark.asyncio()
async def test_hooks_dropped_on_rollback() -> None:
    uow = InMemoryUnitOfWork()
    before = AsyncMock()
    after = AsyncMock()

    with pytest.raises(ValueError):
        async with uow:
            uow.before_commit(before)
            uow.on_commit(after)
            raise ValueError("abort")

    before.assert_not_called()
    after.assert_not_called()


def test_uow_reset() -> None:
    uow = InMemoryUnitOfWork()
    uow.committed = True
    uow.rolled_back = True
    uow.commit_count = 5
    uow.stage(lambda: None)

    uow.reset()

    assert not uow.committed
    assert not uow.rolled_back
    assert uow.commit_count == 0
    assert uow.staged_count == 0
