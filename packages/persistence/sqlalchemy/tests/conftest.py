from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
from shop_fixtures import FakeClock, build_registry
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy_shop import ShopBase

from ddd_outbox_core import (
    EventDispatcher,
    EventTypeRegistry,
    OutboxCleaner,
    OutboxProcessor,
    OutboxSettings,
    OutboxWriter,
)
from ddd_outbox_persistence_sqlalchemy import (
    SQLAlchemyOutboxStorage,
    SQLAlchemyUnitOfWork,
    create_outbox_schema,
    unit_of_work_factory,
)


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await create_outbox_schema(engine)
    async with engine.begin() as conn:
        await conn.run_sync(ShopBase.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
def uow_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[], SQLAlchemyUnitOfWork]:
    return unit_of_work_factory(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> EventTypeRegistry:
    return build_registry()


@pytest.fixture
def storage() -> SQLAlchemyOutboxStorage:
    return SQLAlchemyOutboxStorage()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def writer(storage, registry, clock) -> OutboxWriter:
    return OutboxWriter(storage, registry, clock=clock)


@pytest.fixture
def processor(storage, registry, dispatcher, uow_factory, clock) -> OutboxProcessor:
    return OutboxProcessor(
        storage,
        registry,
        dispatcher,
        uow_factory,
        settings=OutboxSettings(max_attempts=3),
        clock=clock,
    )


@pytest.fixture
def cleaner(storage, uow_factory, clock) -> OutboxCleaner:
    return OutboxCleaner(storage, uow_factory, clock=clock)

