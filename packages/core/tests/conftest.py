from __future__ import annotations

import pytest
from shop_fixtures import FakeClock, build_registry

from ddd_outbox_core import (
    EventDispatcher,
    EventTypeRegistry,
    OutboxCleaner,
    OutboxProcessor,
    OutboxSettings,
    OutboxWriter,
)
from ddd_outbox_core.adapters.memory import (
    InMemoryOutboxStorage,
    InMemoryUnitOfWork,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> EventTypeRegistry:
    return build_registry()


@pytest.fixture
def storage() -> InMemoryOutboxStorage:
    return InMemoryOutboxStorage()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def settings() -> OutboxSettings:
    return OutboxSettings(batch_size=50, max_attempts=5)


@pytest.fixture
def writer(
    storage: InMemoryOutboxStorage, registry: EventTypeRegistry, clock: FakeClock
) -> OutboxWriter:
    return OutboxWriter(storage, registry, clock=clock)


@pytest.fixture
def processor(
    storage: InMemoryOutboxStorage,
    registry: EventTypeRegistry,
    dispatcher: EventDispatcher,
    settings: OutboxSettings,
    clock: FakeClock,
) -> OutboxProcessor:
    return OutboxProcessor(
        storage,
        registry,
        dispatcher,
        InMemoryUnitOfWork,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def cleaner(storage: InMemoryOutboxStorage, clock: FakeClock) -> OutboxCleaner:
    return OutboxCleaner(storage, InMemoryUnitOfWork, clock=clock)
