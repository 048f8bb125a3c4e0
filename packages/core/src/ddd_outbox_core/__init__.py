"""ddd_outbox_core — transactional outbox for domain events.

Public API re-exported here; adapters live in ``ddd_outbox_core.adapters``.
"""

from .config import OutboxSettings
from .correlation import (
    generate_correlation_id,
    get_causation_id,
    get_correlation_id,
    set_causation_id,
    set_correlation_id,
)
from .domain import AggregateRoot, DomainEvent, EventTypeRegistry
from .outbox import (
    DispatchOutcome,
    DomainEventOutboxAdapter,
    EventDispatcher,
    MessageResult,
    OutboxCleaner,
    OutboxProcessor,
    OutboxWorker,
    OutboxWriter,
    ProcessingReport,
)
from .ports import (
    IBackgroundWorker,
    IEventPublisher,
    IEventSource,
    IOutboxStorage,
    OutboxMessage,
    UnitOfWork,
)
from .primitives import (
    EventRegistrationError,
    HandlerError,
    InfrastructureError,
    OperationCancelledError,
    OutboxError,
    PersistenceError,
    SerializationError,
    TransientStoreError,
    UnitOfWorkError,
    UnknownMessageTypeError,
)

__all__ = [
    "AggregateRoot",
    "DispatchOutcome",
    "DomainEvent",
    "DomainEventOutboxAdapter",
    "EventDispatcher",
    "EventRegistrationError",
    "EventTypeRegistry",
    "HandlerError",
    "IBackgroundWorker",
    "IEventPublisher",
    "IEventSource",
    "IOutboxStorage",
    "InfrastructureError",
    "MessageResult",
    "OperationCancelledError",
    "OutboxCleaner",
    "OutboxError",
    "OutboxMessage",
    "OutboxProcessor",
    "OutboxSettings",
    "OutboxWorker",
    "OutboxWriter",
    "PersistenceError",
    "ProcessingReport",
    "SerializationError",
    "TransientStoreError",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnknownMessageTypeError",
    "generate_correlation_id",
    "get_causation_id",
    "get_correlation_id",
    "set_causation_id",
    "set_correlation_id",
]
