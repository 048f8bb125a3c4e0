from ddd_outbox_core.ports.background_worker import IBackgroundWorker
from ddd_outbox_core.ports.event_publisher import IEventPublisher, IEventSource
from ddd_outbox_core.ports.outbox import IOutboxStorage, OutboxMessage
from ddd_outbox_core.ports.unit_of_work import UnitOfWork

__all__ = [
    "IBackgroundWorker",
    "IEventPublisher",
    "IEventSource",
    "IOutboxStorage",
    "OutboxMessage",
    "UnitOfWork",
]
