from .aggregate import AggregateRoot
from .event_registry import EventTypeRegistry
from .events import DomainEvent

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "EventTypeRegistry",
]
