"""Outbox pipeline: write, dispatch, clean up."""

from .adapter import DomainEventOutboxAdapter
from .cleaner import OutboxCleaner
from .dispatcher import EventDispatcher, EventHandler
from .processor import OutboxProcessor
from .results import DispatchOutcome, MessageResult, ProcessingReport
from .worker import OutboxWorker
from .writer import OutboxWriter

__all__ = [
    "DispatchOutcome",
    "DomainEventOutboxAdapter",
    "EventDispatcher",
    "EventHandler",
    "MessageResult",
    "OutboxCleaner",
    "OutboxProcessor",
    "OutboxWorker",
    "OutboxWriter",
    "ProcessingReport",
]
