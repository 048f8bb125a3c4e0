from .outbox import InMemoryOutboxStorage
from .unit_of_work import InMemoryUnitOfWork

__all__ = [
    "InMemoryOutboxStorage",
    "InMemoryUnitOfWork",
]
