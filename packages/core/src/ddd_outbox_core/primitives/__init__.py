from .exceptions import (
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
from .id_generator import IIDGenerator, UUID4Generator

__all__ = [
    "EventRegistrationError",
    "HandlerError",
    "IIDGenerator",
    "InfrastructureError",
    "OperationCancelledError",
    "OutboxError",
    "PersistenceError",
    "SerializationError",
    "TransientStoreError",
    "UUID4Generator",
    "UnitOfWorkError",
    "UnknownMessageTypeError",
]
