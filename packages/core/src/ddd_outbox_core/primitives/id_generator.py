import uuid
from typing import Protocol


class IIDGenerator(Protocol):
    """
    Protocol for outbox message id generation.
    Ids must be globally unique; they double as the idempotency key
    handlers use to deduplicate redeliveries.
    """

    def next_id(self) -> str:
        """Generates the next unique identifier."""
        ...


class UUID4Generator(IIDGenerator):
    """Default id generator using UUIDv4."""

    def next_id(self) -> str:
        """Returns a string representation of a random UUIDv4."""
        return str(uuid.uuid4())
