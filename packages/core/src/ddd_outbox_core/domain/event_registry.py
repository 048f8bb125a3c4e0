"""EventTypeRegistry — maps stable type keys to event classes and decoders."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, cast

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError

from ..primitives.exceptions import (
    EventRegistrationError,
    SerializationError,
    UnknownMessageTypeError,
)

Decoder = Callable[[str], BaseModel]


class EventTypeRegistry:
    """Registry for mapping ``type key: str`` ↔ ``Type[BaseModel]``.

    The key is what gets stored in ``OutboxMessage.message_type``. It must
    stay stable for as long as messages of that shape can sit in the outbox,
    so it is chosen explicitly rather than derived from module paths.

    **Explicit registration** is required via ``register(name, cls)``.
    Create instances per application context for isolation.

    Usage::

        registry = EventTypeRegistry()
        registry.register("sales.order_placed", OrderPlaced)
        key, content = registry.encode(OrderPlaced(order_id="o-1"))
        event = registry.decode(key, content)
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[BaseModel]] = {}
        self._keys: dict[type[BaseModel], str] = {}
        self._decoders: dict[str, Decoder] = {}

    def register(
        self,
        name: str,
        event_class: type[BaseModel],
        *,
        decoder: Decoder | None = None,
    ) -> None:
        """Register *event_class* under *name*.

        ``decoder`` overrides ``event_class.model_validate_json``; use it to
        upcast content written by an older version of the event.
        """
        existing = self._classes.get(name)
        if existing is not None and existing is not event_class:
            raise EventRegistrationError(
                f"Type key {name!r} is already registered for {existing.__name__}"
            )
        existing_key = self._keys.get(event_class)
        if existing_key is not None and existing_key != name:
            raise EventRegistrationError(
                f"{event_class.__name__} is already registered as {existing_key!r}"
            )
        self._classes[name] = event_class
        self._keys[event_class] = name
        if decoder is not None:
            self._decoders[name] = decoder

    def get(self, name: str) -> type[BaseModel] | None:
        """Look up an event class by type key."""
        return self._classes.get(name)

    def has(self, name: str) -> bool:
        """Return ``True`` if *name* is registered."""
        return name in self._classes

    def key_for(self, event_class: type[BaseModel]) -> str:
        """Return the type key for *event_class*."""
        try:
            return self._keys[event_class]
        except KeyError:
            raise UnknownMessageTypeError(event_class.__name__) from None

    def encode(self, event: BaseModel) -> tuple[str, str]:
        """Serialise *event* to ``(type_key, json_content)``."""
        key = self.key_for(type(event))
        try:
            content = event.model_dump_json()
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise SerializationError(
                f"Cannot serialise {type(event).__name__}: {exc}", message_type=key
            ) from exc
        return key, content

    def decode(self, name: str, content: str) -> BaseModel:
        """Reconstruct an event from its type key and JSON content."""
        decoder = self._decoders.get(name)
        event_class = self._classes.get(name)
        if decoder is None and event_class is None:
            raise UnknownMessageTypeError(name)
        try:
            if decoder is not None:
                return decoder(content)
            return cast("type[BaseModel]", event_class).model_validate_json(content)
        except SerializationError:
            raise
        except (ValidationError, TypeError, ValueError) as exc:
            raise SerializationError(
                f"Cannot decode content of type {name!r}: {exc}", message_type=name
            ) from exc
        except Exception as exc:  # noqa: BLE001
            # Custom decoders may raise anything.
            raise SerializationError(
                f"Decoder for {name!r} failed: {type(exc).__name__}: {exc}",
                message_type=name,
            ) from exc

    def list_registered(self) -> list[str]:
        """Return all registered type keys."""
        return list(self._classes.keys())

    def clear(self) -> None:
        """Remove all registrations (testing utility)."""
        self._classes.clear()
        self._keys.clear()
        self._decoders.clear()


def same_payload(left: BaseModel, right: Any) -> bool:
    """Value equality for round-trip checks, ignoring pydantic bookkeeping."""
    return type(left) is type(right) and left.model_dump() == right.model_dump()
