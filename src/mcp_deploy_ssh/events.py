"""Publish/subscribe for connection lifecycle events."""

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

Listener = Callable[..., Awaitable[None] | None]


def connected_topic(name: str) -> str:
    """Topic published once a named environment is connected."""
    return f"connected.{name}"


class EventSink(Protocol):
    """Anything the handler can publish lifecycle events to."""

    async def dispatch(self, topic: str, *args: Any) -> None:
        ...


class EventDispatcher:
    """Calls listeners registered for a topic, in registration order.

    Listeners may be plain callables or coroutine functions. Exceptions
    raised by a listener are not caught.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def add_listener(self, topic: str, listener: Listener) -> None:
        self._listeners[topic].append(listener)

    def remove_listener(self, topic: str, listener: Listener) -> bool:
        listeners = self._listeners.get(topic, [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def has_listeners(self, topic: str) -> bool:
        return bool(self._listeners.get(topic))

    async def dispatch(self, topic: str, *args: Any) -> None:
        listeners = list(self._listeners.get(topic, []))
        logger.debug(f"Dispatching {topic} to {len(listeners)} listener(s)")
        for listener in listeners:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
