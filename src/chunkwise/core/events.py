"""Event bus for execution lifecycle callbacks.

Provides a simple synchronous event bus for emitting lifecycle events from
the orchestrator and chunk loops to registered callbacks. Handlers are
plain callables subscribed per event type and invoked in subscription
order.
"""

from collections.abc import Callable
from threading import Lock
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class EventBusProtocol(Protocol):
    """Protocol for event bus implementations.

    Allows both EventBus and NullEventBus to satisfy the interface
    without inheritance, preventing accidental substitution bugs.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Subscribe a handler to an event type."""
        ...

    def emit(self, event: T) -> None:
        """Emit an event to all subscribers."""
        ...


class EventBus:
    """Simple synchronous event bus.

    Events are dispatched synchronously to all subscribers. Handler
    exceptions propagate to the caller - handlers are our code, so bugs
    should crash immediately.

    Chunk-level events may be emitted from worker threads. Subscription
    is lock-guarded; handlers themselves must be thread-safe when a work
    unit is partitioned.

    Example:
        bus = EventBus()
        bus.subscribe(ChunkCommitted, lambda e: print(f"chunk {e.chunk_sequence} committed"))
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """Subscribe a handler to an event type.

        Args:
            event_type: The event class to subscribe to
            handler: Callable that receives the event instance
        """
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = []
            self._subscribers[event_type].append(handler)

    def emit(self, event: T) -> None:
        """Emit an event to all subscribers, in subscription order.

        Events with no subscribers are silently ignored.
        """
        with self._lock:
            handlers = list(self._subscribers.get(type(event), []))
        for handler in handlers:
            handler(event)


class NullEventBus:
    """No-op event bus for library use where nobody listens.

    Does NOT inherit from EventBus: subscribing to this is a no-op, and
    inheritance would hide that from someone who expects callbacks.
    """

    def subscribe(self, event_type: type[T], handler: Callable[[T], None]) -> None:
        """No-op subscription - handler will never be called."""
        pass

    def emit(self, event: T) -> None:
        """No-op emission - no handlers to call."""
        pass
