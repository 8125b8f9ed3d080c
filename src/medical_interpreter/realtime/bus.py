"""Per-session publish/subscribe for domain events."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import TypeVar

from .events import DomainEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)


class EventBus:
    """Typed, multi-subscriber event bus owned by a single session.

    Handlers are keyed by the exact event class. A handler that raises is
    logged and skipped; the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Callable[[DomainEvent], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``.

        Returns:
            A callable that removes this registration. Calling it twice is safe.
        """
        with self._lock:
            self._handlers[event_type].append(handler)  # type: ignore[arg-type]

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)  # type: ignore[arg-type]

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception("Handler %r failed for %s", handler, type(event).__name__)

    def subscriber_count(self, event_type: type[DomainEvent]) -> int:
        with self._lock:
            return len(self._handlers.get(event_type, ()))

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
