"""Simple in-process event bus."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Protocol, Sequence

from wecarry.core.events.event_models import Event

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], None]


class EventListener(Protocol):
    event_kinds: Sequence[str]

    def handle(self, event: Event) -> None:
        ...


class EventBus:
    """Synchronous pub/sub: handlers run in the publisher's thread, in registration order."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_kind: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_kind, [])
            handlers.append(handler)

    def register(self, listener: EventListener) -> None:
        for kind in listener.event_kinds:
            self.subscribe(kind, listener.handle)

    def handlers_for(self, event_kind: str) -> List[EventHandler]:
        with self._lock:
            return list(self._subscribers.get(event_kind, []))

    def publish(self, event: Event) -> None:
        for handler in self.handlers_for(event.kind):
            try:
                handler(event)
            except Exception:
                # One broken listener must not starve the rest.
                logger.exception("Event handler %r failed for %s", handler, event.kind)

    def publish_all(self, events: Iterable[Event]) -> None:
        for event in events:
            self.publish(event)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()
