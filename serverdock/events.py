"""
Minimal event primitives.

EventEmitter carries a single kind of event (cache change notifications).
EventDispatcher carries named events (the gateway client status stream).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class EventEmitter(Generic[T]):
    def __init__(self) -> None:
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Event listener {listener!r} failed: {e}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispose(self) -> None:
        self._listeners.clear()


class EventDispatcher:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable[[Any], None]]] = {}

    def add_event_listener(self, event_name: str, handler: Callable[[Any], None]) -> Unsubscribe:
        self._listeners.setdefault(event_name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._listeners.get(event_name)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def dispatch_event(self, event_name: str, event: Any = None) -> None:
        for handler in list(self._listeners.get(event_name, [])):
            handler(event)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))
