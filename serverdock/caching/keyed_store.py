"""
Dictionary for keys without a usable native equality.

Keys are canonicalized to strings by `serialize_key` and rebuilt by
`deserialize_key`. A key handed back by `keys()`, `entries()` or
`for_each()` is reconstructed on every call: it compares equal to the key
that was inserted but is generally a different object.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, Optional, Tuple, TypeVar

from serverdock.events import EventEmitter, Unsubscribe

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


def is_disposable(value: Any) -> bool:
    return callable(getattr(value, "dispose", None))


async def dispose_value(value: Any) -> None:
    """Resolve `value` if it is awaitable, then dispose it if it can be disposed."""
    if inspect.isawaitable(value):
        value = await value
    if is_disposable(value):
        result = value.dispose()
        if inspect.isawaitable(result):
            await result


class KeyedStore(ABC, Generic[K, V]):
    def __init__(self, entries: Optional[Iterable[Tuple[K, V]]] = None):
        self._map: Dict[str, V] = {}
        self._on_did_change: EventEmitter[K] = EventEmitter()
        for key, value in entries or ():
            self._map[self.serialize_key(key)] = value

    @abstractmethod
    def serialize_key(self, key: K) -> str:
        """Serialize a key to its canonical string form."""

    @abstractmethod
    def deserialize_key(self, key: str) -> K:
        """Rebuild a key from its canonical string form."""

    def on_did_change(self, listener: Callable[[K], None]) -> Unsubscribe:
        """Subscribe to set/delete/clear notifications. Returns an unsubscribe callable."""
        return self._on_did_change.subscribe(listener)

    @property
    def size(self) -> int:
        return len(self._map)

    def __len__(self) -> int:
        return len(self._map)

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[K]:
        return self.keys()

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        return self._map.get(self.serialize_key(key), default)

    def get_or_raise(self, key: K) -> V:
        serialized = self.serialize_key(key)
        if serialized not in self._map:
            raise KeyError(f"Key not found: {serialized}")
        return self._map[serialized]

    def set(self, key: K, value: V) -> "KeyedStore[K, V]":
        self._map[self.serialize_key(key)] = value
        self._on_did_change.fire(key)
        return self

    def has(self, key: K) -> bool:
        return self.serialize_key(key) in self._map

    def delete(self, key: K) -> bool:
        serialized = self.serialize_key(key)
        if serialized not in self._map:
            return False
        del self._map[serialized]
        self._on_did_change.fire(key)
        return True

    def clear(self) -> None:
        keys = list(self.keys())
        self._map.clear()
        for key in keys:
            self._on_did_change.fire(key)

    def keys(self) -> Iterator[K]:
        for serialized in list(self._map):
            yield self.deserialize_key(serialized)

    def values(self) -> Iterator[V]:
        return iter(list(self._map.values()))

    def entries(self) -> Iterator[Tuple[K, V]]:
        for serialized, value in list(self._map.items()):
            yield self.deserialize_key(serialized), value

    items = entries

    def for_each(self, callback: Callable[[V, K], None]) -> None:
        for key, value in self.entries():
            callback(value, key)

    async def dispose(self) -> None:
        """
        Clear the store and dispose every value.

        Awaitable values are resolved first. Disposals run concurrently and
        are all joined before returning; a failing value is logged and does
        not stop the others.
        """
        self._on_did_change.dispose()

        values = list(self._map.values())
        self._map.clear()

        results = await asyncio.gather(
            *(dispose_value(value) for value in values),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning(f"Error disposing {type(self).__name__} value: {result}")
