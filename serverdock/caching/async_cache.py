"""
Memoizing async loader keyed by Endpoint.

The first `get` for an endpoint schedules the loader and stores the
in-flight task before yielding, so every concurrent caller for that endpoint
awaits the same task. A failed load stays cached until `invalidate`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Set, TypeVar

from serverdock.caching.endpoint_cache import EndpointCache
from serverdock.caching.keyed_store import dispose_value, is_disposable
from serverdock.endpoint import Endpoint
from serverdock.events import EventEmitter, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[Endpoint], Awaitable[T]]


class AsyncResourceCache(Generic[T]):
    def __init__(self, loader: Loader[T]):
        self._loader = loader
        self._tasks: EndpointCache[asyncio.Future] = EndpointCache()
        self._on_did_invalidate: EventEmitter[Endpoint] = EventEmitter()
        self._disposals: Set[asyncio.Future] = set()
        # Loads invalidated before settling; their values are disposed with the cache.
        self._orphans: Set[asyncio.Future] = set()
        self._disposed = False

    def on_did_invalidate(self, listener: Callable[[Endpoint], None]) -> Unsubscribe:
        return self._on_did_invalidate.subscribe(listener)

    async def get(self, endpoint: Endpoint) -> T:
        """
        Get the value for an endpoint, loading it on first access.

        Raises:
            RuntimeError: If the cache has been disposed
            Exception: Whatever the loader raised, for every caller of the entry
        """
        if self._disposed:
            raise RuntimeError(f"{type(self).__name__} is disposed")

        task = self._tasks.get(endpoint)
        if task is None:
            logger.debug(f"{type(self).__name__}: loading {endpoint}")
            task = asyncio.ensure_future(self._loader(endpoint))
            self._tasks.set(endpoint, task)

        # Shielded so one cancelled caller does not cancel the shared load.
        return await asyncio.shield(task)

    def has(self, endpoint: Endpoint) -> bool:
        return self._tasks.has(endpoint)

    def invalidate(self, endpoint: Endpoint) -> None:
        """
        Drop the entry for an endpoint.

        Callers already awaiting an in-flight load are unaffected, and the
        value it produces is disposed along with the cache. An entry that
        already resolved to a disposable value is disposed in the background.
        """
        task = self._tasks.get(endpoint)
        self._tasks.delete(endpoint)
        logger.debug(f"{type(self).__name__}: invalidated {endpoint}")

        if task is not None and not task.done():
            self._orphans.add(task)
            task.add_done_callback(self._release_orphan)
        elif task is not None and _resolved_disposable(task):
            disposal = asyncio.ensure_future(dispose_value(task.result()))
            self._disposals.add(disposal)
            disposal.add_done_callback(self._disposals.discard)

        self._on_did_invalidate.fire(endpoint)

    def _release_orphan(self, task: asyncio.Future) -> None:
        if not _resolved_disposable(task):
            self._orphans.discard(task)

    async def dispose(self) -> None:
        """Wait for every entry to settle and dispose the resolved values."""
        self._disposed = True
        self._on_did_invalidate.dispose()
        await self._tasks.dispose()

        orphans = list(self._orphans)
        self._orphans.clear()
        if orphans:
            await asyncio.gather(*orphans, return_exceptions=True)
            await asyncio.gather(
                *(dispose_value(task.result()) for task in orphans if _resolved_disposable(task)),
                return_exceptions=True,
            )

        if self._disposals:
            await asyncio.gather(*self._disposals, return_exceptions=True)


def _resolved_disposable(task: asyncio.Future) -> bool:
    if not task.done() or task.cancelled() or task.exception() is not None:
        return False
    return is_disposable(task.result())
