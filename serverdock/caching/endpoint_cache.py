"""KeyedStore keyed by Endpoint."""

from __future__ import annotations

from typing import TypeVar

from serverdock.caching.keyed_store import KeyedStore
from serverdock.endpoint import Endpoint

V = TypeVar("V")


class EndpointCache(KeyedStore[Endpoint, V]):
    """
    Values stored by Endpoint.

    Keys are serialized to their origin string, so two equal endpoints built
    separately address the same entry. Iterated keys are fresh Endpoint
    instances.
    """

    def serialize_key(self, key: Endpoint) -> str:
        return key.origin

    def deserialize_key(self, key: str) -> Endpoint:
        return Endpoint.parse(key)
