"""
Concrete endpoint-keyed caches shared across the application.

All of them are created by the composition root (ServiceContainer) and
passed to the services that need them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from serverdock.caching.async_cache import AsyncResourceCache
from serverdock.caching.endpoint_cache import EndpointCache
from serverdock.endpoint import Endpoint
from serverdock.gateway.types import GatewayClient
from serverdock.server_utils import GATEWAY_API_MODULE_PATH, download_from_url

if TYPE_CHECKING:
    from serverdock.gateway.manager import WorkerLifecycleManager, WorkerLifecycleManagerFactory

logger = logging.getLogger(__name__)


class GatewayClientCache(EndpointCache[GatewayClient]):
    """Authenticated gateway clients, populated by the login flow."""


@dataclass
class ApiModule:
    endpoint: Endpoint
    path: Path

    async def dispose(self) -> None:
        self.path.unlink(missing_ok=True)


class ApiModuleCache(AsyncResourceCache[ApiModule]):
    """
    Gateway API modules downloaded once per endpoint.

    Each module lands in `<storage_dir>/<endpoint dir>/` and is removed when
    the cache is disposed.
    """

    def __init__(self, storage_dir: str, timeout: float = 30.0):
        self.storage_dir = Path(storage_dir)
        self.timeout = timeout
        super().__init__(self._download)

    async def _download(self, endpoint: Endpoint) -> ApiModule:
        target_dir = self.storage_dir / endpoint.directory_name
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / Path(GATEWAY_API_MODULE_PATH).name

        content = await download_from_url(endpoint.join(GATEWAY_API_MODULE_PATH), timeout=self.timeout)
        target.write_bytes(content)

        logger.info(f"Downloaded API module for {endpoint} to {target}")
        return ApiModule(endpoint=endpoint, path=target)


class ManagerCache(AsyncResourceCache["WorkerLifecycleManager"]):
    """One WorkerLifecycleManager per gateway endpoint."""

    def __init__(self, factory: "WorkerLifecycleManagerFactory"):
        self.factory = factory
        super().__init__(self._create)

    async def _create(self, endpoint: Endpoint) -> "WorkerLifecycleManager":
        return self.factory.create(endpoint)
