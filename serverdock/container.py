"""
Composition root.

Every cache and service is constructed here and handed to its consumers by
reference. Nothing in the package looks these up globally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from serverdock.caching.resources import ApiModuleCache, GatewayClientCache, ManagerCache
from serverdock.config import ServerConfig, ServerConfigFile, Settings
from serverdock.connections.registry import ServerRegistry
from serverdock.connections.resolver import ConnectAction, ConnectionResolver
from serverdock.endpoint import Endpoint
from serverdock.gateway.manager import WorkerLifecycleManager, WorkerLifecycleManagerFactory
from serverdock.gateway.types import CredentialProvider, InteractiveQueryFactory

logger = logging.getLogger(__name__)


class NoInteractiveLogin:
    """Credential provider for headless use: login is never possible."""

    async def request_client(self, endpoint: Endpoint, operate_as_another_user: bool) -> None:
        raise RuntimeError(f"Interactive login is not available for {endpoint}")


@dataclass
class ServiceContainer:
    settings: Settings
    server_config: ServerConfig
    client_cache: GatewayClientCache
    api_module_cache: ApiModuleCache
    manager_cache: ManagerCache
    registry: ServerRegistry
    resolver: ConnectionResolver

    @classmethod
    def build(
        cls,
        settings: Settings,
        server_config: Optional[ServerConfig] = None,
        connect: Optional[ConnectAction] = None,
        credentials: Optional[CredentialProvider] = None,
        interactive_query_factory: Optional[InteractiveQueryFactory] = None,
    ) -> "ServiceContainer":
        """
        Wire every service.

        Args:
            settings: Process settings
            server_config: Servers to track; read from `settings.config_path` if omitted
            connect: Opens a connection and registers it with `registry`. The
                resolver cannot connect on its own without one.
            credentials: Interactive login flow; defaults to NoInteractiveLogin
            interactive_query_factory: Creates queries through a server UI
        """
        if server_config is None:
            server_config = ServerConfigFile(settings.config_path).load()

        client_cache = GatewayClientCache()
        api_module_cache = ApiModuleCache(settings.storage_dir, timeout=settings.download_timeout_seconds)
        manager_cache = ManagerCache(
            WorkerLifecycleManagerFactory(
                settings,
                server_config,
                client_cache,
                credentials or NoInteractiveLogin(),
                api_module_cache=api_module_cache,
                interactive_query_factory=interactive_query_factory,
            )
        )

        registry = ServerRegistry(manager_cache, probe_timeout=settings.probe_timeout_seconds)
        registry.load_config(server_config)

        return cls(
            settings=settings,
            server_config=server_config,
            client_cache=client_cache,
            api_module_cache=api_module_cache,
            manager_cache=manager_cache,
            registry=registry,
            resolver=ConnectionResolver(registry, connect),
        )

    async def get_worker_manager(self, endpoint: Endpoint) -> WorkerLifecycleManager:
        return await self.manager_cache.get(endpoint)

    async def dispose(self) -> None:
        """Tear down in reverse construction order."""
        logger.info("Disposing services")
        await self.manager_cache.dispose()
        await self.api_module_cache.dispose()
        await self.client_cache.dispose()
