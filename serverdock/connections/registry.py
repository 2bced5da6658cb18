"""
Server and connection registry.

Tracks the configured servers, their running status and the live
connections bound to them. Gateway (enterprise) workers are looked up
through the per-endpoint WorkerLifecycleManager cache.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Protocol, runtime_checkable

from serverdock.caching.endpoint_cache import EndpointCache
from serverdock.config import ServerConfig
from serverdock.endpoint import Endpoint
from serverdock.gateway.types import ConsoleType, WorkerDescriptor
from serverdock.server_utils import is_core_server_running, is_gateway_server_running

if TYPE_CHECKING:
    from serverdock.caching.resources import ManagerCache
    from serverdock.gateway.manager import WorkerLifecycleManager

logger = logging.getLogger(__name__)

ServerType = Literal["core", "enterprise"]

SERVER_TYPE_CORE: ServerType = "core"
SERVER_TYPE_ENTERPRISE: ServerType = "enterprise"


@dataclass
class ServerState:
    type: ServerType
    endpoint: Endpoint
    label: Optional[str] = None
    is_running: bool = False
    is_managed: bool = False
    psk: Optional[str] = None

    @property
    def is_gateway(self) -> bool:
        return self.type == SERVER_TYPE_ENTERPRISE


class ConnectionState(Protocol):
    """A live session bound to one server (or gateway worker) endpoint."""

    server_endpoint: Endpoint
    is_connected: bool
    is_running_code: bool
    tag_id: Optional[str]

    async def supports_console_type(self, console_type: ConsoleType) -> bool: ...


@runtime_checkable
class CodeExecutionConnection(Protocol):
    async def run_code(self, code: str, language_id: str) -> Any: ...


class ConnectionRegistry(Protocol):
    """What connection resolution needs to know about servers and connections."""

    def get_servers(self, is_running: Optional[bool] = None, server_type: Optional[str] = None) -> List[ServerState]: ...

    def get_connections(self, endpoint: Optional[Endpoint] = None) -> List[ConnectionState]: ...

    async def get_worker_info(self, worker_endpoint: Endpoint) -> Optional[WorkerDescriptor]: ...

    async def get_manager_for_worker(self, worker_endpoint: Endpoint) -> Optional["WorkerLifecycleManager"]: ...


class ServerRegistry:
    """
    In-memory ConnectionRegistry.

    Servers keep configuration order; connections keep registration order.
    """

    def __init__(self, manager_cache: Optional["ManagerCache"] = None, probe_timeout: float = 5.0):
        self._servers: EndpointCache[ServerState] = EndpointCache()
        self._connections: EndpointCache[List[ConnectionState]] = EndpointCache()
        self._manager_cache = manager_cache
        self.probe_timeout = probe_timeout

    # =========================
    # Servers
    # =========================

    def load_config(self, config: ServerConfig) -> None:
        """Replace the server list, keeping known running status."""
        previous = {state.endpoint: state for state in self._servers.values()}
        self._servers.clear()

        for core in config.core:
            known = previous.get(core.endpoint)
            self.add_server(
                ServerState(
                    type=SERVER_TYPE_CORE,
                    endpoint=core.endpoint,
                    label=core.label,
                    is_running=known.is_running if known else False,
                    psk=core.psk,
                )
            )

        for enterprise in config.enterprise:
            known = previous.get(enterprise.endpoint)
            self.add_server(
                ServerState(
                    type=SERVER_TYPE_ENTERPRISE,
                    endpoint=enterprise.endpoint,
                    label=enterprise.label,
                    is_running=known.is_running if known else False,
                )
            )

        logger.info(f"Loaded {self._servers.size} servers")

    def add_server(self, state: ServerState) -> None:
        self._servers.set(state.endpoint, state)

    def get_server(self, endpoint: Endpoint) -> Optional[ServerState]:
        return self._servers.get(endpoint)

    def get_servers(self, is_running: Optional[bool] = None, server_type: Optional[str] = None) -> List[ServerState]:
        return [
            server
            for server in self._servers.values()
            if (is_running is None or server.is_running == is_running)
            and (server_type is None or server.type == server_type)
        ]

    async def update_status(self) -> None:
        """Probe every server concurrently and record whether it is running."""
        servers = list(self._servers.values())
        results = await asyncio.gather(*(self._probe(server) for server in servers))
        for server, running in zip(servers, results):
            if server.is_running != running:
                logger.info(f"Server {server.endpoint} is {'running' if running else 'not running'}")
            server.is_running = running

    async def _probe(self, server: ServerState) -> bool:
        if server.is_gateway:
            return await is_gateway_server_running(server.endpoint, self.probe_timeout)
        return await is_core_server_running(server.endpoint, self.probe_timeout)

    # =========================
    # Connections
    # =========================

    def add_connection(self, connection: ConnectionState, server_endpoint: Optional[Endpoint] = None) -> None:
        """
        Register a connection.

        Args:
            connection: The connection
            server_endpoint: Server it belongs to. Defaults to the connection's
                own endpoint; gateway worker connections pass the gateway's.
        """
        key = server_endpoint or connection.server_endpoint
        connections = self._connections.get(key) or []
        self._connections.set(key, [*connections, connection])

    def remove_connection(self, connection: ConnectionState) -> bool:
        for key, connections in list(self._connections.entries()):
            if connection in connections:
                remaining = [c for c in connections if c is not connection]
                if remaining:
                    self._connections.set(key, remaining)
                else:
                    self._connections.delete(key)
                return True
        return False

    def get_connections(self, endpoint: Optional[Endpoint] = None) -> List[ConnectionState]:
        if endpoint is not None:
            return list(self._connections.get(endpoint) or [])
        return [connection for connections in self._connections.values() for connection in connections]

    def connection_count(self, endpoint: Endpoint) -> int:
        return len(self._connections.get(endpoint) or [])

    # =========================
    # Gateway workers
    # =========================

    async def get_manager_for_worker(self, worker_endpoint: Endpoint) -> Optional["WorkerLifecycleManager"]:
        if self._manager_cache is None:
            return None

        for server in self.get_servers(server_type=SERVER_TYPE_ENTERPRISE):
            if not self._manager_cache.has(server.endpoint):
                continue
            manager = await self._manager_cache.get(server.endpoint)
            if manager.get_worker_info(worker_endpoint) is not None:
                return manager
        return None

    async def get_worker_info(self, worker_endpoint: Endpoint) -> Optional[WorkerDescriptor]:
        manager = await self.get_manager_for_worker(worker_endpoint)
        return manager.get_worker_info(worker_endpoint) if manager else None

    async def get_worker_credentials(self, worker_endpoint: Endpoint) -> Optional[Dict[str, str]]:
        """Credentials for connecting to a gateway worker, or None if no gateway owns it."""
        manager = await self.get_manager_for_worker(worker_endpoint)
        return await manager.get_worker_credentials() if manager else None
