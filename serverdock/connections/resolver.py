"""
Connection resolution.

Turns "run something against this URL" into a ready connection, connecting
on the caller's behalf where that can be done without interactive login.

Failures are returned as ResolveFailure values, never raised, so the tool
layer can render the message and hint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from serverdock.connections.registry import (
    CodeExecutionConnection,
    ConnectionRegistry,
    ConnectionState,
    ServerState,
)
from serverdock.endpoint import Endpoint
from serverdock.errors import (
    ConnectionFailedError,
    NoActiveConnectionError,
    ResolutionError,
    ServerNotFoundError,
    ServerNotRunningError,
    UnsupportedConnectionKindError,
)

logger = logging.getLogger(__name__)

VARIABLE_TITLE_PLACEHOLDER = "<variableTitle>"

ConnectAction = Callable[[Endpoint, Optional[str]], Awaitable[Any]]


@dataclass
class ResolveSuccess:
    connection: ConnectionState
    panel_url_format: Optional[str] = None
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "connectionUrl": self.connection.server_endpoint.origin,
            "panelUrlFormat": self.panel_url_format,
        }


@dataclass
class ResolveFailure:
    error: ResolutionError
    success: bool = field(default=False, init=False)

    @property
    def error_message(self) -> str:
        return self.error.message

    @property
    def details(self) -> Dict[str, Any]:
        return self.error.details or {}

    @property
    def hint(self) -> Optional[str]:
        return self.error.hint

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": False,
            "errorMessage": self.error_message,
            "code": self.error.code,
            "details": self.details,
        }
        if self.hint:
            result["hint"] = self.hint
        return result


ResolveResult = Union[ResolveSuccess, ResolveFailure]


def find_server(servers: Iterable[ServerState], endpoint: Endpoint) -> Optional[ServerState]:
    """
    Find the server descriptor for an endpoint.

    Loopback endpoints must match host and port, since several local servers
    commonly differ only by port. Other hosts match on scheme and host so a
    proxied port still finds its server. First match wins.
    """
    for server in servers:
        candidate = server.endpoint
        if endpoint.is_loopback:
            if candidate.host == endpoint.host and candidate.port == endpoint.port:
                return server
        elif candidate.host == endpoint.host and candidate.scheme == endpoint.scheme:
            return server
    return None


def get_core_panel_url_format(endpoint: Endpoint, psk: Optional[str] = None) -> str:
    url = f"{endpoint.origin}/iframe/widget/?name={VARIABLE_TITLE_PLACEHOLDER}"
    return f"{url}&psk={psk}" if psk else url


async def get_gateway_panel_url_format(
    endpoint: Endpoint,
    worker_endpoint: Endpoint,
    registry: ConnectionRegistry,
) -> Optional[str]:
    """Panel URL for a gateway worker, or None if the server cannot embed widgets."""
    manager = await registry.get_manager_for_worker(worker_endpoint)
    flags = manager.get_feature_flags() if manager else None
    if flags is None or not flags.embed_dashboards_and_widgets:
        return None

    descriptor = await registry.get_worker_info(worker_endpoint)
    if descriptor is None:
        return None

    return f"{endpoint.origin}/iriside/embed/widget/serial/{descriptor.serial}/{VARIABLE_TITLE_PLACEHOLDER}"


async def create_connection_not_found_hint(
    registry: ConnectionRegistry,
    endpoint: Endpoint,
    language_id: Optional[str],
) -> Optional[str]:
    """
    Suggest the connections that could run `language_id` instead.

    Without a language every connection is suggested.
    """
    candidates = []
    for connection in registry.get_connections():
        if language_id is None or await connection.supports_console_type(language_id):
            candidates.append(connection)

    if candidates:
        lines = "\n".join(f"- {c.server_endpoint.origin}" for c in candidates)
        return f"Connection for URL {endpoint.origin} not found. Did you mean to use one of these connections?\n{lines}"

    if language_id is None:
        return None
    return f"No available connections supporting languageId {language_id}."


class ConnectionResolver:
    def __init__(self, registry: ConnectionRegistry, connect: Optional[ConnectAction] = None):
        """
        Args:
            registry: Server and connection registry
            connect: Establishes a connection to a directly-addressable server
        """
        self.registry = registry
        self._connect = connect

    async def resolve(self, endpoint: Endpoint, language_id: Optional[str] = None) -> ResolveResult:
        """
        Get a ready connection for `endpoint`, connecting if needed.

        Gateway servers are never logged in to automatically; they need an
        existing connection. Directly-addressable servers are connected once
        if no connection exists yet.
        """
        url = endpoint.origin

        server = find_server(self.registry.get_servers(), endpoint)
        if server is None:
            hint = await create_connection_not_found_hint(self.registry, endpoint, language_id)
            return ResolveFailure(ServerNotFoundError(url, hint))

        if not server.is_running:
            return ResolveFailure(ServerNotRunningError(url))

        connection = self._first_connection(server)

        if connection is None and server.is_gateway:
            return ResolveFailure(NoActiveConnectionError(url))

        if connection is None:
            failure = await self._connect_once(server.endpoint, language_id)
            if failure is not None:
                return failure
            connection = self._first_connection(server)
            if connection is None:
                return ResolveFailure(ConnectionFailedError(url))

        if not isinstance(connection, CodeExecutionConnection):
            return ResolveFailure(UnsupportedConnectionKindError(url))

        if server.is_gateway:
            panel_url_format = await get_gateway_panel_url_format(
                endpoint, connection.server_endpoint, self.registry
            )
        else:
            panel_url_format = get_core_panel_url_format(endpoint, server.psk)

        return ResolveSuccess(connection=connection, panel_url_format=panel_url_format)

    def _first_connection(self, server: ServerState) -> Optional[ConnectionState]:
        connections = self.registry.get_connections(server.endpoint)
        return connections[0] if connections else None

    async def _connect_once(self, endpoint: Endpoint, language_id: Optional[str]) -> Optional[ResolveFailure]:
        if self._connect is None:
            return ResolveFailure(
                ConnectionFailedError(
                    endpoint.origin,
                    "No connect action configured",
                    hint="Open a connection to this server in the host application, then retry.",
                )
            )

        logger.info(f"No connection for {endpoint}; connecting")
        try:
            await self._connect(endpoint, language_id)
        except Exception as e:
            logger.error(f"Failed to connect to {endpoint}: {e}")
            return ResolveFailure(ConnectionFailedError(endpoint.origin, str(e)))
        return None
