"""MCP tool surface over the ServiceContainer.

Recommended workflow for agents:
1. Call `list_servers` to see configured servers and whether they are running.
2. Call `resolve_connection` with a server URL to get a ready connection and
   the panel URL format for result variables.
3. If it fails with a hint, follow the hint (e.g. log in to an enterprise server).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from serverdock.container import ServiceContainer
from serverdock.endpoint import parse_endpoint

logger = logging.getLogger(__name__)


def _server_to_dict(container: ServiceContainer, server: Any) -> Dict[str, Any]:
    return {
        "type": server.type,
        "url": server.endpoint.origin,
        "label": server.label,
        "isRunning": server.is_running,
        "isManaged": server.is_managed,
        "connectionCount": container.registry.connection_count(server.endpoint),
    }


def _connection_to_dict(connection: Any) -> Dict[str, Any]:
    return {
        "serverUrl": connection.server_endpoint.origin,
        "isConnected": connection.is_connected,
        "isRunningCode": connection.is_running_code,
        "tagId": connection.tag_id,
    }


def _invalid_url(key: str, url: str) -> Dict[str, Any]:
    return {"success": False, "errorMessage": "Invalid URL", "details": {key: url}}


class ServerDockTools:
    """Tool implementations, bound to one container."""

    def __init__(self, container: ServiceContainer):
        self.container = container

    async def list_servers(self, refresh: bool = False, is_running: Optional[bool] = None) -> List[Dict[str, Any]]:
        """List configured servers.

        Set `refresh=true` to probe every server before answering.
        """
        if refresh:
            await self.container.registry.update_status()
        return [
            _server_to_dict(self.container, s) for s in self.container.registry.get_servers(is_running=is_running)
        ]

    def list_connections(self, server_url: Optional[str] = None) -> Dict[str, Any]:
        """List open connections, optionally only those of one server."""
        endpoint = parse_endpoint(server_url) if server_url else None
        if server_url and endpoint is None:
            return _invalid_url("serverUrl", server_url)
        connections = self.container.registry.get_connections(endpoint)
        return {"success": True, "connections": [_connection_to_dict(c) for c in connections]}

    async def resolve_connection(self, connection_url: str, language_id: Optional[str] = None) -> Dict[str, Any]:
        """Get a ready connection for a server URL, connecting if possible.

        Connections are opened by the host that embeds this server. Without
        one, a server with no open connection fails with a hint.

        Returns `panelUrlFormat` on success; replace <variableTitle> with a
        variable title to build its panel URL.
        """
        endpoint = parse_endpoint(connection_url)
        if endpoint is None:
            return _invalid_url("connectionUrl", connection_url)

        result = await self.container.resolver.resolve(endpoint, language_id)
        if not result.success:
            logger.info(f"resolve_connection({connection_url}) failed: {result.error_message}")
        return result.to_dict()


def create_mcp_server(container: ServiceContainer) -> FastMCP:
    mcp = FastMCP(container.settings.mcp_server_name)
    tools = ServerDockTools(container)

    mcp.add_tool(tools.list_servers, name="list_servers")
    mcp.add_tool(tools.list_connections, name="list_connections")
    mcp.add_tool(tools.resolve_connection, name="resolve_connection")

    return mcp
