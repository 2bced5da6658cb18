"""Credential helpers for gateway-provisioned workers."""

from __future__ import annotations

from typing import Dict

from serverdock.gateway.types import GatewayClient

WORKER_TOKEN_SERVICE = "RemoteQueryProcessor"
WORKER_TOKEN_TYPE = "io.deephaven.proto.auth.Token"

GROUP_NON_INTERACTIVE = "deephaven-noninteractive"
GROUP_SUPERUSERS = "iris-superusers"


async def get_worker_credentials(client: GatewayClient) -> Dict[str, str]:
    """Create login credentials a worker session accepts."""
    token = await client.create_auth_token(WORKER_TOKEN_SERVICE)
    return {"type": WORKER_TOKEN_TYPE, "token": token}


async def has_interactive_permission(client: GatewayClient) -> bool:
    """Superusers always may; everyone else unless in the non-interactive group."""
    groups = await client.get_groups_for_user()
    return GROUP_SUPERUSERS in groups or GROUP_NON_INTERACTIVE not in groups
