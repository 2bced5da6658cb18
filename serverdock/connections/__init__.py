from serverdock.connections.registry import ServerRegistry, ServerState
from serverdock.connections.resolver import ConnectionResolver, ResolveFailure, ResolveSuccess

__all__ = ["ConnectionResolver", "ResolveFailure", "ResolveSuccess", "ServerRegistry", "ServerState"]
