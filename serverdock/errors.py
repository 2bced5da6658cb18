from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ServerDockError(Exception):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details or {}}


# Connection resolution failures are returned to callers, never raised.


@dataclass
class ResolutionError(ServerDockError):
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.hint:
            result["hint"] = self.hint
        return result


class ServerNotFoundError(ResolutionError):
    def __init__(self, url: str, hint: Optional[str] = None):
        super().__init__(
            code="server_not_found",
            message="No connections or server found",
            details={"connectionUrl": url},
            hint=hint,
        )


class ServerNotRunningError(ResolutionError):
    def __init__(self, url: str):
        super().__init__(code="server_not_running", message="Server is not running", details={"connectionUrl": url})


class NoActiveConnectionError(ResolutionError):
    def __init__(self, url: str):
        super().__init__(
            code="no_active_connection",
            message="No active connection",
            details={"connectionUrl": url},
            hint=(
                "Enterprise servers require an interactive login. "
                "Connect to the server explicitly before running code."
            ),
        )


class ConnectionFailedError(ResolutionError):
    def __init__(self, url: str, reason: Optional[str] = None, hint: Optional[str] = None):
        details: Dict[str, Any] = {"connectionUrl": url}
        if reason:
            details["reason"] = reason
        super().__init__(
            code="connection_failed", message="Failed to connect to server", details=details, hint=hint
        )


class UnsupportedConnectionKindError(ResolutionError):
    def __init__(self, url: str):
        super().__init__(
            code="unsupported_connection",
            message="Code execution is only supported for Core / Core+ connections.",
            details={"connectionUrl": url},
        )


# Gateway errors


class ClientInitializationError(ServerDockError):
    def __init__(self, url: str, reason: str = "Client failed to initialize"):
        super().__init__(code="client_initialization_failed", message=reason, details={"serverUrl": url})


class WorkerProvisioningError(ServerDockError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="worker_provisioning_failed", message=message, details=details)


class QueryDeletionError(ServerDockError):
    def __init__(self, serials: list, reason: str):
        super().__init__(
            code="query_deletion_failed",
            message=f"Failed to delete queries: {reason}",
            details={"serials": list(serials)},
        )
