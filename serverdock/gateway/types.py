"""
Types shared by the gateway (enterprise server) layer.

The gateway wire protocol itself is owned by the remote server; this module
only describes the client surface the worker manager relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, NewType, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from serverdock.endpoint import Endpoint

QuerySerial = NewType("QuerySerial", str)
ConsoleType = Literal["python", "groovy"]

EVENT_CONFIG_UPDATED = "configupdated"


class QueryStatus(str, Enum):
    PENDING = "Pending"
    INITIALIZING = "Initializing"
    RUNNING = "Running"
    ERROR = "Error"
    FAILED = "Failed"
    STOPPED = "Stopped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({QueryStatus.RUNNING, QueryStatus.ERROR, QueryStatus.FAILED})


class DesignatedWorker(BaseModel):
    """The worker the server designated for a query."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Optional[str] = None
    grpc_url: Optional[str] = Field(default=None, alias="grpcUrl")
    ide_url: Optional[str] = Field(default=None, alias="ideUrl")
    process_info_id: Optional[str] = Field(default=None, alias="processInfoId")
    worker_name: Optional[str] = Field(default=None, alias="workerName")
    status_details: Optional[str] = Field(default=None, alias="statusDetails")

    @property
    def query_status(self) -> Optional[QueryStatus]:
        try:
            return QueryStatus(self.status)
        except ValueError:
            return None


class QueryStatusEvent(BaseModel):
    """Payload of a server-pushed query config update."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    serial: Optional[str] = None
    name: Optional[str] = None
    designated: Optional[DesignatedWorker] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["QueryStatusEvent"]:
        """Parse a raw event payload. Returns None if it is not a query config."""
        if isinstance(payload, QueryStatusEvent):
            return payload
        detail = getattr(payload, "detail", payload)
        if not isinstance(detail, dict):
            return None
        try:
            return cls.model_validate(detail)
        except ValueError:
            return None

    @property
    def status(self) -> Optional[QueryStatus]:
        return self.designated.query_status if self.designated else None


@dataclass(frozen=True)
class WorkerDescriptor:
    tag_id: str
    serial: QuerySerial
    grpc_endpoint: Endpoint
    ide_endpoint: Optional[Endpoint]
    process_info_id: Optional[str]
    worker_name: Optional[str]


class FeatureFlags(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    features: Dict[str, bool] = Field(default_factory=dict)
    version: Optional[str] = None

    @property
    def create_query_ui(self) -> Optional[bool]:
        """Whether the server hosts a UI-driven create-query flow (None if unstated)."""
        return self.features.get("createQueryIframe")

    @property
    def embed_dashboards_and_widgets(self) -> bool:
        return self.features.get("embedDashboardsAndWidgets") is True


class GatewayClient(Protocol):
    """Authenticated session with a gateway server."""

    def add_event_listener(self, event_name: str, handler: Callable[[Any], None]) -> Callable[[], None]: ...

    async def get_server_config_values(self) -> Dict[str, Any]: ...

    async def get_query_constants(self) -> Dict[str, Any]: ...

    async def get_db_servers(self) -> List[Dict[str, Any]]: ...

    async def get_user_info(self) -> Dict[str, Any]: ...

    async def create_query(self, query: Dict[str, Any]) -> str: ...

    async def delete_queries(self, serials: List[str]) -> None: ...

    async def get_server_features(self) -> Optional[Dict[str, Any]]: ...

    async def create_auth_token(self, service: str) -> str: ...

    async def get_groups_for_user(self) -> List[str]: ...


class CredentialProvider(Protocol):
    """
    Interactive login collaborator.

    Runs the credential flow for a gateway and, on success, stores the
    authenticated client in the shared client cache.
    """

    async def request_client(self, endpoint: Endpoint, operate_as_another_user: bool) -> None: ...


InteractiveQueryFactory = Callable[[Endpoint, str, Optional[str]], Awaitable[Optional[str]]]
