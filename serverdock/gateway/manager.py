"""
Worker Lifecycle Manager.

Owns one gateway endpoint's authenticated client and the ephemeral workers
(InteractiveConsole queries) provisioned on it.

Every query serial is tracked from the moment the server assigns it until
its deletion is requested, so disposing the manager can clean up workers
that never became ready as well as the ones that did.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Optional, Set

from serverdock.caching.endpoint_cache import EndpointCache
from serverdock.config import ServerConfig, Settings, WorkerConfig
from serverdock.endpoint import Endpoint
from serverdock.errors import ClientInitializationError, QueryDeletionError, ServerDockError, WorkerProvisioningError
from serverdock.gateway.credentials import get_worker_credentials, has_interactive_permission
from serverdock.gateway.features import fetch_feature_flags, supports_create_query_ui
from serverdock.gateway.queries import create_interactive_console_query, delete_queries, wait_for_worker
from serverdock.gateway.types import (
    ConsoleType,
    CredentialProvider,
    FeatureFlags,
    GatewayClient,
    InteractiveQueryFactory,
    QuerySerial,
    WorkerDescriptor,
)

if TYPE_CHECKING:
    from serverdock.caching.resources import ApiModuleCache

logger = logging.getLogger(__name__)


class WorkerLifecycleManager:
    """
    Manages the client session and workers for a single gateway server.

    The manager is bound to its endpoint for its whole lifetime. Instances
    are normally built by WorkerLifecycleManagerFactory and cached per
    endpoint.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        settings: Settings,
        server_config: ServerConfig,
        client_cache: EndpointCache[GatewayClient],
        credentials: CredentialProvider,
        api_module_cache: Optional["ApiModuleCache"] = None,
        interactive_query_factory: Optional[InteractiveQueryFactory] = None,
    ):
        self.endpoint = endpoint
        self._settings = settings
        self._server_config = server_config
        self._client_cache = client_cache
        self._credentials = credentials
        self._api_module_cache = api_module_cache
        self._interactive_query_factory = interactive_query_factory

        self._client_task: Optional[asyncio.Future] = None
        self._client: Optional[GatewayClient] = None
        self._is_connected = False
        self._feature_flags: Optional[FeatureFlags] = None
        self._query_serials: Set[QuerySerial] = set()
        self._worker_directory: EndpointCache[WorkerDescriptor] = EndpointCache()
        self._cleanup_tasks: Set[asyncio.Future] = set()

        self._unsubscribe_client_cache = client_cache.on_did_change(self._on_client_cache_change)

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def query_serials(self) -> FrozenSet[QuerySerial]:
        return frozenset(self._query_serials)

    def get_feature_flags(self) -> Optional[FeatureFlags]:
        return self._feature_flags

    def get_worker_config(self) -> Optional[WorkerConfig]:
        server = self._server_config.get_enterprise_server(self.endpoint)
        return server.worker if server else None

    def get_worker_info(self, worker_endpoint: Endpoint) -> Optional[WorkerDescriptor]:
        return self._worker_directory.get(worker_endpoint)

    def list_workers(self) -> list:
        return list(self._worker_directory.values())

    # =========================
    # Client session
    # =========================

    async def get_client(
        self,
        initialize_if_null: bool,
        operate_as_another_user: bool = False,
    ) -> Optional[GatewayClient]:
        """
        Get the authenticated client.

        Concurrent callers share one initialization. A failed initialization
        is logged and yields None; the next call with `initialize_if_null`
        tries again.

        Args:
            initialize_if_null: Start the login flow if there is no client yet
            operate_as_another_user: Passed through to the credential flow

        Returns:
            The client, or None if absent or initialization failed
        """
        if self._client_task is None:
            if not initialize_if_null:
                return None
            self._client_task = asyncio.ensure_future(self._init_client(operate_as_another_user))

        task = self._client_task
        client = await asyncio.shield(task)
        self._is_connected = client is not None

        if client is None and self._client_task is task:
            self._client_task = None

        return client

    async def _init_client(self, operate_as_another_user: bool) -> Optional[GatewayClient]:
        logger.info(f"Initializing gateway client for {self.endpoint}")
        try:
            if not self._client_cache.has(self.endpoint):
                await self._credentials.request_client(self.endpoint, operate_as_another_user)

            client = self._client_cache.get(self.endpoint)
            if client is None:
                raise ClientInitializationError(self.endpoint.origin, "No client after login")
        except Exception as e:
            logger.error(f"Failed to initialize gateway client for {self.endpoint}: {e}")
            return None

        self._feature_flags = await fetch_feature_flags(client)
        self._client = client
        return client

    def _on_client_cache_change(self, endpoint: Endpoint) -> None:
        if endpoint != self.endpoint:
            return
        # An in-flight login fills the cache itself.
        if self._client_task is None or not self._client_task.done():
            return
        if self._client is not None and self._client_cache.get(endpoint) is self._client:
            return

        logger.debug(f"Gateway client for {self.endpoint} invalidated")
        self._client_task = None
        self._client = None
        self._is_connected = False
        self._feature_flags = None

    async def get_worker_credentials(self) -> Optional[Dict[str, str]]:
        """Login credentials for this gateway's workers, or None without a client."""
        client = await self.get_client(False)
        if client is None:
            return None
        return await get_worker_credentials(client)

    # =========================
    # Workers
    # =========================

    async def create_worker(self, tag_id: str, console_type: Optional[ConsoleType] = None) -> WorkerDescriptor:
        """
        Provision a worker and wait until the server reports it Running.

        Raises:
            WorkerProvisioningError: If the client cannot be initialized, the
                user may not run interactive queries, the query cannot be
                created, or it ends in Error/Failed
        """
        client = await self.get_client(True, False)
        if client is None:
            msg = "Failed to create worker because the gateway client failed to initialize."
            logger.error(msg)
            raise WorkerProvisioningError(msg, {"serverUrl": self.endpoint.origin})

        if not await has_interactive_permission(client):
            msg = "User does not have permission to run interactive queries."
            logger.error(f"{msg} ({self.endpoint})")
            raise WorkerProvisioningError(msg, {"serverUrl": self.endpoint.origin})

        serial = await self._create_query(client, tag_id, console_type)
        self._query_serials.add(serial)

        try:
            descriptor = await wait_for_worker(client, serial, tag_id)
        except WorkerProvisioningError:
            self._schedule_cleanup(client, serial)
            raise

        self._worker_directory.set(descriptor.grpc_endpoint, descriptor)
        logger.info(f"Worker {descriptor.worker_name or serial} running at {descriptor.grpc_endpoint}")
        return descriptor

    async def _create_query(
        self, client: GatewayClient, tag_id: str, console_type: Optional[ConsoleType]
    ) -> QuerySerial:
        try:
            if self._api_module_cache is not None:
                await self._api_module_cache.get(self.endpoint)

            if self._interactive_query_factory is not None and await supports_create_query_ui(
                client, self._feature_flags
            ):
                serial = await self._interactive_query_factory(self.endpoint, tag_id, console_type)
            else:
                serial = await create_interactive_console_query(
                    client,
                    self._settings,
                    self.get_worker_config(),
                    console_type,
                )
        except ServerDockError:
            raise
        except Exception as e:
            logger.error(f"Failed to create query on {self.endpoint}: {e}")
            raise WorkerProvisioningError(f"Failed to create query: {e}", {"serverUrl": self.endpoint.origin}) from e

        if not serial:
            raise WorkerProvisioningError("Failed to create query.", {"serverUrl": self.endpoint.origin})

        return QuerySerial(serial)

    def _schedule_cleanup(self, client: GatewayClient, serial: QuerySerial) -> None:
        task = asyncio.ensure_future(self._cleanup_failed_query(client, serial))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _cleanup_failed_query(self, client: GatewayClient, serial: QuerySerial) -> None:
        try:
            await delete_queries(client, [serial])
        except Exception as e:
            logger.warning(str(QueryDeletionError([serial], str(e))))
            return
        self._query_serials.discard(serial)

    async def delete_worker(self, worker_endpoint: Endpoint) -> None:
        """Delete a worker created by this manager. Unknown endpoints are ignored."""
        descriptor = self._worker_directory.get(worker_endpoint)
        if descriptor is None:
            return

        self._query_serials.discard(descriptor.serial)
        self._worker_directory.delete(worker_endpoint)

        await self._dispose_queries([descriptor.serial])

    async def _dispose_queries(self, serials: Iterable[QuerySerial]) -> None:
        serial_list = list(serials)
        if not serial_list:
            return

        # Never log in just to delete.
        client = await self.get_client(False)
        if client is None:
            logger.warning(f"No gateway client for {self.endpoint}; cannot delete {serial_list}")
            return

        try:
            await delete_queries(client, serial_list)
        except Exception as e:
            logger.warning(str(QueryDeletionError(serial_list, str(e))))

    async def dispose(self) -> None:
        """Delete every tracked query in one batch and release the manager."""
        logger.info(f"Disposing worker manager for {self.endpoint} ({len(self._query_serials)} queries)")

        self._unsubscribe_client_cache()

        serials = list(self._query_serials)
        self._query_serials.clear()

        await asyncio.gather(
            self._worker_directory.dispose(),
            self._dispose_queries(serials),
        )

        if self._cleanup_tasks:
            await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)


class WorkerLifecycleManagerFactory:
    """Builds managers that share the same collaborators."""

    def __init__(
        self,
        settings: Settings,
        server_config: ServerConfig,
        client_cache: EndpointCache[GatewayClient],
        credentials: CredentialProvider,
        api_module_cache: Optional["ApiModuleCache"] = None,
        interactive_query_factory: Optional[InteractiveQueryFactory] = None,
    ):
        self.settings = settings
        self.server_config = server_config
        self.client_cache = client_cache
        self.credentials = credentials
        self.api_module_cache = api_module_cache
        self.interactive_query_factory = interactive_query_factory

    def create(self, endpoint: Endpoint) -> WorkerLifecycleManager:
        return WorkerLifecycleManager(
            endpoint,
            self.settings,
            self.server_config,
            self.client_cache,
            self.credentials,
            api_module_cache=self.api_module_cache,
            interactive_query_factory=self.interactive_query_factory,
        )
