"""
Query (worker) provisioning against a gateway client.

A worker is an InteractiveConsole query on the gateway. Creating one is a
two step affair: submit the query, then wait for the server to push a
config update that moves it to a terminal status.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from serverdock.config import Settings, WorkerConfig
from serverdock.endpoint import parse_endpoint
from serverdock.errors import WorkerProvisioningError
from serverdock.gateway.types import (
    EVENT_CONFIG_UPDATED,
    GatewayClient,
    QuerySerial,
    QueryStatus,
    QueryStatusEvent,
    WorkerDescriptor,
)

logger = logging.getLogger(__name__)

INTERACTIVE_CONSOLE_QUERY_TYPE = "InteractiveConsole"
DEFAULT_DB_SERVER_NAME = "Query 1"
DEFAULT_HEAP_SIZE_GB = 4.0


def negotiate_script_language(
    console_type: Optional[str],
    providers: Optional[Iterable[str]],
    default: str,
) -> str:
    """
    Pick the script language for a new worker.

    The requested console type wins if the server offers it (case-insensitive).
    Otherwise the configured default is used, or the server's first provider
    if the default is not offered either.
    """
    available = [p for p in (providers or []) if p]
    requested = console_type.capitalize() if console_type else default

    if not available:
        return requested

    by_lower = {p.lower(): p for p in available}
    if requested.lower() in by_lower:
        return by_lower[requested.lower()]
    if default.lower() in by_lower:
        return by_lower[default.lower()]
    return available[0]


def join_jvm_args(*args: Optional[str]) -> str:
    parts: List[str] = []
    for arg in args:
        for token in (arg or "").split():
            if token not in parts:
                parts.append(token)
    return " ".join(parts)


async def build_draft_query(
    client: GatewayClient,
    settings: Settings,
    worker_config: Optional[WorkerConfig] = None,
    console_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Build an InteractiveConsole query definition with server-derived defaults."""
    worker_config = worker_config or WorkerConfig()

    db_servers, query_constants, config_values, user_info = await asyncio.gather(
        client.get_db_servers(),
        client.get_query_constants(),
        client.get_server_config_values(),
        client.get_user_info(),
    )

    owner = user_info.get("username") or user_info.get("operateAs")

    db_server_name = worker_config.db_server_name
    if db_server_name is None:
        db_server_name = (db_servers[0].get("name") if db_servers else None) or DEFAULT_DB_SERVER_NAME

    heap_size = worker_config.heap_size
    if heap_size is None:
        heap_size = query_constants.get("pqDefaultHeap") or DEFAULT_HEAP_SIZE_GB

    script_language = negotiate_script_language(
        console_type or worker_config.script_language,
        config_values.get("scriptSessionProviders"),
        settings.default_script_language,
    )

    worker_kinds = config_values.get("workerKinds") or []
    worker_kind = worker_kinds[0].get("name") if worker_kinds else None

    auto_delete_timeout_ms = worker_config.auto_delete_timeout_ms or settings.auto_delete_timeout_ms

    return {
        "name": f"serverdock - {uuid.uuid4()}",
        "type": INTERACTIVE_CONSOLE_QUERY_TYPE,
        "owner": owner,
        "enabled": True,
        "dbServerName": db_server_name,
        "heapSize": heap_size,
        "scriptLanguage": script_language,
        # The embedding runtime can only reach workers over websockets.
        "jvmArgs": join_jvm_args(worker_config.jvm_args, settings.worker_jvm_args),
        "jvmProfile": worker_config.jvm_profile or config_values.get("jvmProfileDefault"),
        "workerKind": worker_kind,
        "scheduling": {
            "type": "Temporary",
            "queueName": settings.temporary_queue_name,
            "autoDelete": True,
            "autoDeleteTimeoutMs": auto_delete_timeout_ms,
            "timeZone": config_values.get("timeZone"),
        },
    }


async def create_interactive_console_query(
    client: GatewayClient,
    settings: Settings,
    worker_config: Optional[WorkerConfig] = None,
    console_type: Optional[str] = None,
) -> QuerySerial:
    draft = await build_draft_query(client, settings, worker_config, console_type)
    serial = await client.create_query(draft)
    if not serial:
        raise WorkerProvisioningError("Failed to create query.", {"name": draft["name"]})
    logger.info(f"Created query {serial} ({draft['name']}, {draft['scriptLanguage']})")
    return QuerySerial(serial)


def descriptor_from_event(tag_id: str, serial: QuerySerial, event: QueryStatusEvent) -> WorkerDescriptor:
    designated = event.designated
    grpc_endpoint = parse_endpoint(designated.grpc_url if designated else None)
    if designated is None or grpc_endpoint is None:
        raise WorkerProvisioningError(
            f"Query {serial} is running but reported no worker address",
            {"serial": serial},
        )

    return WorkerDescriptor(
        tag_id=tag_id,
        serial=serial,
        grpc_endpoint=grpc_endpoint,
        ide_endpoint=parse_endpoint(designated.ide_url),
        process_info_id=designated.process_info_id,
        worker_name=designated.worker_name,
    )


async def wait_for_worker(client: GatewayClient, serial: QuerySerial, tag_id: str) -> WorkerDescriptor:
    """
    Wait for a query to reach a terminal status.

    Resolves on the first config update for `serial` whose designated worker
    is Running, Error or Failed. Updates for other serials and non-terminal
    statuses are ignored. The listener is removed as soon as the wait settles.

    Raises:
        WorkerProvisioningError: If the query ends in Error or Failed
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def on_config_updated(payload: Any) -> None:
        if future.done():
            return

        event = QueryStatusEvent.from_payload(payload)
        if event is None or event.serial != serial:
            return

        status = event.status
        if status is None or not status.is_terminal:
            return

        unsubscribe()

        if status is QueryStatus.RUNNING:
            try:
                future.set_result(descriptor_from_event(tag_id, serial, event))
            except WorkerProvisioningError as e:
                future.set_exception(e)
            return

        logger.error(f"Query {serial} entered status {status.value}")
        future.set_exception(
            WorkerProvisioningError(
                f"Query {serial} failed to start ({status.value})",
                {
                    "serial": serial,
                    "status": status.value,
                    "statusDetails": event.designated.status_details if event.designated else None,
                },
            )
        )

    unsubscribe = client.add_event_listener(EVENT_CONFIG_UPDATED, on_config_updated)
    return await future


async def delete_queries(client: GatewayClient, serials: Iterable[QuerySerial]) -> None:
    serial_list = [str(s) for s in serials]
    if not serial_list:
        return
    logger.info(f"Deleting queries: {serial_list}")
    await client.delete_queries(serial_list)

