"""
Unit tests for serverdock/gateway/queries.py - Query provisioning helpers.
"""

import asyncio
import re

import pytest

from serverdock.config import WorkerConfig
from serverdock.endpoint import Endpoint
from serverdock.errors import WorkerProvisioningError
from serverdock.gateway.credentials import get_worker_credentials, has_interactive_permission
from serverdock.gateway.queries import (
    build_draft_query,
    create_interactive_console_query,
    delete_queries,
    join_jvm_args,
    negotiate_script_language,
    wait_for_worker,
)
from serverdock.gateway.types import EVENT_CONFIG_UPDATED, QueryStatusEvent

from tests.utils.fakes import FakeGatewayClient


class TestNegotiateScriptLanguage:
    """Tests for negotiate_script_language."""

    def test_requested_type_offered(self):
        assert negotiate_script_language("groovy", ["Python", "Groovy"], "Python") == "Groovy"

    def test_requested_type_not_offered(self):
        """Test the default is used if the requested type is missing."""
        assert negotiate_script_language("groovy", ["Python"], "Python") == "Python"

    def test_default_not_offered(self):
        """Test the first provider is used as a last resort."""
        assert negotiate_script_language(None, ["Groovy"], "Python") == "Groovy"

    def test_no_providers(self):
        assert negotiate_script_language("groovy", None, "Python") == "Groovy"
        assert negotiate_script_language(None, [], "Python") == "Python"


class TestJoinJvmArgs:
    def test_join_dedupes(self):
        assert join_jvm_args("-Xss2m -Dhttp.websockets=true", "-Dhttp.websockets=true") == (
            "-Xss2m -Dhttp.websockets=true"
        )

    def test_join_skips_none(self):
        assert join_jvm_args(None, "-Dhttp.websockets=true") == "-Dhttp.websockets=true"


class TestBuildDraftQuery:
    """Tests for build_draft_query."""

    @pytest.mark.asyncio
    async def test_server_defaults(self, gateway_client, settings):
        """Test defaults come from the server when nothing is configured."""
        draft = await build_draft_query(gateway_client, settings)

        assert re.fullmatch(r"serverdock - [0-9a-f-]{36}", draft["name"])
        assert draft["type"] == "InteractiveConsole"
        assert draft["owner"] == "analyst"
        assert draft["dbServerName"] == "AutoQuery"
        assert draft["heapSize"] == 2.0
        assert draft["scriptLanguage"] == "Python"
        assert draft["jvmArgs"] == "-Dhttp.websockets=true"
        assert draft["jvmProfile"] == "Default"
        assert draft["workerKind"] == "DeephavenCommunity"
        assert draft["scheduling"] == {
            "type": "Temporary",
            "queueName": "InteractiveConsoleTemporaryQueue",
            "autoDelete": True,
            "autoDeleteTimeoutMs": 600_000,
            "timeZone": "America/New_York",
        }

    @pytest.mark.asyncio
    async def test_worker_config_overrides(self, gateway_client, settings):
        """Test configured worker settings win over server defaults."""
        worker = WorkerConfig(
            heap_size=8,
            jvm_args="-Xss2m",
            jvm_profile="Large",
            db_server_name="Query 2",
            auto_delete_timeout_ms=1000,
        )

        draft = await build_draft_query(gateway_client, settings, worker, "groovy")

        assert draft["heapSize"] == 8
        assert draft["jvmArgs"] == "-Xss2m -Dhttp.websockets=true"
        assert draft["jvmProfile"] == "Large"
        assert draft["dbServerName"] == "Query 2"
        assert draft["scriptLanguage"] == "Groovy"
        assert draft["scheduling"]["autoDeleteTimeoutMs"] == 1000

    @pytest.mark.asyncio
    async def test_fallback_constants(self, settings):
        """Test built-in defaults when the server reports nothing."""
        client = FakeGatewayClient()
        client.db_servers = []
        client.query_constants = {}

        draft = await build_draft_query(client, settings)

        assert draft["dbServerName"] == "Query 1"
        assert draft["heapSize"] == 4.0


class TestCreateInteractiveConsoleQuery:
    @pytest.mark.asyncio
    async def test_returns_serial(self, gateway_client, settings):
        serial = await create_interactive_console_query(gateway_client, settings)

        assert serial == "1001"
        assert len(gateway_client.created) == 1

    @pytest.mark.asyncio
    async def test_empty_serial_raises(self, gateway_client, settings):
        async def no_serial(query):
            return ""

        gateway_client.create_query = no_serial

        with pytest.raises(WorkerProvisioningError, match="Failed to create query"):
            await create_interactive_console_query(gateway_client, settings)


class TestWaitForWorker:
    """Tests for wait_for_worker."""

    @pytest.mark.asyncio
    async def test_resolves_on_running(self, gateway_client):
        """Test Running resolves with the worker descriptor."""
        waiter = asyncio.ensure_future(wait_for_worker(gateway_client, "1001", "tag"))
        await asyncio.sleep(0)

        gateway_client.push_status(
            "1001",
            "Running",
            grpc_url="grpcs://worker-1.example.com:9443",
            ideUrl="https://worker-1.example.com:9443/ide",
            processInfoId="pi-1",
            workerName="worker_1",
        )
        descriptor = await waiter

        assert descriptor.serial == "1001"
        assert descriptor.tag_id == "tag"
        assert descriptor.grpc_endpoint == Endpoint.parse("grpcs://worker-1.example.com:9443")
        assert descriptor.ide_endpoint == Endpoint.parse("https://worker-1.example.com:9443")
        assert descriptor.process_info_id == "pi-1"
        assert descriptor.worker_name == "worker_1"
        assert gateway_client.events.listener_count(EVENT_CONFIG_UPDATED) == 0

    @pytest.mark.asyncio
    async def test_ignores_other_serials_and_pending(self, gateway_client):
        """Test unrelated and non-terminal updates do not settle the wait."""
        waiter = asyncio.ensure_future(wait_for_worker(gateway_client, "1001", "tag"))
        await asyncio.sleep(0)

        gateway_client.push_status("9999", "Running", grpc_url="grpc://other:1")
        gateway_client.push_status("1001", "Pending")
        gateway_client.push_status("1001", "Initializing")
        gateway_client.events.dispatch_event(EVENT_CONFIG_UPDATED, "garbage")
        await asyncio.sleep(0)

        assert waiter.done() is False
        assert gateway_client.events.listener_count(EVENT_CONFIG_UPDATED) == 1

        gateway_client.push_status("1001", "Running", grpc_url="grpc://worker:1")
        await waiter

    @pytest.mark.parametrize("status", ["Error", "Failed"])
    @pytest.mark.asyncio
    async def test_rejects_on_failure(self, gateway_client, status):
        """Test Error and Failed reject and unsubscribe."""
        waiter = asyncio.ensure_future(wait_for_worker(gateway_client, "1001", "tag"))
        await asyncio.sleep(0)

        gateway_client.push_status("1001", status, statusDetails="out of heap")

        with pytest.raises(WorkerProvisioningError) as exc_info:
            await waiter

        assert exc_info.value.details["status"] == status
        assert exc_info.value.details["statusDetails"] == "out of heap"
        assert gateway_client.events.listener_count(EVENT_CONFIG_UPDATED) == 0

    @pytest.mark.asyncio
    async def test_running_without_address_rejects(self, gateway_client):
        waiter = asyncio.ensure_future(wait_for_worker(gateway_client, "1001", "tag"))
        await asyncio.sleep(0)

        gateway_client.push_status("1001", "Running")

        with pytest.raises(WorkerProvisioningError, match="no worker address"):
            await waiter

    @pytest.mark.asyncio
    async def test_detail_wrapped_payload(self, gateway_client):
        """Test payloads carried on a `detail` attribute are unwrapped."""

        class Wrapped:
            detail = {"serial": 1001, "designated": {"status": "Running", "grpcUrl": "grpc://w:1"}}

        waiter = asyncio.ensure_future(wait_for_worker(gateway_client, "1001", "tag"))
        await asyncio.sleep(0)

        gateway_client.events.dispatch_event(EVENT_CONFIG_UPDATED, Wrapped())
        descriptor = await waiter

        assert descriptor.grpc_endpoint == Endpoint.parse("grpc://w:1")


class TestQueryStatusEvent:
    def test_from_payload_invalid(self):
        assert QueryStatusEvent.from_payload(None) is None
        assert QueryStatusEvent.from_payload({"designated": "bad"}) is None

    def test_unknown_status(self):
        event = QueryStatusEvent.from_payload({"serial": "1", "designated": {"status": "Weird"}})
        assert event.status is None


class TestDeleteQueries:
    @pytest.mark.asyncio
    async def test_delete(self, gateway_client):
        await delete_queries(gateway_client, ["1", "2"])
        assert gateway_client.deleted == [["1", "2"]]

    @pytest.mark.asyncio
    async def test_delete_empty_makes_no_request(self, gateway_client):
        await delete_queries(gateway_client, [])
        assert gateway_client.deleted == []


class TestCredentials:
    @pytest.mark.asyncio
    async def test_worker_credentials(self, gateway_client):
        credentials = await get_worker_credentials(gateway_client)
        assert credentials == {
            "type": "io.deephaven.proto.auth.Token",
            "token": "token-for-RemoteQueryProcessor",
        }

    @pytest.mark.asyncio
    async def test_interactive_permission(self, gateway_client):
        assert await has_interactive_permission(gateway_client) is True

        gateway_client.groups = ["deephaven-noninteractive"]
        assert await has_interactive_permission(gateway_client) is False

        gateway_client.groups = ["deephaven-noninteractive", "iris-superusers"]
        assert await has_interactive_permission(gateway_client) is True
