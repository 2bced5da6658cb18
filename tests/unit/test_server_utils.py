"""
Unit tests for serverdock/server_utils.py - HTTP probes and downloads.
"""

import httpx
import pytest
from unittest.mock import patch

from serverdock.endpoint import Endpoint
from serverdock.server_utils import (
    download_from_url,
    has_status_code,
    is_core_server_running,
    is_gateway_server_running,
)

REAL_ASYNC_CLIENT = httpx.AsyncClient


def mock_http(handler):
    """Patch httpx.AsyncClient so every request goes to `handler`."""

    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return patch("serverdock.server_utils.httpx.AsyncClient", side_effect=factory)


@pytest.fixture
def core() -> Endpoint:
    return Endpoint.parse("http://localhost:10000")


class TestHasStatusCode:
    @pytest.mark.asyncio
    async def test_match(self):
        with mock_http(lambda request: httpx.Response(204)):
            assert await has_status_code("http://localhost/x", [200, 204]) is True

    @pytest.mark.asyncio
    async def test_no_match(self):
        with mock_http(lambda request: httpx.Response(404)):
            assert await has_status_code("http://localhost/x", [200]) is False


class TestIsServerRunning:
    """Tests for the liveness probes."""

    @pytest.mark.asyncio
    async def test_core_probe_path(self, core):
        """Test the core probe requests the JS API."""
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200)

        with mock_http(handler):
            assert await is_core_server_running(core) is True

        assert seen == ["http://localhost:10000/jsapi/dh-core.js"]

    @pytest.mark.asyncio
    async def test_gateway_probe_path(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200)

        with mock_http(handler):
            assert await is_gateway_server_running(Endpoint.parse("https://gw.example.com:8123")) is True

        assert seen == ["/irisapi/irisapi.nocache.js"]

    @pytest.mark.asyncio
    async def test_not_running_on_error_status(self, core):
        with mock_http(lambda request: httpx.Response(503)):
            assert await is_core_server_running(core) is False

    @pytest.mark.asyncio
    async def test_not_running_when_unreachable(self, core):
        """Test connection errors count as not running."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with mock_http(handler):
            assert await is_core_server_running(core) is False


class TestDownloadFromUrl:
    @pytest.mark.asyncio
    async def test_download(self):
        with mock_http(lambda request: httpx.Response(200, content=b"module")):
            assert await download_from_url("https://gw/irisapi/irisapi.nocache.js") == b"module"

    @pytest.mark.asyncio
    async def test_download_error_status(self):
        with mock_http(lambda request: httpx.Response(404)):
            with pytest.raises(httpx.HTTPStatusError):
                await download_from_url("https://gw/missing.js")

    @pytest.mark.asyncio
    async def test_download_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with mock_http(handler):
            with pytest.raises(httpx.RequestError):
                await download_from_url("https://gw/irisapi/irisapi.nocache.js")
