"""
Shared pytest fixtures for ServerDock tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from serverdock.caching.resources import GatewayClientCache
from serverdock.config import ServerConfig, Settings
from serverdock.endpoint import Endpoint

from tests.utils.fakes import FakeCredentialProvider, FakeGatewayClient


# ==================== Fixtures ====================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(storage_dir=str(tmp_path / "storage"), config_path=str(tmp_path / "serverdock.yaml"))


@pytest.fixture
def gateway_endpoint() -> Endpoint:
    return Endpoint.parse("https://gateway.example.com:8123")


@pytest.fixture
def gateway_client() -> FakeGatewayClient:
    return FakeGatewayClient()


@pytest.fixture
def client_cache() -> GatewayClientCache:
    return GatewayClientCache()


@pytest.fixture
def credentials(client_cache: GatewayClientCache, gateway_client: FakeGatewayClient) -> FakeCredentialProvider:
    return FakeCredentialProvider(client_cache, gateway_client)


@pytest.fixture
def server_config(gateway_endpoint: Endpoint) -> ServerConfig:
    return ServerConfig.model_validate(
        {
            "core": [{"url": "http://localhost:10000", "label": "Local"}],
            "enterprise": [{"url": gateway_endpoint.origin, "label": "Gateway"}],
        }
    )
