"""
Configuration.

Process settings come from the environment (prefix SERVERDOCK_) via
pydantic-settings. The list of known servers comes from a YAML file with
${VAR} environment substitution.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from serverdock.endpoint import Endpoint

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "serverdock.yaml"


class Settings(BaseSettings):
    log_level: str = "info"
    config_path: str = DEFAULT_CONFIG_PATH
    storage_dir: str = Field(default_factory=lambda: str(Path(tempfile.gettempdir()) / "serverdock"))
    default_script_language: str = "Python"
    temporary_queue_name: str = "InteractiveConsoleTemporaryQueue"
    auto_delete_timeout_ms: int = 600_000
    worker_jvm_args: str = "-Dhttp.websockets=true"
    probe_timeout_seconds: float = 5.0
    download_timeout_seconds: float = 30.0
    mcp_server_name: str = "ServerDock"

    model_config = SettingsConfigDict(
        env_prefix="SERVERDOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# =============================================================================
# Server configuration file
# =============================================================================


class WorkerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    heap_size: Optional[float] = None
    jvm_args: Optional[str] = None
    jvm_profile: Optional[str] = None
    db_server_name: Optional[str] = None
    script_language: Optional[str] = None
    auto_delete_timeout_ms: Optional[int] = None


class _ServerConfigBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    label: Optional[str] = None

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: Any) -> str:
        if isinstance(value, Endpoint):
            return value.origin
        return Endpoint.parse(str(value)).origin

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint.parse(self.url)


class CoreServerConfig(_ServerConfigBase):
    psk: Optional[str] = None


class EnterpriseServerConfig(_ServerConfigBase):
    worker: Optional[WorkerConfig] = None


class ServerConfig(BaseModel):
    core: List[CoreServerConfig] = Field(default_factory=list)
    enterprise: List[EnterpriseServerConfig] = Field(default_factory=list)

    def get_enterprise_server(self, endpoint: Endpoint) -> Optional[EnterpriseServerConfig]:
        for server in self.enterprise:
            if server.endpoint == endpoint:
                return server
        return None


class ServerConfigFile:
    """
    Loads the server list from YAML.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH)

    def load(self) -> ServerConfig:
        """
        Load and validate the server list.

        Returns:
            ServerConfig (empty if the file does not exist)

        Raises:
            ValueError: If an entry is malformed
        """
        if not self.config_path.exists():
            logger.warning(f"Config file not found: {self.config_path}")
            return ServerConfig()

        logger.info(f"Loading server config from {self.config_path}")

        with open(self.config_path, "r") as f:
            raw = yaml.safe_load(f) or {}

        return parse_server_config(substitute_env_vars(raw))


def parse_server_config(raw: Dict[str, Any]) -> ServerConfig:
    servers = raw.get("servers") or {}
    return ServerConfig(
        core=[_normalize_entry(entry) for entry in servers.get("core") or []],
        enterprise=[_normalize_entry(entry) for entry in servers.get("enterprise") or []],
    )


def _normalize_entry(entry: Any) -> Dict[str, Any]:
    # Bare strings are shorthand for {url: ...}
    if isinstance(entry, str):
        return {"url": entry}
    if isinstance(entry, dict):
        return entry
    raise ValueError(f"Invalid server entry: {entry!r}")


def substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment values."""
    if isinstance(obj, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match: re.Match) -> str:
            var_name = match.group(1)
            value = os.environ.get(var_name, "")
            if not value:
                logger.warning(f"Environment variable not set: {var_name}")
            return value

        return re.sub(pattern, replace, obj)

    elif isinstance(obj, dict):
        return {k: substitute_env_vars(v) for k, v in obj.items()}

    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]

    return obj
