"""
Endpoint identity for remote servers.

An Endpoint is the (scheme, host, port) triple that identifies one remote
server or worker. It is immutable and only ever used as a lookup key.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "grpc": 80,
    "grpcs": 443,
}

LOOPBACK_HOSTNAMES = {"localhost", "localhost.localdomain"}


@dataclass(frozen=True)
class Endpoint:
    scheme: str
    host: str
    port: int

    @classmethod
    def parse(cls, text: str) -> "Endpoint":
        """
        Parse `scheme://host[:port][/path]` into an Endpoint.

        Any path, query or fragment is dropped. A missing port falls back to
        the scheme's default port.

        Raises:
            ValueError: If the text is not a supported absolute URL
        """
        if not isinstance(text, str) or not text.strip():
            raise ValueError("Endpoint URL must be a non-empty string")

        parts = urlsplit(text.strip())
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported endpoint scheme: {text}")

        host = (parts.hostname or "").lower()
        if not host:
            raise ValueError(f"Endpoint URL has no host: {text}")

        try:
            port = parts.port
        except ValueError as e:
            raise ValueError(f"Invalid port in endpoint URL: {text}") from e

        return cls(scheme=scheme, host=host, port=port or DEFAULT_PORTS[scheme])

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if DEFAULT_PORTS.get(self.scheme) == self.port:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"

    @property
    def is_loopback(self) -> bool:
        if self.host in LOOPBACK_HOSTNAMES:
            return True
        try:
            return ipaddress.ip_address(self.host).is_loopback
        except ValueError:
            return False

    @property
    def directory_name(self) -> str:
        """Filesystem-safe name for per-endpoint storage."""
        return f"{self.host}:{self.port}".replace(".", "_").replace(":", "_")

    def join(self, path: str) -> str:
        return f"{self.origin}/{path.lstrip('/')}"

    def __str__(self) -> str:
        return self.origin


def parse_endpoint(text: Optional[str]) -> Optional[Endpoint]:
    """Parse an endpoint, returning None instead of raising on bad input."""
    if text is None:
        return None
    try:
        return Endpoint.parse(text)
    except ValueError:
        return None
