"""Server capability detection for gateway servers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from serverdock.gateway.types import FeatureFlags, GatewayClient

logger = logging.getLogger(__name__)

GRADLE_VERSION_REGEX = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:[-.](.+))?$")

# First release that ships the hosted create-query flow.
CREATE_QUERY_UI_MIN_VERSION = (1, 20240517, 237)


@dataclass(frozen=True)
class GradleVersion:
    major: int
    minor: int
    patch: int
    tag: Optional[str] = None

    def as_tuple(self) -> tuple:
        return (self.major, self.minor, self.patch)


def parse_gradle_version(gradle_version: Optional[str]) -> Optional[GradleVersion]:
    """Parse `major.minor.patch[-tag]`. Returns None for anything else."""
    if not gradle_version:
        return None
    match = GRADLE_VERSION_REGEX.match(gradle_version.strip())
    if match is None:
        return None
    major, minor, patch, tag = match.groups()
    return GradleVersion(major=int(major), minor=int(minor), patch=int(patch), tag=tag)


def is_create_query_ui_supported(gradle_version: Optional[str]) -> bool:
    parsed = parse_gradle_version(gradle_version)
    if parsed is None:
        return False
    return parsed.as_tuple() >= CREATE_QUERY_UI_MIN_VERSION


async def fetch_feature_flags(client: GatewayClient) -> Optional[FeatureFlags]:
    """
    Fetch the server's feature flags.

    Best-effort: any failure is logged and None is returned.
    """
    try:
        raw = await client.get_server_features()
    except Exception as e:
        logger.warning(f"Failed to fetch server feature flags: {e}")
        return None

    if raw is None:
        return None

    try:
        return FeatureFlags.model_validate(raw)
    except ValueError as e:
        logger.warning(f"Ignoring malformed server feature flags: {e}")
        return None


async def supports_create_query_ui(client: GatewayClient, flags: Optional[FeatureFlags]) -> bool:
    """Whether worker creation should go through the server-hosted UI flow."""
    if flags is not None and flags.create_query_ui is not None:
        return flags.create_query_ui

    try:
        config_values = await client.get_server_config_values()
    except Exception as e:
        logger.warning(f"Failed to read server config values: {e}")
        return False

    gradle_version = config_values.get("gradleVersion")
    logger.debug(f"Gradle version: {gradle_version}")
    return is_create_query_ui_supported(gradle_version)
