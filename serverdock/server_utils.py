"""
HTTP helpers for talking to remote servers outside their RPC surface.

Used for liveness probes and for downloading the gateway's API module.
"""

from __future__ import annotations

import logging
from typing import Iterable

import httpx

from serverdock.endpoint import Endpoint

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

CORE_PROBE_PATH = "jsapi/dh-core.js"
GATEWAY_PROBE_PATH = "irisapi/irisapi.nocache.js"
GATEWAY_API_MODULE_PATH = "irisapi/irisapi.nocache.js"

RUNNING_STATUS_CODES = (200, 204)


async def has_status_code(url: str, status_codes: Iterable[int], timeout: float = DEFAULT_TIMEOUT) -> bool:
    """
    GET the url and check its status code against `status_codes`.

    Raises:
        httpx.RequestError: If the server cannot be reached
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url)
        return response.status_code in set(status_codes)


async def download_from_url(url: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """
    Download a resource.

    Raises:
        httpx.HTTPStatusError: On a non-2xx response
        httpx.RequestError: If the server cannot be reached
    """
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPStatusError as e:
            logger.error(f"Download failed for {url}: {e.response.status_code}")
            raise
        except httpx.RequestError as e:
            logger.error(f"Download request failed for {url}: {e}")
            raise


async def is_server_running(endpoint: Endpoint, probe_path: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Probe a well-known resource; unreachable servers count as not running."""
    url = endpoint.join(probe_path)
    try:
        running = await has_status_code(url, RUNNING_STATUS_CODES, timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug(f"Probe failed for {url}: {e}")
        return False
    logger.debug(f"Probe {url}: {'running' if running else 'not running'}")
    return running


async def is_core_server_running(endpoint: Endpoint, timeout: float = DEFAULT_TIMEOUT) -> bool:
    return await is_server_running(endpoint, CORE_PROBE_PATH, timeout)


async def is_gateway_server_running(endpoint: Endpoint, timeout: float = DEFAULT_TIMEOUT) -> bool:
    return await is_server_running(endpoint, GATEWAY_PROBE_PATH, timeout)
