"""
Gateway (enterprise server) support.

Provides worker provisioning and teardown for gateway servers:
- WorkerLifecycleManager: client session and workers for one gateway
- Query helpers: draft building, readiness wait, deletion
"""

from serverdock.gateway.manager import WorkerLifecycleManager, WorkerLifecycleManagerFactory
from serverdock.gateway.types import FeatureFlags, GatewayClient, QuerySerial, QueryStatus, WorkerDescriptor

__all__ = [
    "FeatureFlags",
    "GatewayClient",
    "QuerySerial",
    "QueryStatus",
    "WorkerDescriptor",
    "WorkerLifecycleManager",
    "WorkerLifecycleManagerFactory",
]
