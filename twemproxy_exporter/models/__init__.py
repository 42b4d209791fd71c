# Pydantic models
from .stats import ProxyStats, ServerStats, ServiceStats
from .topology import BackendRef, ServicePool, Topology

__all__ = [
    "ProxyStats",
    "ServerStats",
    "ServiceStats",
    "BackendRef",
    "ServicePool",
    "Topology",
]
