"""Topology models for the exporter."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class BackendRef(BaseModel):
    """One server line of a pool, e.g. ``127.0.0.1:6379:1 cache1``."""

    model_config = ConfigDict(frozen=True)

    address: str
    alias: Optional[str] = None

    @property
    def host_key(self) -> str:
        """Key the proxy reports this server under."""
        return self.alias or self.address

    @classmethod
    def parse(cls, entry: str) -> "BackendRef":
        parts = entry.split()
        if not parts:
            raise ValueError("empty server entry")
        alias = parts[1] if len(parts) > 1 else None
        return cls(address=parts[0], alias=alias)


class ServicePool(BaseModel):
    """A nutcracker server pool as declared in the topology file."""

    model_config = ConfigDict(frozen=True)

    name: str
    listen: Optional[str] = None
    hash: str
    hash_tag: str = ""
    distribution: str
    auto_eject_hosts: bool
    timeout: int
    protocol: Optional[str] = None
    redis: bool = False
    servers: tuple[BackendRef, ...] = ()


class Topology(BaseModel):
    """All pools declared for one proxy."""

    model_config = ConfigDict(frozen=True)

    services: dict[str, ServicePool] = {}

    @property
    def expected_available(self) -> int:
        return sum(len(pool.servers) for pool in self.services.values())
