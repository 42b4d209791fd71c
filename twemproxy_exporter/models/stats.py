"""Stats snapshot models for the exporter."""

from pydantic import BaseModel, ConfigDict


class ServerStats(BaseModel):
    """Counters reported for one backend server."""

    model_config = ConfigDict(frozen=True)

    host: str  # resolved host key
    host_alias: str  # label value used on export

    server_eof: float = 0.0
    server_err: float = 0.0
    server_timedout: float = 0.0
    server_connections: float = 0.0
    server_ejected_at: float = 0.0  # epoch microseconds, 0 if never ejected

    requests: float = 0.0
    request_bytes: float = 0.0
    responses: float = 0.0
    response_bytes: float = 0.0
    in_queue: float = 0.0
    in_queue_bytes: float = 0.0
    out_queue: float = 0.0
    out_queue_bytes: float = 0.0


class ServiceStats(BaseModel):
    """Counters reported for one server pool."""

    model_config = ConfigDict(frozen=True)

    name: str
    client_eof: float = 0.0
    client_err: float = 0.0
    client_connections: float = 0.0
    server_ejects: float = 0.0
    forward_error: float = 0.0
    fragments: float = 0.0

    # Availability against the declared topology
    expected_available: int = 0
    not_available: int = 0

    servers: dict[str, ServerStats] = {}


class ProxyStats(BaseModel):
    """One translated stats snapshot of the proxy."""

    model_config = ConfigDict(frozen=True)

    service: str
    source: str
    total_connections: float = 0.0
    current_connections: float = 0.0

    expected_available: int = 0
    not_available: int = 0

    services: dict[str, ServiceStats] = {}
