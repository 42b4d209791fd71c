"""
Stats Translator

Turns one raw twemproxy stats document into a typed ProxyStats snapshot,
checked against the declared topology. Every declared server is classified
as reporting or missing, and as connected or not, at both the pool and the
proxy level.
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import MalformedPayload, MissingField
from ..models.stats import ProxyStats, ServerStats, ServiceStats
from ..models.topology import ServicePool, Topology

# Pool-level counters, all mandatory
SERVICE_FIELDS = (
    "client_eof",
    "client_err",
    "client_connections",
    "server_ejects",
    "forward_error",
    "fragments",
)

# Server-level counters, absent ones read as zero
SERVER_FIELDS = (
    "server_eof",
    "server_err",
    "server_timedout",
    "server_connections",
    "server_ejected_at",
    "requests",
    "request_bytes",
    "responses",
    "response_bytes",
    "in_queue",
    "in_queue_bytes",
    "out_queue",
    "out_queue_bytes",
)

_KINDS: dict[str, type | tuple[type, ...]] = {
    "number": (int, float),
    "string": str,
    "object": dict,
}

_REQUIRED = object()


def _field(
    document: dict[str, Any],
    key: str,
    kind: str,
    scope: str = "",
    default: Any = _REQUIRED,
) -> Any:
    """
    Read one field of the stats document.

    Raises MissingField when the field is absent and no default is given,
    or when it is present with the wrong kind. Numbers come back as float;
    JSON booleans are not numbers here.
    """
    name = f"{scope}.{key}" if scope else key
    if key not in document:
        if default is _REQUIRED:
            raise MissingField(name, kind)
        return default

    value = document[key]
    if isinstance(value, bool) or not isinstance(value, _KINDS[kind]):
        raise MissingField(name, kind)
    return float(value) if kind == "number" else value


def _parse(raw: bytes) -> dict[str, Any]:
    try:
        document = json.loads(raw)
    except ValueError as e:
        raise MalformedPayload(str(e)) from e

    if not isinstance(document, dict):
        raise MalformedPayload(f"expected a JSON object, got {type(document).__name__}")
    return document


def _translate_service(pool: ServicePool, block: dict[str, Any]) -> ServiceStats:
    counters = {key: _field(block, key, "number", pool.name) for key in SERVICE_FIELDS}

    servers: dict[str, ServerStats] = {}
    not_available = 0
    for backend in pool.servers:
        host = backend.host_key
        if host not in block:
            not_available += 1
            continue

        scope = f"{pool.name}.{host}"
        entry = _field(block, host, "object", pool.name)
        server = ServerStats(
            host=host,
            host_alias=host,
            **{key: _field(entry, key, "number", scope, 0.0) for key in SERVER_FIELDS},
        )
        servers[host] = server

        # Reporting, but the proxy holds no connection to it
        if server.server_connections < 1:
            not_available += 1

    return ServiceStats(
        name=pool.name,
        expected_available=len(pool.servers),
        not_available=not_available,
        servers=servers,
        **counters,
    )


def translate(raw: bytes, topology: Topology) -> ProxyStats:
    """
    Translate one stats payload against the topology.

    A pool with no block in the payload still counts its servers as
    expected, but none of them as unavailable: it is treated as not yet
    reporting. A pool that is present reports every declared server it
    lacks, or that has no connection, as unavailable.

    Raises:
        MalformedPayload: ``raw`` is not a JSON object.
        MissingField: a mandatory proxy or pool field is absent or mistyped.
    """
    document = _parse(raw)

    service = _field(document, "service", "string")
    source = _field(document, "source", "string")
    total_connections = _field(document, "total_connections", "number")
    current_connections = _field(document, "curr_connections", "number")

    services: dict[str, ServiceStats] = {}
    for name, pool in topology.services.items():
        if name not in document:
            continue
        block = _field(document, name, "object")
        services[name] = _translate_service(pool, block)

    return ProxyStats(
        service=service,
        source=source,
        total_connections=total_connections,
        current_connections=current_connections,
        expected_available=topology.expected_available,
        not_available=sum(s.not_available for s in services.values()),
        services=services,
    )
