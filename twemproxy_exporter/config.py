"""Configuration loader for the twemproxy exporter."""

from __future__ import annotations

import logging
import re
import socket
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings

from .errors import ConfigError
from .models.topology import BackendRef, ServicePool, Topology

logger = logging.getLogger(__name__)

DEFAULT_STATS_PORT = 22222

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class Settings(BaseSettings):
    """Environment-based settings."""

    config_path: str = ""
    twemproxy_host: str = f"localhost:{DEFAULT_STATS_PORT}"
    interval: PositiveFloat = 3.0  # seconds
    listen_host: str = "0.0.0.0"
    metrics_port: int = 9500
    metrics_path: str = "/metrics"
    read_buffer_size: PositiveInt = 8192  # at least 8KB
    connect_timeout: Optional[PositiveFloat] = None  # None = wait on the proxy indefinitely
    instance: Optional[str] = None  # defaults to the local hostname
    log_level: str = "INFO"

    class Config:
        env_prefix = "TWEMPROXY_EXPORTER_"
        env_file = ".env"
        env_file_encoding = "utf-8"


def load_yaml_config(path: str) -> Any:
    """Load a YAML document, raising ConfigError on any failure."""
    if not path:
        raise ConfigError("Config path is empty")

    try:
        with open(Path(path)) as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot open: {path}. Error: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse: {path}. Error: {e}") from e


def load_topology(path: str) -> Topology:
    """
    Load the nutcracker YAML and build the topology.

    Each top-level key is a server pool; its ``servers`` entries are
    ``"address"`` or ``"address alias"``. A file that declares no
    servers at all is rejected.
    """
    document = load_yaml_config(path)
    if not isinstance(document, dict) or not document:
        raise ConfigError(f"No server pools declared in {path}")

    services: dict[str, ServicePool] = {}
    for key, record in document.items():
        name = str(key)
        if not isinstance(record, dict):
            raise ConfigError(f"Pool '{name}' must be a mapping")

        entries = record.get("servers") or []
        if not isinstance(entries, list):
            raise ConfigError(f"Pool '{name}': servers must be a list")

        try:
            servers = tuple(BackendRef.parse(str(entry)) for entry in entries)
            services[name] = ServicePool(**{**record, "name": name, "servers": servers})
        except ValueError as e:
            raise ConfigError(f"Invalid pool '{name}' in {path}: {e}") from e

    topology = Topology(services=services)
    if topology.expected_available == 0:
        raise ConfigError("No servers detected in config")

    logger.info(
        "Loaded topology from %s: %d pools, %d servers",
        path,
        len(topology.services),
        topology.expected_available,
    )
    return topology


def parse_address(address: str, default_port: int = DEFAULT_STATS_PORT) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``), filling in the stats port."""
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port = address.partition(":")
    else:
        host, port = address, ""

    try:
        return host or "localhost", int(port) if port else default_port
    except ValueError as e:
        raise ConfigError(f"Invalid twemproxy address: {address}") from e


def parse_interval(value: str) -> float:
    """
    Parse a poll interval into seconds.

    Accepts plain seconds (``"3"``, ``"0.5"``) or duration strings
    such as ``"3s"``, ``"500ms"`` and ``"1m30s"``.
    """
    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        seconds = 0.0
        pos = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos == 0 or pos != len(text):
            raise ConfigError(f"Cannot parse interval {value}")

    if not seconds > 0:
        raise ConfigError(f"Interval must be positive, got {value}")
    return seconds


def resolve_instance(settings: Settings) -> str:
    """Label value identifying this exporter's host."""
    if settings.instance:
        return settings.instance
    try:
        return socket.gethostname() or "unknown_host"
    except OSError:
        return "unknown_host"
