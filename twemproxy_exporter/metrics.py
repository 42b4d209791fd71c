"""Prometheus metrics sink for the twemproxy exporter."""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from .errors import SinkRegistrationError
from .models.stats import ProxyStats

logger = logging.getLogger(__name__)

NAMESPACE = "twemproxy"

PROXY_LABELS = ("instance",)
SERVER_LABELS = ("instance", "group", "redis_server")

# name -> (help, ProxyStats attribute)
PROXY_METRICS = {
    "total_connections": ("Total connections in twemproxy", "total_connections"),
    "current_connections": ("Current connections in twemproxy", "current_connections"),
    "expected_available": ("Servers declared in the topology", "expected_available"),
    "not_available": ("Declared servers missing or without connections", "not_available"),
}

# name -> (help, ServerStats attribute)
SERVER_METRICS = {
    "in_queue": ("In queue process in redis server", "in_queue"),
    "in_queue_bytes": ("In queue size in redis server", "in_queue_bytes"),
    "eof": ("EOF from redis server", "server_eof"),
    "err": ("Error from redis server", "server_err"),
    "timed_out": ("Timed out in redis server", "server_timedout"),
    "connection": ("Count of server connection to redis server", "server_connections"),
    "ejected_at": ("Ejected at time to redis server", "server_ejected_at"),
}


class MetricsSink:
    """
    Owns the gauge families exported for one proxy.

    Publishing and scraping may happen from different tasks or threads;
    prometheus_client locks each metric child internally.
    """

    def __init__(self, instance: str, registry: CollectorRegistry | None = None):
        self.instance = instance
        self.registry = registry if registry is not None else CollectorRegistry()

        self._proxy_gauges = {
            name: Gauge(
                f"service_{name}", doc, PROXY_LABELS, namespace=NAMESPACE, registry=None
            )
            for name, (doc, _) in PROXY_METRICS.items()
        }
        self._server_gauges = {
            name: Gauge(
                f"server_{name}", doc, SERVER_LABELS, namespace=NAMESPACE, registry=None
            )
            for name, (doc, _) in SERVER_METRICS.items()
        }
        self._poll_errors = Counter(
            "exporter_poll_errors",
            "Failed poll cycles by error kind",
            ("kind",),
            namespace=NAMESPACE,
            registry=None,
        )

    def register(self) -> None:
        """Register every metric family with the registry."""
        collectors = [
            *self._proxy_gauges.values(),
            *self._server_gauges.values(),
            self._poll_errors,
        ]
        for collector in collectors:
            try:
                self.registry.register(collector)
            except ValueError as e:
                raise SinkRegistrationError(f"Cannot register metrics: {e}") from e
        logger.debug("Registered %d metric families", len(collectors))

    def publish(self, stats: ProxyStats) -> None:
        """Set every gauge from one snapshot."""
        for name, (_, attr) in PROXY_METRICS.items():
            self._proxy_gauges[name].labels(self.instance).set(getattr(stats, attr))

        for group, service in stats.services.items():
            for server in service.servers.values():
                for name, (_, attr) in SERVER_METRICS.items():
                    self._server_gauges[name].labels(
                        self.instance, group, server.host_alias
                    ).set(getattr(server, attr))

    def record_error(self, kind: str) -> None:
        self._poll_errors.labels(kind).inc()

    def render(self) -> bytes:
        """Current metrics in the Prometheus text format."""
        return generate_latest(self.registry)
