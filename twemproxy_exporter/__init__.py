"""Prometheus exporter for twemproxy (nutcracker) stats."""

__version__ = "1.0.0"
