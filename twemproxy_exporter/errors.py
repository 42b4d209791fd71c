"""Error types raised by the exporter."""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigError(ExporterError):
    """Topology file missing, unreadable, malformed, or without servers."""


class SinkRegistrationError(ExporterError):
    """The metrics sink could not register its metric families."""


class TransportError(ExporterError):
    """Connecting to or reading from the stats port failed."""


class MalformedPayload(ExporterError):
    """The stats payload is not a valid JSON object."""


class MissingField(ExporterError):
    """A mandatory field is absent from the payload or has the wrong kind."""

    def __init__(self, field: str, expected: str):
        self.field = field
        self.expected = expected
        super().__init__(f"missing or invalid field '{field}' (expected {expected})")
