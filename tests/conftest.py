"""Shared fixtures for the exporter tests."""

import asyncio
from pathlib import Path

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from twemproxy_exporter.config import load_topology
from twemproxy_exporter.metrics import MetricsSink
from twemproxy_exporter.models.topology import Topology

FILES = Path(__file__).parent / "files"


@pytest.fixture
def config_path() -> str:
    return str(FILES / "nutcracker.yml")


@pytest.fixture
def example_payload() -> bytes:
    return (FILES / "example.json").read_bytes()


@pytest.fixture
def topology(config_path: str) -> Topology:
    return load_topology(config_path)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def sink(registry: CollectorRegistry) -> MetricsSink:
    sink = MetricsSink("test-host", registry=registry)
    sink.register()
    return sink


@pytest_asyncio.fixture
async def stats_server():
    """
    Start a local stats port that writes a payload to every peer.

    Yields a function taking the payload and returning the ``host:port``.
    """
    servers: list[asyncio.AbstractServer] = []

    async def start(payload: bytes) -> str:
        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            writer.write(payload)
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        servers.append(server)
        port = server.sockets[0].getsockname()[1]
        return f"127.0.0.1:{port}"

    yield start

    for server in servers:
        server.close()
        await server.wait_closed()
