"""Tests for the poll driver and its scheduler."""

import asyncio
import socket

import pytest
import pytest_asyncio

from twemproxy_exporter.polling.scheduler import PollDriver, PollingScheduler, PollState

from tests.factories import make_payload


def _closed_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _errors(registry, kind: str) -> float:
    return registry.get_sample_value(
        "twemproxy_exporter_poll_errors_total", {"kind": kind}
    ) or 0.0


def _total_connections(registry) -> float | None:
    return registry.get_sample_value(
        "twemproxy_service_total_connections", {"instance": "test-host"}
    )


@pytest.mark.asyncio
async def test_tick_publishes_snapshot(stats_server, example_payload, topology, sink, registry) -> None:
    address = await stats_server(example_payload)
    driver = PollDriver(topology, sink, address)

    assert await driver.tick() is True

    assert driver.state is PollState.IDLE
    assert driver.last_stats is not None
    assert driver.last_stats.source == "proxy-01"
    assert driver.last_success is not None
    assert driver.last_error is None
    assert _total_connections(registry) == 1532.0


@pytest.mark.asyncio
async def test_connect_failure_aborts_tick(topology, sink, registry) -> None:
    driver = PollDriver(topology, sink, f"127.0.0.1:{_closed_port()}")

    assert await driver.tick() is False

    assert driver.state is PollState.IDLE
    assert driver.last_stats is None
    assert "Cannot connect" in driver.last_error
    assert driver.consecutive_failures == 1
    assert _errors(registry, "transport") == 1.0
    assert _total_connections(registry) is None


@pytest.mark.asyncio
async def test_empty_reply_is_a_transport_error(stats_server, topology, sink, registry) -> None:
    driver = PollDriver(topology, sink, await stats_server(b""))

    assert await driver.tick() is False
    assert _errors(registry, "transport") == 1.0


@pytest.mark.asyncio
async def test_failed_tick_keeps_last_published_values(
    stats_server, example_payload, topology, sink, registry
) -> None:
    good = PollDriver(topology, sink, await stats_server(example_payload))
    assert await good.tick() is True

    bad = PollDriver(topology, sink, await stats_server(b"{not json"))
    assert await bad.tick() is False

    assert _errors(registry, "malformed_payload") == 1.0
    assert _total_connections(registry) == 1532.0


@pytest.mark.asyncio
async def test_missing_field_aborts_tick(stats_server, topology, sink, registry) -> None:
    # alpha block present but without its pool counters
    payload = make_payload(alpha={"cache2": {"server_connections": 1}})
    driver = PollDriver(topology, sink, await stats_server(payload))

    assert await driver.tick() is False

    assert "alpha.client_eof" in driver.last_error
    assert _errors(registry, "missing_field") == 1.0
    assert _total_connections(registry) is None


@pytest.mark.asyncio
async def test_oversized_payload_is_truncated(stats_server, example_payload, topology, sink, registry) -> None:
    address = await stats_server(example_payload)
    driver = PollDriver(topology, sink, address, read_buffer_size=64)

    assert await driver.tick() is False
    assert _errors(registry, "malformed_payload") == 1.0


@pytest.mark.asyncio
async def test_success_resets_failure_count(stats_server, example_payload, topology, sink) -> None:
    driver = PollDriver(topology, sink, f"127.0.0.1:{_closed_port()}")
    await driver.tick()
    await driver.tick()
    assert driver.consecutive_failures == 2

    driver.address = await stats_server(example_payload)
    assert await driver.tick() is True

    assert driver.consecutive_failures == 0
    assert driver.last_error is None


@pytest.mark.asyncio
async def test_scheduler_start_and_stop(stats_server, example_payload, topology, sink) -> None:
    driver = PollDriver(topology, sink, await stats_server(example_payload))
    scheduler = PollingScheduler(driver, interval=60)

    scheduler.start()
    assert scheduler.running is True

    assert await scheduler.poll_now() is True

    await scheduler.stop()
    assert scheduler.running is False
    assert driver.state is PollState.IDLE


@pytest.mark.asyncio
async def test_stop_without_start(topology, sink) -> None:
    scheduler = PollingScheduler(PollDriver(topology, sink, "localhost:22222"), interval=3)

    await scheduler.stop()

    assert scheduler.running is False


class SlowStatsPort:
    """Stats port that holds each peer before replying, counting overlaps."""

    def __init__(self, payload: bytes, delay: float):
        self.payload = payload
        self.delay = delay
        self.connections = 0
        self.active = 0
        self.peak = 0
        self.server: asyncio.AbstractServer | None = None

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            writer.write(self.payload)
            await writer.drain()
        finally:
            self.active -= 1
            writer.close()

    async def start(self) -> str:
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        return f"127.0.0.1:{self.server.sockets[0].getsockname()[1]}"


@pytest_asyncio.fixture
async def slow_stats_port(example_payload):
    port = SlowStatsPort(example_payload, delay=0.2)
    address = await port.start()
    yield port, address
    port.server.close()
    await port.server.wait_closed()


async def _wait_for_state(driver: PollDriver, state: PollState) -> None:
    for _ in range(200):
        if driver.state is state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"driver never reached {state}")


@pytest.mark.asyncio
async def test_ticks_never_overlap(slow_stats_port, topology, sink) -> None:
    port, address = slow_stats_port
    driver = PollDriver(topology, sink, address)

    results = await asyncio.gather(driver.tick(), driver.tick())

    assert results == [True, True]
    assert port.connections == 2
    assert port.peak == 1


@pytest.mark.asyncio
async def test_stop_lets_in_flight_tick_finish(slow_stats_port, topology, sink, registry) -> None:
    _, address = slow_stats_port
    driver = PollDriver(topology, sink, address)
    scheduler = PollingScheduler(driver, interval=60)
    scheduler.start()

    in_flight = asyncio.create_task(driver.tick())
    await _wait_for_state(driver, PollState.READING)

    await scheduler.stop()

    assert in_flight.done()
    assert in_flight.result() is True
    assert driver.state is PollState.IDLE
    assert driver.last_stats is not None
    assert _total_connections(registry) == 1532.0


@pytest.mark.asyncio
async def test_stop_skips_tick_queued_behind_in_flight_one(slow_stats_port, topology, sink) -> None:
    port, address = slow_stats_port
    driver = PollDriver(topology, sink, address)
    scheduler = PollingScheduler(driver, interval=60)
    scheduler.start()

    in_flight = asyncio.create_task(driver.tick())
    await _wait_for_state(driver, PollState.READING)
    queued = asyncio.create_task(driver.tick())
    await asyncio.sleep(0)

    await scheduler.stop()

    assert in_flight.result() is True
    assert await queued is False
    assert port.connections == 1
    assert driver.consecutive_failures == 0


@pytest.mark.asyncio
async def test_restart_reopens_driver(stats_server, example_payload, topology, sink) -> None:
    driver = PollDriver(topology, sink, await stats_server(example_payload))
    scheduler = PollingScheduler(driver, interval=60)

    scheduler.start()
    await scheduler.stop()
    assert await driver.tick() is False

    scheduler.start()
    assert await scheduler.poll_now() is True
    await scheduler.stop()
