"""
Polling Scheduler

Uses APScheduler to poll the twemproxy stats port on a fixed interval and
publish each translated snapshot to the metrics sink.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..errors import MalformedPayload, MissingField, TransportError
from ..metrics import MetricsSink
from ..models.stats import ProxyStats
from ..models.topology import Topology
from .nutcracker import NutcrackerClient
from .translator import translate

logger = logging.getLogger(__name__)

# Label values for the poll error counter
_ERROR_KINDS = {
    TransportError: "transport",
    MalformedPayload: "malformed_payload",
    MissingField: "missing_field",
}


# ─────────────────────────────────────────────────────────────────────────────
# Poll Driver
# ─────────────────────────────────────────────────────────────────────────────


class PollState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READING = "reading"
    TRANSLATING = "translating"
    PUBLISHING = "publishing"


class PollDriver:
    """
    Runs one poll cycle per tick: connect, read, translate, publish.

    A failed tick is logged and abandoned; the next tick starts from
    scratch on a fresh connection. Ticks never overlap.
    """

    def __init__(
        self,
        topology: Topology,
        sink: MetricsSink,
        address: str,
        read_buffer_size: int = 8192,
        connect_timeout: Optional[float] = None,
    ):
        self.topology = topology
        self.sink = sink
        self.address = address
        self.read_buffer_size = read_buffer_size
        self.connect_timeout = connect_timeout

        self.state = PollState.IDLE
        self.last_stats: ProxyStats | None = None
        self.last_success: datetime | None = None
        self.last_error: str | None = None
        self.consecutive_failures = 0
        self.closed = False
        self._lock = asyncio.Lock()

    async def tick(self) -> bool:
        """Run one cycle. Returns True if a snapshot was published."""
        async with self._lock:
            # A tick queued before close() must not start a new cycle
            if self.closed:
                logger.debug("Poll driver closed, skipping tick for %s", self.address)
                return False

            try:
                stats = await self._cycle()
            except (TransportError, MalformedPayload, MissingField) as e:
                self._record_failure(_ERROR_KINDS[type(e)], e)
                logger.error("Failed to poll twemproxy at %s: %s", self.address, e)
                return False
            except Exception as e:
                self._record_failure("unexpected", e)
                logger.exception("Unexpected error polling twemproxy at %s", self.address)
                return False
            finally:
                self.state = PollState.IDLE

            self.last_stats = stats
            self.last_success = datetime.now(timezone.utc)
            self.last_error = None
            self.consecutive_failures = 0
            logger.debug(
                "Polled %s: %d pools, %d/%d servers unavailable",
                self.address,
                len(stats.services),
                stats.not_available,
                stats.expected_available,
            )
            return True

    async def _cycle(self) -> ProxyStats:
        self.state = PollState.CONNECTING
        async with NutcrackerClient(
            self.address,
            read_buffer_size=self.read_buffer_size,
            timeout=self.connect_timeout,
        ) as client:
            self.state = PollState.READING
            raw = await client.read_stats()

        self.state = PollState.TRANSLATING
        stats = translate(raw, self.topology)

        self.state = PollState.PUBLISHING
        self.sink.publish(stats)
        return stats

    def _record_failure(self, kind: str, error: Exception) -> None:
        self.last_error = str(error)
        self.consecutive_failures += 1
        self.sink.record_error(kind)

    async def close(self) -> None:
        """Refuse further ticks and wait for an in-flight one to finish."""
        self.closed = True
        async with self._lock:
            pass


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler
# ─────────────────────────────────────────────────────────────────────────────


class PollingScheduler:
    """Drives a PollDriver on a fixed interval."""

    def __init__(self, driver: PollDriver, interval: float):
        self._driver = driver
        self._interval = interval
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the polling scheduler."""
        self._driver.closed = False
        self._scheduler = AsyncIOScheduler()

        # Ticks run one at a time; a run that comes due mid-tick is skipped
        self._scheduler.add_job(
            self._driver.tick,
            IntervalTrigger(seconds=self._interval),
            id="poll_twemproxy",
            name="Poll twemproxy stats",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            "Polling scheduler started: %s every %.3gs",
            self._driver.address,
            self._interval,
        )

    async def stop(self) -> None:
        """Stop the polling scheduler, letting an in-flight tick finish."""
        if self._scheduler:
            self._scheduler.pause()
            await self._driver.close()
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Polling scheduler stopped")

    async def poll_now(self) -> bool:
        """Trigger an immediate poll."""
        return await self._driver.tick()
