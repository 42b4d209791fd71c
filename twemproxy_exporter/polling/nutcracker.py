"""
Nutcracker Stats Client

Reads one stats document from the twemproxy stats port. The proxy writes
its current stats as JSON as soon as a peer connects; nothing is sent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import parse_address
from ..errors import TransportError

logger = logging.getLogger(__name__)


class NutcrackerClient:
    """
    Async client for the twemproxy stats port

    Usage:
        async with NutcrackerClient("localhost:22222") as client:
            raw = await client.read_stats()
    """

    def __init__(
        self,
        address: str,
        read_buffer_size: int = 8192,
        timeout: Optional[float] = None,
    ):
        self.address = address
        self.host, self.port = parse_address(address)
        self.read_buffer_size = read_buffer_size
        self.timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    async def __aenter__(self) -> "NutcrackerClient":
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Cannot connect to {self.address}: {e!r}") from e
        return self

    async def __aexit__(self, *args) -> None:
        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError as e:
                logger.debug("Error closing connection to %s: %s", self.address, e)
            self._reader = self._writer = None

    async def read_stats(self) -> bytes:
        """
        Read the stats document in a single read.

        Anything beyond ``read_buffer_size`` bytes is dropped.
        """
        if not self._reader:
            raise RuntimeError("Client not connected. Use 'async with' context manager.")

        try:
            data = await asyncio.wait_for(
                self._reader.read(self.read_buffer_size),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Cannot read stats from {self.address}: {e!r}") from e

        if not data:
            raise TransportError(f"{self.address} closed the connection without sending stats")
        return data
