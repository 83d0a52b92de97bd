"""
Client transports for shipping log batches to the server.

A transport sends one batch envelope per call and raises TransportFailure
when the batch was not accepted; the buffer decides what happens next.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

import aiohttp
import structlog

from ..core.exceptions import TransportFailure

logger = structlog.get_logger(__name__)

BATCH_PATH = "/api/logs"


class Transport(ABC):
    """Sends batches of encoded lines for one source."""

    @abstractmethod
    async def send(self, source: str, lines: List[str]) -> None:
        """Deliver the batch or raise TransportFailure."""

    async def close(self) -> None:
        """Release any held resources."""


class HttpTransport(Transport):
    """
    POSTs `{source, logs}` as JSON to the batch endpoint.

    Success is exactly HTTP 200; anything else, including other 2xx
    codes, is a failure.
    """

    def __init__(self, endpoint: str, timeout_seconds: float = 10):
        self.endpoint = endpoint.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def url(self) -> str:
        return f"{self.endpoint}{BATCH_PATH}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def send(self, source: str, lines: List[str]) -> None:
        payload = {"source": source, "logs": lines}
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "m3log-python/1.0",
        }

        session = self._get_session()
        try:
            async with session.post(self.url, json=payload, headers=headers) as response:
                if response.status == 200:
                    logger.debug("Batch delivered", source=source, entries=len(lines))
                    return
                body = await response.text()
                raise TransportFailure(
                    f"Server returned status {response.status}",
                    status=response.status,
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(f"Error sending logs: {e or type(e).__name__}")

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
