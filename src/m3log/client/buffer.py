"""
Client-side log buffer.

Accumulates encoded lines and ships them through a Transport:
- when the buffer reaches the batch threshold
- on a periodic timer (every 5 seconds by default)
- on close()

Failed batches go back to the front of the buffer and are retried on
the next tick or threshold flush. There is no backoff and no retry
limit, so a dead endpoint makes the buffer grow without bound.

At most one send is in flight. Records that reach the threshold while a
send is running go out right after it succeeds, so batches are delivered
in record order and no line is drained twice.

All methods must be called from the event loop thread. Draining the
buffer never awaits, so a flush always works on a consistent snapshot.
"""

import asyncio
from datetime import datetime
from types import TracebackType
from typing import Callable, List, Optional, Type

import structlog

from ..core.codec import encode_line
from ..core.exceptions import TransportFailure
from .transport import HttpTransport, Transport

logger = structlog.get_logger(__name__)

DEFAULT_FLUSH_INTERVAL = 5.0


class LogBuffer:
    """
    Batching logger with at-least-once delivery.

    Usage:
        buffer = LogBuffer.for_endpoint("http://localhost:3000", "my-app")
        buffer.init(batch_count=10)
        buffer.record("INFO", "trace-123", "Application started")
        await buffer.close()
    """

    def __init__(
        self,
        transport: Transport,
        source: str = "python-app",
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.transport = transport
        self.source = source
        self.flush_interval = flush_interval
        self.batch_count = 1
        self._clock = clock
        self._buffer: List[str] = []
        self._timer: Optional[asyncio.Task[None]] = None
        self._in_flight: Optional[asyncio.Task[bool]] = None
        self._closed = False

    @classmethod
    def for_endpoint(
        cls,
        endpoint: str,
        source: str = "python-app",
        timeout_seconds: float = 10,
        **kwargs,
    ) -> "LogBuffer":
        """Build a buffer that posts to an HTTP server."""
        return cls(HttpTransport(endpoint, timeout_seconds=timeout_seconds), source, **kwargs)

    @property
    def pending(self) -> int:
        """Number of lines waiting to be sent."""
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def init(self, batch_count: int = 1) -> None:
        """Set the batch threshold and start the periodic flush."""
        if batch_count < 1:
            raise ValueError("batch_count must be at least 1")
        if self._closed:
            raise RuntimeError("LogBuffer is closed")

        self.batch_count = batch_count
        if self._timer is None:
            self._timer = asyncio.get_running_loop().create_task(self._periodic_flush())

        logger.debug("Log buffer initialized", source=self.source, batch_count=batch_count)

    def record(self, level: str, trace_id: Optional[str], content: str) -> None:
        """
        Buffer one log record.

        Reaching the batch threshold starts a background send, or waits
        behind the one in flight. This call never waits for the network.
        """
        now = self._clock()
        line = encode_line(
            now.strftime("%Y-%m-%d"),
            now.strftime("%H:%M:%S"),
            level,
            trace_id,
            str(content),
        )
        self._buffer.append(line)

        if self._closed:
            logger.warning("Record buffered after close; it will not be sent", source=self.source)
            return

        if len(self._buffer) >= self.batch_count:
            self._schedule_flush()

    def _drain(self) -> List[str]:
        batch = self._buffer
        self._buffer = []
        return batch

    def _requeue(self, batch: List[str]) -> None:
        # Failed batch goes ahead of anything recorded since
        self._buffer = batch + self._buffer

    def _sending(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def _start_send(self, batch: List[str]) -> "asyncio.Task[bool]":
        task = asyncio.get_running_loop().create_task(self._send_batches(batch))
        self._in_flight = task
        return task

    def _schedule_flush(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; keeping records buffered", pending=self.pending)
            return

        if self._sending():
            # One send at a time; on success it continues with these
            return

        batch = self._drain()
        if batch:
            self._start_send(batch)

    async def _send_batches(self, batch: List[str]) -> bool:
        ok = await self._send(batch)
        delivered = ok
        # Records that reached the threshold during the send
        while delivered and len(self._buffer) >= self.batch_count:
            delivered = await self._send(self._drain())
        return ok

    async def _send(self, batch: List[str]) -> bool:
        try:
            await self.transport.send(self.source, batch)
            return True
        except asyncio.CancelledError:
            self._requeue(batch)
            raise
        except TransportFailure as e:
            logger.warning(
                "Failed to send logs",
                source=self.source,
                entries=len(batch),
                error=str(e),
                status=e.status,
                body=e.body,
            )
        except Exception as e:
            logger.warning(
                "Error sending logs",
                source=self.source,
                entries=len(batch),
                error=str(e),
                error_type=type(e).__name__,
            )
        self._requeue(batch)
        return False

    async def flush(self) -> bool:
        """
        Send everything buffered as one batch.

        Waits for a send already in flight first. Returns False when the
        send failed and the batch was requeued.
        """
        await self.join()
        batch = self._drain()
        if not batch:
            return True
        return await self._start_send(batch)

    async def join(self) -> None:
        """Wait for the send in flight, if any."""
        while self._sending():
            await asyncio.wait({self._in_flight})

    async def _periodic_flush(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            if self._buffer:
                await self.flush()

    async def close(self) -> None:
        """Stop the timer, send what is left and release the transport."""
        if self._closed:
            return
        self._closed = True

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        await self.join()
        await self.flush()
        await self.transport.close()

        if self._buffer:
            logger.warning("Log buffer closed with unsent records", source=self.source, pending=self.pending)

    async def __aenter__(self) -> "LogBuffer":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()
