"""
Ingestion handler.

Orchestrates the flow from an ingestion request to storage:
1. Source defaulting
2. Decoding every line (all-or-nothing)
3. One transactional batch insert
"""

import asyncio
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from ..models.log_record import DEFAULT_SOURCE, LogRecord
from .codec import decode_line
from .exceptions import MalformedRecord, StorageFailure
from .metrics import MetricsCollector
from .storage import LogStorage

logger = structlog.get_logger(__name__)


@dataclass
class IngestionResult:
    """Result of ingesting one request's lines."""
    source: str
    count: int
    processing_time_ms: float


class IngestionHandler:
    """
    Decodes submitted lines and hands them to storage as one batch.

    A single undecodable line rejects the whole request; nothing from it
    is stored.
    """

    def __init__(self, storage: LogStorage, metrics: Optional[MetricsCollector] = None) -> None:
        self.storage = storage
        self.metrics = metrics

    def decode_all(self, source: Optional[str], lines: Sequence[str]) -> List[LogRecord]:
        """Decode every line for source, failing on the first bad one."""
        source = source or DEFAULT_SOURCE
        records = []
        for index, line in enumerate(lines):
            try:
                records.append(decode_line(line, source))
            except MalformedRecord as e:
                e.details.setdefault("index", index)
                if self.metrics:
                    self.metrics.record_rejection("malformed_record", len(lines))
                logger.warning(
                    "Rejecting ingestion request",
                    source=source,
                    index=index,
                    lines=len(lines),
                    error=str(e),
                )
                raise
        return records

    async def ingest_line(self, source: Optional[str], line: str) -> IngestionResult:
        """Ingest a single encoded line."""
        return await self.ingest_batch(source, [line])

    async def ingest_batch(self, source: Optional[str], lines: Sequence[str]) -> IngestionResult:
        """Ingest a batch of encoded lines atomically."""
        start = time.perf_counter()
        source = source or DEFAULT_SOURCE

        records = self.decode_all(source, lines)

        try:
            count = await asyncio.to_thread(self.storage.insert_batch, records)
        except StorageFailure:
            if self.metrics:
                self.metrics.record_rejection("storage_failure", len(records))
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        if self.metrics and count:
            self.metrics.record_ingestion(count)

        logger.info(
            "Batch stored",
            source=source,
            entries_processed=count,
            processing_time_ms=round(elapsed_ms, 2),
        )

        return IngestionResult(source=source, count=count, processing_time_ms=elapsed_ms)
