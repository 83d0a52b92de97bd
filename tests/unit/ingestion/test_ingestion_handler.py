"""
Tests for the ingestion handler.
"""

import pytest

from m3log.core.exceptions import MalformedRecord
from m3log.core.ingestion import IngestionHandler
from m3log.core.metrics import MetricsCollector
from m3log.core.storage import LogStorage

GOOD_LINE = "2024-03-01\t10:00:00\tINFO\ttr-1\thello\\nworld"


class TestIngestionHandler:
    """Test decode-then-store behavior."""

    @pytest.mark.asyncio
    async def test_single_line(self, storage: LogStorage) -> None:
        handler = IngestionHandler(storage)
        result = await handler.ingest_line("svc", GOOD_LINE)

        assert result.count == 1
        [stored] = storage.query()
        assert stored.source == "svc"
        assert stored.content == "hello\nworld"

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, storage: LogStorage) -> None:
        handler = IngestionHandler(storage)
        lines = [GOOD_LINE, "broken line", GOOD_LINE]

        with pytest.raises(MalformedRecord) as exc_info:
            await handler.ingest_batch("svc", lines)

        assert exc_info.value.details["index"] == 1
        assert storage.count() == 0

    @pytest.mark.asyncio
    async def test_missing_source_defaults(self, storage: LogStorage) -> None:
        handler = IngestionHandler(storage)
        result = await handler.ingest_batch(None, [GOOD_LINE])

        assert result.source == "unknown"
        assert storage.query()[0].source == "unknown"

    @pytest.mark.asyncio
    async def test_empty_batch(self, storage: LogStorage) -> None:
        handler = IngestionHandler(storage)
        result = await handler.ingest_batch("svc", [])
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, storage: LogStorage) -> None:
        metrics = MetricsCollector()
        handler = IngestionHandler(storage, metrics=metrics)

        await handler.ingest_batch("svc", [GOOD_LINE, GOOD_LINE])
        with pytest.raises(MalformedRecord):
            await handler.ingest_batch("svc", ["nope"])

        assert metrics.registry.get_sample_value("logs_ingested_total") == 2
        assert metrics.registry.get_sample_value(
            "logs_rejected_total", {"reason": "malformed_record"}
        ) == 1
