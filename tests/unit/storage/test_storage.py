"""
Tests for the SQLite storage engine.

Covers inserts, batch atomicity, retention deletes, ordering and the raw
SQL path.
"""

from pathlib import Path
from typing import Callable

import pytest

from m3log.core.exceptions import StorageFailure
from m3log.core.storage import CompiledFilter, LogStorage
from m3log.models.log_record import LogRecord


class TestInsert:
    """Test single and batch inserts."""

    def test_creates_data_directory(self, tmp_path: Path) -> None:
        store = LogStorage(tmp_path / "nested" / "dir" / "logs.db")
        try:
            assert (tmp_path / "nested" / "dir" / "logs.db").exists()
        finally:
            store.close()

    def test_insert_one_assigns_increasing_ids(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        first = storage.insert_one(make_record())
        second = storage.insert_one(make_record())
        assert second > first
        assert storage.count() == 2

    def test_stored_record_has_ingestion_time(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_one(make_record(trace_id="t-1"))
        [stored] = storage.query()
        assert stored.trace_id == "t-1"
        assert stored.created_at
        assert stored.id >= 1

    def test_insert_batch(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        count = storage.insert_batch([make_record(content=f"m{i}") for i in range(5)])
        assert count == 5
        assert storage.count() == 5

    def test_empty_batch_is_noop(self, storage: LogStorage) -> None:
        assert storage.insert_batch([]) == 0
        assert storage.count() == 0

    def test_failed_batch_rolls_back_entirely(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        # content=None violates NOT NULL on the third row
        broken = LogRecord.model_construct(
            source="svc", date="2024-03-01", time="10:00:00", level="INFO", trace_id=None, content=None
        )
        with pytest.raises(StorageFailure):
            storage.insert_batch([make_record(), make_record(), broken, make_record()])

        assert storage.count() == 0

        # Connection is still usable after the rollback
        storage.insert_batch([make_record()])
        assert storage.count() == 1


class TestDeleteOlderThan:
    """Test retention deletes by client date."""

    def test_boundary_is_exclusive(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        dates = ["2024-01-08", "2024-01-09", "2024-01-10", "2024-01-11"]
        storage.insert_batch([make_record(date=d, content=d) for d in dates])

        deleted = storage.delete_older_than("2024-01-10")

        assert deleted == 2
        remaining = storage.query()
        assert sorted(r.date for r in remaining) == ["2024-01-10", "2024-01-11"]
        assert all(r.date >= "2024-01-10" for r in remaining)
        assert {r.content for r in remaining} == {"2024-01-10", "2024-01-11"}

    def test_nothing_to_delete(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_one(make_record(date="2024-05-01"))
        assert storage.delete_older_than("2024-01-01") == 0
        assert storage.count() == 1


class TestQuery:
    """Test ordering, limits and compiled filters."""

    def test_orders_by_date_then_time_descending(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([
            make_record(date="2024-01-01", time="12:00:00", content="a"),
            make_record(date="2024-01-02", time="08:00:00", content="b"),
            make_record(date="2024-01-02", time="09:00:00", content="c"),
            make_record(date="2023-12-31", time="23:59:59", content="d"),
        ])
        assert [r.content for r in storage.query()] == ["c", "b", "a", "d"]

    def test_ties_are_deterministic(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([make_record(content=str(i)) for i in range(5)])
        assert [r.content for r in storage.query()] == [r.content for r in storage.query()]

    def test_limit(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([make_record(content=str(i)) for i in range(10)])
        assert len(storage.query(limit=3)) == 3

    def test_non_positive_limit_uses_default(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([make_record(content=str(i)) for i in range(3)])
        assert len(storage.query(limit=0)) == 3

    def test_compiled_clauses(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([make_record(level="INFO"), make_record(level="ERROR")])
        compiled = CompiledFilter(clauses=["level = ?"], params=["ERROR"])
        results = storage.query(compiled)
        assert [r.level for r in results] == ["ERROR"]

    def test_predicate_limit_counts_survivors(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        # Newest rows do not match; the limit must still be filled from older ones
        storage.insert_batch(
            [make_record(time=f"10:00:{i:02d}", content="match" if i < 3 else "skip") for i in range(10)]
        )
        compiled = CompiledFilter(predicate=lambda content: content == "match")
        results = storage.query(compiled, limit=2)
        assert [r.content for r in results] == ["match", "match"]


class TestRawQuery:
    """Test the raw SQL escape hatch."""

    def test_select_returns_rows(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_one(make_record(source="raw"))
        result = storage.raw_query("SELECT source, level FROM logs")
        assert result.is_read
        assert result.rows == [{"source": "raw", "level": "INFO"}]

    def test_write_returns_change_count(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.insert_batch([make_record(), make_record()])
        result = storage.raw_query("DELETE FROM logs WHERE level = 'INFO'")
        assert not result.is_read
        assert result.changes == 2
        assert storage.count() == 0

    def test_blob_values_are_hex(self, storage: LogStorage) -> None:
        result = storage.raw_query("SELECT x'CAFE' AS b, 1 AS n")
        assert result.rows == [{"b": "cafe", "n": 1}]

    def test_engine_error_raises_storage_failure(self, storage: LogStorage) -> None:
        with pytest.raises(StorageFailure) as exc_info:
            storage.raw_query("SELECT * FROM missing_table")
        assert "missing_table" in str(exc_info.value)

    def test_open_transaction_is_rolled_back(self, storage: LogStorage, make_record: Callable[..., LogRecord]) -> None:
        storage.raw_query("BEGIN")
        storage.insert_batch([make_record()])
        assert storage.count() == 1
