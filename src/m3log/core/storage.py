"""
SQLite storage engine for log records.

Append-only table with secondary indexes on the lookup columns. Writers
are serialized through one lock and SQLite transactions, so a batch is
either fully visible or not at all.
"""

import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog

from ..models.log_record import LogRecord, StoredLogRecord
from .exceptions import StorageFailure

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 1000

SCHEMA = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    date TEXT NOT NULL,
    time TEXT NOT NULL,
    level TEXT NOT NULL,
    trace_id TEXT,
    content TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""

INDEXES = {
    "idx_source": "source",
    "idx_date": "date",
    "idx_level": "level",
    "idx_trace_id": "trace_id",
    "idx_created_at": "created_at",
}

INSERT_SQL = """
INSERT INTO logs (source, date, time, level, trace_id, content)
VALUES (?, ?, ?, ?, ?, ?)
"""


@dataclass
class CompiledFilter:
    """
    Storage-level form of a query.

    `clauses` are SQL predicates joined with AND, `params` their bound
    values in order. `predicate`, when set, is evaluated in-process
    against each candidate's content.
    """
    clauses: List[str] = field(default_factory=list)
    params: List[Any] = field(default_factory=list)
    predicate: Optional[Callable[[str], bool]] = None

    def where_sql(self) -> str:
        if not self.clauses:
            return ""
        return " WHERE " + " AND ".join(self.clauses)


@dataclass
class RawQueryResult:
    """Result of a raw statement: rows for reads, a change count for writes."""
    rows: Optional[List[Dict[str, Any]]] = None
    changes: int = 0
    last_row_id: Optional[int] = None

    @property
    def is_read(self) -> bool:
        return self.rows is not None


class LogStorage:
    """
    Durable log record store.

    Features:
    - Indexed lookups on source, date, level, trace_id, created_at
    - Transactional batch insert
    - Delete by client date
    - Raw SQL escape hatch
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn = self._connect()
        self._init_schema()

        logger.info("Log storage initialized", db_path=str(self.db_path))

    def _connect(self) -> sqlite3.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are opened explicitly
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
        except (OSError, sqlite3.Error) as e:
            logger.error("Error opening log database", db_path=str(self.db_path), error=str(e))
            raise StorageFailure(f"Cannot open log database: {e}")

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        with self._lock:
            self._conn.execute(SCHEMA)
            for name, column in INDEXES.items():
                self._conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON logs({column})")

    @staticmethod
    def _row_params(record: LogRecord) -> tuple:
        return (
            record.source,
            record.date,
            record.time,
            record.level,
            record.trace_id,
            record.content,
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> StoredLogRecord:
        return StoredLogRecord(
            id=row["id"],
            source=row["source"],
            date=row["date"],
            time=row["time"],
            level=row["level"],
            trace_id=row["trace_id"],
            content=row["content"],
            created_at=str(row["created_at"]),
        )

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        # BLOBs are returned as hex so rows stay JSON-serializable
        return {
            key: value.hex() if isinstance(value, bytes) else value
            for key, value in dict(row).items()
        }

    def insert_one(self, record: LogRecord) -> int:
        """Insert a single record and return its id."""
        with self._lock:
            try:
                cursor = self._conn.execute(INSERT_SQL, self._row_params(record))
            except sqlite3.Error as e:
                logger.error("Insert failed", error=str(e))
                raise StorageFailure(str(e))
            return int(cursor.lastrowid)

    def insert_batch(self, records: Sequence[LogRecord]) -> int:
        """
        Insert records in one transaction.

        Either every record becomes visible or none does.
        """
        if not records:
            return 0

        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                self._conn.executemany(INSERT_SQL, [self._row_params(r) for r in records])
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                logger.error("Batch insert rolled back", records=len(records), error=str(e))
                raise StorageFailure(str(e), details={"records": len(records)})

        return len(records)

    def delete_older_than(self, cutoff: str) -> int:
        """
        Delete every record whose date sorts strictly before cutoff.

        YYYY-MM-DD sorts lexicographically in calendar order.
        """
        with self._lock:
            try:
                cursor = self._conn.execute("DELETE FROM logs WHERE date < ?", (cutoff,))
            except sqlite3.Error as e:
                raise StorageFailure(str(e))
            return cursor.rowcount

    def query(self, compiled: Optional[CompiledFilter] = None, limit: int = DEFAULT_LIMIT) -> List[StoredLogRecord]:
        """
        Return matching records, newest client date/time first.

        With an in-process predicate the rows are streamed in order and
        the limit counts only the rows that pass it.
        """
        compiled = compiled or CompiledFilter()
        if limit <= 0:
            limit = DEFAULT_LIMIT

        sql = "SELECT * FROM logs" + compiled.where_sql() + " ORDER BY date DESC, time DESC, id DESC"
        params = list(compiled.params)
        if compiled.predicate is None:
            sql += " LIMIT ?"
            params.append(limit)

        results: List[StoredLogRecord] = []
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                for row in cursor:
                    if compiled.predicate is not None and not compiled.predicate(row["content"]):
                        continue
                    results.append(self._row_to_record(row))
                    if len(results) >= limit:
                        break
                cursor.close()
            except sqlite3.Error as e:
                raise StorageFailure(str(e))

        return results

    def raw_query(self, statement: str) -> RawQueryResult:
        """
        Execute one arbitrary SQL statement.

        No sanitization happens here; callers gate access.
        """
        with self._lock:
            try:
                cursor = self._conn.execute(statement)
                if cursor.description is not None:
                    rows = [self._row_to_dict(row) for row in cursor.fetchall()]
                    return RawQueryResult(rows=rows)
                return RawQueryResult(
                    changes=max(cursor.rowcount, 0),
                    last_row_id=cursor.lastrowid,
                )
            except sqlite3.Error as e:
                raise StorageFailure(f"SQL execution error: {e}")
            finally:
                # A raw BEGIN must not leave the shared connection mid-transaction
                if self._conn.in_transaction:
                    logger.warning("Rolling back transaction left open by raw query")
                    self._conn.execute("ROLLBACK")

    def count(self) -> int:
        with self._lock:
            return int(self._conn.execute("SELECT COUNT(*) FROM logs").fetchone()[0])

    def ping(self) -> bool:
        """Cheap liveness probe for health checks."""
        with self._lock:
            self._conn.execute("SELECT 1").fetchone()
        return True

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info("Log storage closed", db_path=str(self.db_path))
