"""
Log record data models.

- LogRecord: one client observation after decoding
- StoredLogRecord: a LogRecord plus server-assigned id and ingestion time
- Request/response bodies for the ingestion and query endpoints
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SOURCE = "unknown"


class LogRecord(BaseModel):
    """
    One log observation emitted by a client.

    `date` and `time` come from the client clock and are only required to
    be non-empty.
    """

    source: str = Field(min_length=1, description="Emitting application or instance")
    date: str = Field(min_length=1, description="Client date, YYYY-MM-DD")
    time: str = Field(min_length=1, description="Client time of day, HH:MM:SS")
    level: str = Field(description="Free-text severity tag")
    trace_id: Optional[str] = Field(default=None, description="Correlation identifier")
    content: str = Field(description="Log payload, may span lines")

    model_config = ConfigDict(frozen=True)


class StoredLogRecord(LogRecord):
    """A persisted record."""

    id: int = Field(description="Storage identity, not an ordering guarantee")
    created_at: str = Field(description="Server ingestion timestamp (UTC)")


class SingleLogRequest(BaseModel):
    """Body of POST /api/log."""

    source: Optional[str] = Field(default=None, description="Emitting application")
    log: str = Field(description="One encoded log line")


class BatchLogRequest(BaseModel):
    """Body of POST /api/logs, also the wire envelope sent by client transports."""

    source: Optional[str] = Field(default=None, description="Emitting application")
    logs: List[str] = Field(description="Encoded log lines")


class IngestResponse(BaseModel):
    success: bool = True
    count: Optional[int] = None


class QueryFilters(BaseModel):
    """
    Structured filter set for the query engine.

    All present fields are combined with AND; omitted fields impose no
    constraint.
    """

    source: Optional[str] = None
    level: Optional[str] = None
    trace_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    content_regex: Optional[str] = None
    limit: Optional[int] = None


class QueryResponse(BaseModel):
    results: List[StoredLogRecord]
    count: int


class SqlQueryRequest(BaseModel):
    """Body of POST /api/query/sql."""

    sql: str = Field(min_length=1, description="Raw SQL statement")


class SqlWriteResult(BaseModel):
    changes: int
    lastInsertRowid: Optional[int] = None


class SqlQueryResponse(BaseModel):
    results: Union[List[Dict[str, Any]], SqlWriteResult]


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Human-readable error message")
    code: Optional[str] = Field(default=None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
