"""
Pydantic data models package.

Contains all data validation models for:
- Log records as decoded and as stored
- API requests and responses
- Query filters
"""

from .log_record import (
    DEFAULT_SOURCE,
    BatchLogRequest,
    ErrorResponse,
    IngestResponse,
    LogRecord,
    QueryFilters,
    QueryResponse,
    SingleLogRequest,
    SqlQueryRequest,
    SqlQueryResponse,
    SqlWriteResult,
    StoredLogRecord,
)

__all__ = [
    "DEFAULT_SOURCE",
    # Record models
    "LogRecord",
    "StoredLogRecord",

    # API models
    "SingleLogRequest",
    "BatchLogRequest",
    "IngestResponse",
    "QueryFilters",
    "QueryResponse",
    "SqlQueryRequest",
    "SqlQueryResponse",
    "SqlWriteResult",
    "ErrorResponse",
]
