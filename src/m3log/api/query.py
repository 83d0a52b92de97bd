"""
Query API endpoints.

- GET /api/query      - structured filters plus content regex
- POST /api/query/sql - raw SQL escape hatch (capability-gated)
"""

import re
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query

from ..core.query import QueryEngine
from ..models.log_record import (
    ErrorResponse,
    QueryFilters,
    QueryResponse,
    SqlQueryRequest,
    SqlQueryResponse,
)
from .deps import get_query_engine, require_raw_query_capability

logger = structlog.get_logger(__name__)

LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_limit(raw: Optional[str]) -> Optional[int]:
    """
    Read the limit parameter leniently.

    Leading digits are used ("25rows" is 25); empty or non-numeric values
    mean no limit was given, so the configured default applies.
    """
    if not raw:
        return None
    match = LEADING_INT.match(raw)
    if match is None:
        return None
    return int(match.group(1))


router = APIRouter()


@router.get(
    "/query",
    response_model=QueryResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid parameters"}},
    summary="Query stored logs",
    description="""
    All given filters are combined with AND.

    - `startDate`/`endDate` are inclusive, compared as YYYY-MM-DD strings
    - `contentRegex` is matched against content; an invalid pattern is ignored
    - results are ordered by date then time, newest first, capped at `limit`
    - an empty or non-numeric `limit` falls back to the default
    """,
)
async def query_logs(
    source: Optional[str] = Query(None),
    level: Optional[str] = Query(None),
    trace_id: Optional[str] = Query(None, alias="traceId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    content_regex: Optional[str] = Query(None, alias="contentRegex"),
    limit: Optional[str] = Query(None),
    engine: QueryEngine = Depends(get_query_engine),
) -> QueryResponse:
    filters = QueryFilters(
        source=source,
        level=level,
        trace_id=trace_id,
        start_date=start_date,
        end_date=end_date,
        content_regex=content_regex,
        limit=parse_limit(limit),
    )
    results = await engine.search(filters)
    return QueryResponse(results=results, count=len(results))


@router.post(
    "/query/sql",
    response_model=SqlQueryResponse,
    responses={
        400: {"model": ErrorResponse, "description": "SQL execution error"},
        403: {"model": ErrorResponse, "description": "Raw queries disabled or bad admin token"},
    },
    summary="Run a raw SQL statement",
    description="""
    Executes one SQL statement against the log database.

    Reads return `{"results": [rows]}`; writes return
    `{"results": {"changes": n, "lastInsertRowid": id}}`.
    No sanitization is applied; restrict access through configuration.
    """,
    dependencies=[Depends(require_raw_query_capability)],
)
async def raw_query(
    body: SqlQueryRequest,
    engine: QueryEngine = Depends(get_query_engine),
) -> Dict[str, Any]:
    result = await engine.raw(body.sql)
    if result.is_read:
        return {"results": result.rows}
    return {
        "results": {
            "changes": result.changes,
            "lastInsertRowid": result.last_row_id,
        }
    }
