"""
Log ingestion API endpoints.

- POST /api/log  - one encoded line
- POST /api/logs - a batch of encoded lines, stored atomically
"""

import structlog
from fastapi import APIRouter, Depends

from ..core.ingestion import IngestionHandler
from ..models.log_record import BatchLogRequest, ErrorResponse, IngestResponse, SingleLogRequest
from .deps import get_ingestion_handler

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/log",
    response_model=IngestResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse, "description": "Malformed line or storage error"}},
    summary="Ingest one log line",
    description="""
    Store a single encoded log line.

    Line format: `<date>\\t<time>\\t<level>\\t<trace-id>\\t<content>` with
    backslashes and newlines in content escaped. A missing source is
    stored as `unknown`.
    """,
)
async def submit_log(
    body: SingleLogRequest,
    handler: IngestionHandler = Depends(get_ingestion_handler),
) -> IngestResponse:
    await handler.ingest_line(body.source, body.log)
    return IngestResponse(success=True)


@router.post(
    "/logs",
    response_model=IngestResponse,
    responses={400: {"model": ErrorResponse, "description": "Malformed line or storage error"}},
    summary="Ingest a batch of log lines",
    description="""
    Store a batch of encoded log lines for one source.

    The batch is all-or-nothing: one malformed line rejects the request
    and nothing from it is stored.
    """,
)
async def submit_logs(
    body: BatchLogRequest,
    handler: IngestionHandler = Depends(get_ingestion_handler),
) -> IngestResponse:
    result = await handler.ingest_batch(body.source, body.logs)
    return IngestResponse(success=True, count=result.count)
