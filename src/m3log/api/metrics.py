"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - logs_ingested_total - Records stored
    - logs_rejected_total{reason} - Lines rejected
    - queries_total - Structured queries executed
    - raw_queries_total{kind} - Raw SQL statements
    - retention_deleted_total - Records removed by retention
    - http_request_duration_seconds - Request latency histogram
    """,
)
async def get_metrics(request: Request) -> Response:
    metrics_collector = getattr(request.app.state, 'metrics', None)

    if not metrics_collector:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    metrics_collector.update_system_metrics()
    metrics_data = generate_latest(metrics_collector.registry)

    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(
        content=metrics_data,
        media_type=CONTENT_TYPE_LATEST,
    )
