"""
Request dependencies resolving core components from app state.
"""

import secrets
from typing import Optional

import structlog
from fastapi import Header, Request

from ..config import Settings
from ..core.exceptions import CapabilityDisabled, M3LogException
from ..core.ingestion import IngestionHandler
from ..core.query import QueryEngine

logger = structlog.get_logger(__name__)


def _state_component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise M3LogException(f"Service component '{name}' is not initialized", status_code=503,
                             error_code="service_unavailable")
    return component


async def get_ingestion_handler(request: Request) -> IngestionHandler:
    """Dependency to get the ingestion handler from app state."""
    return _state_component(request, "ingestion")


async def get_query_engine(request: Request) -> QueryEngine:
    """Dependency to get the query engine from app state."""
    return _state_component(request, "query_engine")


async def require_raw_query_capability(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> None:
    """
    Gate for the raw SQL path.

    Disabled entirely by `security.raw_query_enabled = false`; when an
    admin token is configured the caller must present it as a Bearer token.
    """
    settings: Settings = _state_component(request, "settings")

    if not settings.security.raw_query_enabled:
        logger.warning("Raw query rejected: capability disabled", client=_client_host(request))
        raise CapabilityDisabled()

    expected = settings.security.admin_token
    if not expected:
        return

    presented = ""
    if authorization and authorization.lower().startswith("bearer "):
        presented = authorization[7:].strip()

    if not secrets.compare_digest(presented.encode(), expected.encode()):
        logger.warning("Raw query rejected: invalid admin token", client=_client_host(request))
        raise CapabilityDisabled("Invalid or missing admin token")


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"
