"""
Custom exceptions for the M3 log server and client.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses.
"""

from typing import Any, Dict, Optional


class M3LogException(Exception):
    """Base exception for the log server."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class MalformedRecord(M3LogException):
    """Raised when a submitted line does not decode into a log record."""

    def __init__(self, message: str = "Invalid log format", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="malformed_record",
            details=details,
        )


class StorageFailure(M3LogException):
    """Raised when the storage engine rejects a read or write."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="storage_failure",
            details=details,
        )


class InvalidFilter(M3LogException):
    """
    Raised when a query filter cannot be compiled.

    The query path catches this for content regexes and degrades to
    no regex filtering instead of failing the request.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="invalid_filter",
            details=details,
        )


class CapabilityDisabled(M3LogException):
    """Raised when a gated operation (raw SQL) is not allowed."""

    def __init__(self, message: str = "Raw queries are disabled") -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="capability_disabled",
        )


class TransportFailure(M3LogException):
    """Raised by client transports on network errors or non-200 responses."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if body:
            details["body"] = body
        super().__init__(
            message=message,
            status_code=502,
            error_code="transport_failure",
            details=details,
        )
        self.status = status
        self.body = body
