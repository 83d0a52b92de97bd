"""
Python client SDK.

LogBuffer batches records and retries failed sends; HttpTransport ships
batches to the server's /api/logs endpoint.
"""

from .buffer import DEFAULT_FLUSH_INTERVAL, LogBuffer
from .transport import HttpTransport, Transport

__all__ = ["DEFAULT_FLUSH_INTERVAL", "LogBuffer", "HttpTransport", "Transport"]
