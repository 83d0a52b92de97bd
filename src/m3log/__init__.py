"""
M3 Log Server - batched log ingestion and query service

A FastAPI-based service that accepts tab-encoded log lines from client
SDKs, stores them in SQLite, answers filtered queries and prunes old
records. The `m3log.client` package holds the Python SDK.
"""

__version__ = "0.1.0"
