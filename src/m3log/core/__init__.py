"""
Core business logic components.

This package contains the ingestion and query pipeline:
- Record codec (tab-delimited wire format)
- Ingestion handler
- SQLite storage engine
- Query engine with regex post-filtering
- Retention sweeper
- Metrics and health checks
"""
