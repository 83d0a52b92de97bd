"""
Prometheus metrics collection.

In-memory counters and histograms, exposed via /metrics. Each collector
owns its registry so several app instances can coexist in one process.
"""

import time
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for the log server.

    Keep metrics simple,
    use in-memory counters, let Prometheus handle storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Service info
        self.service_info = Info(
            "m3log_service",
            "M3 log server information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "m3log",
        })

        # Request metrics
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        # Ingestion metrics
        self.logs_ingested_total = Counter(
            "logs_ingested_total",
            "Total number of log records stored",
            registry=self.registry,
        )

        self.logs_rejected_total = Counter(
            "logs_rejected_total",
            "Total number of log lines rejected",
            ["reason"],
            registry=self.registry,
        )

        self.batch_size_entries = Histogram(
            "ingestion_batch_size_entries",
            "Number of records per ingestion request",
            buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
            registry=self.registry,
        )

        # Query metrics
        self.queries_total = Counter(
            "queries_total",
            "Total structured queries executed",
            registry=self.registry,
        )

        self.query_results = Histogram(
            "query_result_count",
            "Records returned per structured query",
            buckets=[0, 1, 10, 50, 100, 250, 500, 1000],
            registry=self.registry,
        )

        self.invalid_filters_total = Counter(
            "query_invalid_filters_total",
            "Content regexes ignored because they failed to compile",
            registry=self.registry,
        )

        self.raw_queries_total = Counter(
            "raw_queries_total",
            "Raw SQL statements executed",
            ["kind"],
            registry=self.registry,
        )

        # Retention metrics
        self.retention_deleted_total = Counter(
            "retention_deleted_total",
            "Records removed by the retention sweeper",
            registry=self.registry,
        )

        self.retention_last_run = Gauge(
            "retention_last_run_timestamp_seconds",
            "Unix time of the last completed retention sweep",
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ) -> None:
        """Record HTTP request metrics."""
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_ingestion(self, entries_count: int) -> None:
        """Record stored records."""
        self.logs_ingested_total.inc(entries_count)
        self.batch_size_entries.observe(entries_count)

    def record_rejection(self, reason: str, count: int = 1) -> None:
        self.logs_rejected_total.labels(reason=reason).inc(count)

    def record_query(self, result_count: int) -> None:
        self.queries_total.inc()
        self.query_results.observe(result_count)

    def record_invalid_filter(self) -> None:
        self.invalid_filters_total.inc()

    def record_raw_query(self, kind: str) -> None:
        self.raw_queries_total.labels(kind=kind).inc()

    def record_retention_sweep(self, deleted: int) -> None:
        self.retention_deleted_total.inc(deleted)
        self.retention_last_run.set(time.time())

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
