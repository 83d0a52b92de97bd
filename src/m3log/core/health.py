"""
Health checker implementation for monitoring system dependencies.

Performs health checks for:
- Storage reachability
- Disk space availability on the data directory
- Retention sweeper status
"""

import asyncio
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from .retention import RetentionSweeper
from .storage import LogStorage

logger = structlog.get_logger(__name__)

DISK_FREE_MIN_RATIO = 0.05


@dataclass
class HealthCheck:
    """Individual health check result."""
    name: str
    status: str  # "healthy", "unhealthy"
    message: str
    details: Dict[str, Any]
    last_check: float


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    checks: Dict[str, HealthCheck]
    failed_checks: List[str]
    timestamp: float


class HealthChecker:
    """
    Health checker for the log server's dependencies.

    Monitors:
    - Storage (database answers a trivial query)
    - Disk space on the data directory
    - Retention sweeper (running, when enabled)
    """

    def __init__(
        self,
        storage: LogStorage,
        sweeper: Optional[RetentionSweeper] = None,
        disk_free_min_ratio: float = DISK_FREE_MIN_RATIO,
    ):
        self.storage = storage
        self.sweeper = sweeper
        self.disk_free_min_ratio = disk_free_min_ratio

    async def check_all(self) -> HealthStatus:
        """Perform all health checks and return overall status."""
        checks: Dict[str, HealthCheck] = {}
        failed_checks: List[str] = []

        check_results = await asyncio.gather(
            asyncio.to_thread(self._check_storage),
            asyncio.to_thread(self._check_disk_space),
            asyncio.to_thread(self._check_sweeper),
            return_exceptions=True
        )

        check_names = ["storage", "disk", "retention"]
        for name, result in zip(check_names, check_results):
            if isinstance(result, Exception):
                checks[name] = HealthCheck(
                    name=name,
                    status="unhealthy",
                    message=f"Check failed: {str(result)}",
                    details={"error": str(result), "error_type": type(result).__name__},
                    last_check=time.time()
                )
                failed_checks.append(name)
            elif isinstance(result, HealthCheck):
                checks[name] = result
                if result.status != "healthy":
                    failed_checks.append(name)

        return HealthStatus(
            is_healthy=not failed_checks,
            checks=checks,
            failed_checks=failed_checks,
            timestamp=time.time()
        )

    def _check_storage(self) -> HealthCheck:
        try:
            self.storage.ping()
            return HealthCheck(
                name="storage",
                status="healthy",
                message="Database reachable",
                details={"path": str(self.storage.db_path), "records": self.storage.count()},
                last_check=time.time()
            )
        except Exception as e:
            logger.warning("Storage health check failed", error=str(e))
            return HealthCheck(
                name="storage",
                status="unhealthy",
                message=f"Database unreachable: {str(e)}",
                details={"path": str(self.storage.db_path), "error": str(e)},
                last_check=time.time()
            )

    def _check_disk_space(self) -> HealthCheck:
        """Check if the data directory's disk has enough free space."""
        data_dir: Path = self.storage.db_path.parent
        try:
            total, used, free = shutil.disk_usage(data_dir)
        except OSError as e:
            return HealthCheck(
                name="disk",
                status="unhealthy",
                message=f"Disk check failed: {str(e)}",
                details={"error": str(e)},
                last_check=time.time()
            )

        free_ratio = free / total if total else 0.0
        free_percentage = free_ratio * 100
        if free_ratio >= self.disk_free_min_ratio:
            status = "healthy"
            message = f"Disk space OK: {free_percentage:.1f}% free"
        else:
            status = "unhealthy"
            message = f"Low disk space: {free_percentage:.1f}% free"

        return HealthCheck(
            name="disk",
            status=status,
            message=message,
            details={
                "path": str(data_dir),
                "total_bytes": total,
                "free_bytes": free,
                "free_percentage": round(free_percentage, 1),
                "min_required_percentage": round(self.disk_free_min_ratio * 100, 1)
            },
            last_check=time.time()
        )

    def _check_sweeper(self) -> HealthCheck:
        if self.sweeper is None:
            return HealthCheck(
                name="retention",
                status="healthy",
                message="Retention sweeper disabled",
                details={"enabled": False},
                last_check=time.time()
            )

        if self.sweeper.is_healthy():
            return HealthCheck(
                name="retention",
                status="healthy",
                message="Retention sweeper is running",
                details={
                    "enabled": True,
                    "retention_days": self.sweeper.retention_days,
                    "last_deleted": self.sweeper.last_deleted,
                },
                last_check=time.time()
            )

        return HealthCheck(
            name="retention",
            status="unhealthy",
            message="Retention sweeper is not running",
            details={"enabled": True},
            last_check=time.time()
        )
