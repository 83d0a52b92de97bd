"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Generator, List

import pytest
from fastapi.testclient import TestClient

from m3log.config import QuerySettings, RetentionSettings, SecuritySettings, Settings, StorageSettings
from m3log.core.exceptions import TransportFailure
from m3log.core.storage import LogStorage
from m3log.main import create_app
from m3log.models.log_record import LogRecord


@pytest.fixture
def storage(tmp_path: Path) -> Generator[LogStorage, None, None]:
    """Fresh SQLite storage in a temporary directory."""
    store = LogStorage(tmp_path / "logs.db")
    yield store
    store.close()


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    """Factory for log records with sensible defaults."""
    def _make(**overrides: Any) -> LogRecord:
        fields: Dict[str, Any] = {
            "source": "svc",
            "date": "2024-03-01",
            "time": "10:00:00",
            "level": "INFO",
            "trace_id": None,
            "content": "hello",
        }
        fields.update(overrides)
        return LogRecord(**fields)
    return _make


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary data directory; no sweep during tests."""
    return Settings(
        log_level="WARNING",
        storage=StorageSettings(data_dir=tmp_path / "data"),
        retention=RetentionSettings(retention_days=7, initial_delay_seconds=3600),
        query=QuerySettings(default_limit=1000),
        security=SecuritySettings(raw_query_enabled=True, admin_token=""),
    )


@pytest.fixture
def test_client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """FastAPI test client with test configuration."""
    with TestClient(create_app(test_settings)) as client:
        yield client


class FakeTransport:
    """In-memory transport recording every batch; can be told to fail."""

    def __init__(self) -> None:
        self.sent: List[List[str]] = []
        self.attempts = 0
        self.fail = False
        self.closed = False

    async def send(self, source: str, lines: List[str]) -> None:
        self.attempts += 1
        if self.fail:
            raise TransportFailure("Server returned status 503", status=503, body="unavailable")
        self.sent.append(list(lines))

    async def close(self) -> None:
        self.closed = True

    @property
    def delivered(self) -> List[str]:
        return [line for batch in self.sent for line in batch]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
