"""
Shared fixtures for the error tracking engine tests.

Every service takes an injectable clock, so time-dependent behaviour
(windows, cooldowns, timeouts) is driven by FakeClock instead of sleeping.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from errorwatch.config import ErrorSeverity, NotificationType, Settings
from errorwatch.tracking.application import (
    ErrorTrackingService,
    IAnalyticsSink,
    INotificationSink,
    IPersistenceAdapter,
)
from errorwatch.tracking.domain import ErrorIncident
from errorwatch.tracking.infrastructure import InMemorySnapshotStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotificationSink(INotificationSink):
    """Keeps every notification; optionally fails on delivery."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, Dict[str, str]]] = []
        self.closed = False

    async def notify_admins(self, title: str, body: str, data: Dict[str, str]) -> bool:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((title, body, data))
        return True

    async def close(self) -> None:
        self.closed = True

    def of_type(self, notification_type: str) -> List[Tuple[str, str, Dict[str, str]]]:
        return [n for n in self.sent if n[2].get("type") == notification_type]

    @property
    def alerts(self) -> List[Tuple[str, str, Dict[str, str]]]:
        return self.of_type(NotificationType.ERROR_ALERT)


class RecordingAnalyticsSink(IAnalyticsSink):
    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.errors: List[Dict[str, Any]] = []

    async def log_event(self, name: str, parameters: Dict[str, Any]) -> None:
        self.events.append((name, parameters))

    async def record_error(self, error, stack_trace, metadata, fatal) -> None:
        self.errors.append({
            "error": error,
            "stack_trace": stack_trace,
            "metadata": metadata,
            "fatal": fatal,
        })

    @property
    def event_names(self) -> List[str]:
        return [name for name, _ in self.events]


class UnavailablePersistence(IPersistenceAdapter):
    """Backend that cannot be reached at all."""

    async def load(self, key: str) -> Optional[str]:
        raise ConnectionError("snapshot backend unreachable")

    async def save(self, key: str, blob: str) -> bool:
        raise ConnectionError("snapshot backend unreachable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings isolated from the process environment and .env files."""
    def _make(**overrides) -> Settings:
        values = {
            "snapshot_dir": tmp_path / "snapshots",
            "thresholds_config_path": tmp_path / "error_thresholds.yaml",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def failing_notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink(fail=True)


@pytest.fixture
def analytics() -> RecordingAnalyticsSink:
    return RecordingAnalyticsSink()


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def unavailable_persistence() -> UnavailablePersistence:
    return UnavailablePersistence()


@pytest_asyncio.fixture
async def tracking(store, notifications, analytics, settings, clock):
    """Initialized tracking service with recording sinks."""
    service = ErrorTrackingService(
        persistence=store,
        notification_sink=notifications,
        analytics_sink=analytics,
        settings=settings,
        clock=clock,
    )
    await service.initialize()
    yield service
    await service.dispose()


@pytest.fixture
def error_factory(clock):
    """Build ErrorIncident values stamped with the fake clock by default."""
    counter = iter(range(1, 1_000_000))

    def _make(
        error_type: str = "network_error",
        severity: str = ErrorSeverity.MEDIUM,
        timestamp: Optional[datetime] = None,
        fatal: bool = False,
        **kwargs
    ) -> ErrorIncident:
        return ErrorIncident(
            id=kwargs.pop("id", f"err-{next(counter):04d}"),
            error_type=error_type,
            error_message=kwargs.pop("error_message", f"{error_type} happened"),
            error=kwargs.pop("error", "boom"),
            timestamp=timestamp or clock(),
            severity=severity,
            fatal=fatal,
            **kwargs
        )
    return _make
