"""
Threshold Registry & Alert Engine
==================================

Evaluates per-type sliding-window thresholds on every ingestion and applies
a per-type cooldown so a sustained burst produces one alert per cooldown
period rather than one per breach.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import ValidationError

from errorwatch.config import ErrorSeverity
from errorwatch.core import ValidationException
from errorwatch.tracking.domain.entities import ErrorAlert, ErrorIncident, ErrorThreshold
from errorwatch.tracking.domain.history import BoundedHistoryStore


def build_threshold(
    error_type: str,
    max_occurrences: int,
    time_window: timedelta,
    alert_severity: str = ErrorSeverity.HIGH
) -> ErrorThreshold:
    """
    Build a validated threshold.

    Raises:
        ValidationException: for an empty type, non-positive occurrences or
            window, or an unknown severity
    """
    try:
        return ErrorThreshold(
            error_type=error_type,
            max_occurrences=max_occurrences,
            time_window=time_window,
            alert_severity=alert_severity,
        )
    except ValidationError as e:
        raise ValidationException(
            f"Invalid threshold for '{error_type}'",
            {"errors": [err["msg"] for err in e.errors()]}
        ) from e


# (error_type, max_occurrences, window, severity)
DEFAULT_THRESHOLDS = [
    ("app_crash", 3, timedelta(hours=1), ErrorSeverity.CRITICAL),
    ("network_error", 10, timedelta(minutes=30), ErrorSeverity.HIGH),
    ("auth_error", 5, timedelta(minutes=15), ErrorSeverity.HIGH),
    ("performance_degradation", 5, timedelta(minutes=10), ErrorSeverity.MEDIUM),
    ("validation_error", 20, timedelta(hours=1), ErrorSeverity.LOW),
]


class ThresholdRegistry:
    """
    Thread-safe map of error type to threshold, last write wins.

    Locked because the YAML watcher replaces thresholds from its own thread.
    """

    def __init__(self):
        self._thresholds: Dict[str, ErrorThreshold] = {}
        self._lock = threading.Lock()

    def set(self, threshold: ErrorThreshold) -> None:
        with self._lock:
            self._thresholds[threshold.error_type] = threshold

    def get(self, error_type: str) -> Optional[ErrorThreshold]:
        with self._lock:
            return self._thresholds.get(error_type)

    def remove(self, error_type: str) -> bool:
        with self._lock:
            return self._thresholds.pop(error_type, None) is not None

    def all(self) -> List[ErrorThreshold]:
        with self._lock:
            return list(self._thresholds.values())

    def install_defaults(self) -> None:
        """Register the built-in thresholds for types not configured yet."""
        for error_type, max_occurrences, window, severity in DEFAULT_THRESHOLDS:
            if self.get(error_type) is None:
                self.set(build_threshold(error_type, max_occurrences, window, severity))

    def __len__(self) -> int:
        with self._lock:
            return len(self._thresholds)


class AlertEngine:
    """
    Decides whether an ingested error raises an alert.

    The cooldown is keyed on error type only: two severities of the same
    type share one cooldown.
    """

    def __init__(self, registry: ThresholdRegistry, cooldown: timedelta = timedelta(minutes=15)):
        self._registry = registry
        self.cooldown = cooldown
        self._last_alert_times: Dict[str, datetime] = {}

    def evaluate(
        self,
        error: ErrorIncident,
        history: BoundedHistoryStore,
        now: datetime
    ) -> Optional[ErrorAlert]:
        """
        Evaluate the threshold for ``error`` (already appended to ``history``).

        Returns:
            The fired alert, or None when no threshold is configured, the
            window count is below it, or the type is cooling down
        """
        threshold = self._registry.get(error.error_type)
        if threshold is None:
            return None

        window_start = now - threshold.time_window
        count = history.count_since(error.error_type, window_start)
        if count < threshold.max_occurrences:
            return None

        if self.is_cooling_down(error.error_type, now):
            return None

        self._last_alert_times[error.error_type] = now
        return ErrorAlert(
            error_type=error.error_type,
            occurrence_count=count,
            threshold=threshold.max_occurrences,
            time_window=threshold.time_window,
            severity=threshold.alert_severity,
            triggering_error_id=error.id,
            triggered_at=now,
        )

    def is_cooling_down(self, error_type: str, now: datetime) -> bool:
        last_alert = self._last_alert_times.get(error_type)
        return last_alert is not None and now - last_alert <= self.cooldown

    def last_alert_times(self) -> Dict[str, datetime]:
        return dict(self._last_alert_times)

    def restore_alert_times(self, alert_times: Dict[str, datetime]) -> None:
        self._last_alert_times = dict(alert_times)

    def reset(self) -> None:
        self._last_alert_times.clear()
