"""
Error Tracking Domain Entities
===============================

Pure Python domain entities for error tracking and alerting.

These entities contain business logic and are free of infrastructure
concerns (no persistence, no notification delivery).
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from errorwatch.config import (
    ErrorSeverity, NotificationType,
    VALID_SEVERITIES, severity_rank
)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ErrorIncident:
    """
    A single reported application error.

    Immutable once created; it leaves the engine only through capacity
    eviction or the retention sweep.
    """

    id: str
    error_type: str
    error_message: str
    error: str
    timestamp: datetime
    severity: str = ErrorSeverity.MEDIUM
    fatal: bool = False
    stack_trace: Optional[str] = None
    user_id: Optional[str] = None
    screen_name: Optional[str] = None
    user_action: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    environment: str = "unknown"
    app_version: str = "unknown"

    def __post_init__(self):
        """Validate incident on initialization."""
        if not self.error_type:
            raise ValueError("error_type cannot be empty")
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(f"severity must be one of {VALID_SEVERITIES}")

    def is_at_least(self, severity: str) -> bool:
        """Check whether this error is at least as severe as ``severity``."""
        return severity_rank(self.severity) >= severity_rank(severity)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the persisted snapshot field names."""
        return {
            "id": self.id,
            "errorType": self.error_type,
            "errorMessage": self.error_message,
            "error": self.error,
            "stackTrace": self.stack_trace,
            "userId": self.user_id,
            "screenName": self.screen_name,
            "userAction": self.user_action,
            "metadata": dict(self.metadata),
            "severity": self.severity,
            "fatal": self.fatal,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
            "appVersion": self.app_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorIncident":
        """
        Rebuild an incident from its snapshot form.

        Raises:
            KeyError, TypeError, ValueError: when a required field is missing
                or malformed; callers loading snapshots skip such entries.
        """
        severity = data.get("severity")
        if severity not in VALID_SEVERITIES:
            severity = ErrorSeverity.MEDIUM

        return cls(
            id=str(data["id"]),
            error_type=data["errorType"],
            error_message=data.get("errorMessage") or "",
            error=data.get("error") or "",
            stack_trace=data.get("stackTrace"),
            user_id=data.get("userId"),
            screen_name=data.get("screenName"),
            user_action=data.get("userAction"),
            metadata=dict(data.get("metadata") or {}),
            severity=severity,
            fatal=bool(data.get("fatal", False)),
            timestamp=_parse_timestamp(data["timestamp"]),
            environment=data.get("environment") or "unknown",
            app_version=data.get("appVersion") or "unknown",
        )


class ErrorThreshold(BaseModel):
    """
    Alerting rule for one error type: at most ``max_occurrences`` within
    ``time_window`` before an alert is raised.
    """
    model_config = ConfigDict(frozen=True)

    error_type: str = Field(min_length=1, description="Error type the rule applies to")
    max_occurrences: int = Field(gt=0, description="Occurrences that trigger an alert")
    time_window: timedelta = Field(description="Sliding window the occurrences are counted in")
    alert_severity: str = Field(default=ErrorSeverity.HIGH, description="Severity reported with the alert")

    @field_validator("time_window")
    @classmethod
    def validate_time_window(cls, v: timedelta) -> timedelta:
        """Reject empty or negative windows."""
        if v <= timedelta(0):
            raise ValueError("time_window must be positive")
        return v

    @field_validator("alert_severity")
    @classmethod
    def validate_alert_severity(cls, v: str) -> str:
        if v not in VALID_SEVERITIES:
            raise ValueError(f"alert_severity must be one of {VALID_SEVERITIES}")
        return v

    @property
    def time_window_minutes(self) -> int:
        return int(self.time_window.total_seconds() // 60)


@dataclass(frozen=True)
class ErrorAlert:
    """An alert raised when a threshold is crossed outside its cooldown."""

    error_type: str
    occurrence_count: int
    threshold: int
    time_window: timedelta
    severity: str
    triggering_error_id: str
    triggered_at: datetime

    @property
    def title(self) -> str:
        return f"Error Alert: {self.error_type}"

    @property
    def message(self) -> str:
        return (
            f"Error threshold exceeded for {self.error_type}: "
            f"{self.occurrence_count} occurrences in "
            f"{int(self.time_window.total_seconds() // 60)} minutes"
        )

    def to_notification_data(self) -> Dict[str, str]:
        """String map delivered alongside the admin notification."""
        return {
            "type": NotificationType.ERROR_ALERT,
            "error_type": self.error_type,
            "occurrence_count": str(self.occurrence_count),
            "threshold": str(self.threshold),
            "time_window_minutes": str(int(self.time_window.total_seconds() // 60)),
            "severity": self.severity,
            "incident_id": self.triggering_error_id,
        }
