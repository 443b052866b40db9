"""
Configuration Module
====================

Engine settings and shared constants, loaded with Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Every variable is prefixed with ``ERRORWATCH_``.
    """

    # ========== Application ==========
    app_name: str = Field(default="errorwatch", description="Application name")
    app_version: str = Field(default="1.0.0", description="Version tag stamped on tracked errors")
    environment: str = Field(default="development", description="Environment tag stamped on tracked errors")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== History ==========
    max_error_history: int = Field(
        default=1000,
        description="Records kept per error type",
        ge=1
    )
    max_recent_errors: int = Field(
        default=50,
        description="Records kept in the global recent list",
        ge=1
    )
    error_retention_days: int = Field(
        default=7,
        description="Records older than this are removed by the retention sweep",
        ge=1
    )
    retention_sweep_interval_minutes: int = Field(
        default=360,
        description="Minutes between retention sweeps",
        ge=1
    )

    # ========== Alerting ==========
    alert_cooldown_minutes: int = Field(
        default=15,
        description="Minimum minutes between two alerts of the same error type",
        ge=0
    )
    thresholds_config_path: Path = Field(
        default=Path("error_thresholds.yaml"),
        description="Path to threshold YAML file (optional)"
    )
    auto_create_incidents: bool = Field(
        default=True,
        description="Open an incident for the triggering error whenever an alert fires"
    )

    # ========== Incidents ==========
    max_incident_history: int = Field(
        default=500,
        description="Archived incidents kept in memory",
        ge=1
    )
    incident_timeout_minutes: int = Field(
        default=120,
        description="Open incidents older than this are escalated",
        ge=1
    )
    incident_check_interval_minutes: int = Field(
        default=30,
        description="Minutes between incident timeout sweeps",
        ge=1
    )

    # ========== Performance ==========
    max_metric_history: int = Field(default=1000, description="Samples kept per metric", ge=1)
    baseline_sample_size: int = Field(
        default=100,
        description="Most recent samples averaged into a baseline",
        ge=1
    )
    baseline_min_samples: int = Field(
        default=50,
        description="Samples required before a baseline is recomputed",
        ge=1
    )
    baseline_update_interval_minutes: int = Field(
        default=1440,
        description="Minutes between baseline recomputations",
        ge=1
    )
    regression_multiplier: float = Field(
        default=1.5,
        description="A sample above baseline * multiplier is a regression",
        gt=1.0
    )

    # ========== Persistence ==========
    snapshot_dir: Path = Field(
        default=Path(".errorwatch"),
        description="Directory for JSON snapshot files"
    )
    persistence_key: str = Field(
        default="error_tracking_data",
        description="Key the history snapshot is stored under"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL for admin notifications"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_prefix="ERRORWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class ErrorSeverity(str):
    """Severity of a tracked error."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentPriority(str):
    """Incident priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentStatus(str):
    """Incident lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TrendDirection(str):
    """Direction of the 24h error trend."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class NotificationType(str):
    """Values of the ``type`` field sent with admin notifications."""
    ERROR_ALERT = "error_alert"
    INCIDENT_CREATED = "incident_created"
    INCIDENT_ESCALATED = "incident_escalated"


PERFORMANCE_DEGRADATION = "performance_degradation"


# ========== Lists for validation ==========

# Ordered from least to most severe
VALID_SEVERITIES = [
    ErrorSeverity.LOW, ErrorSeverity.MEDIUM,
    ErrorSeverity.HIGH, ErrorSeverity.CRITICAL
]
VALID_PRIORITIES = [
    IncidentPriority.LOW, IncidentPriority.MEDIUM,
    IncidentPriority.HIGH, IncidentPriority.CRITICAL
]
VALID_INCIDENT_STATUSES = [
    IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS, IncidentStatus.ESCALATED,
    IncidentStatus.RESOLVED, IncidentStatus.CLOSED
]
ACTIVE_INCIDENT_STATUSES = [
    IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS, IncidentStatus.ESCALATED
]
TERMINAL_INCIDENT_STATUSES = [IncidentStatus.RESOLVED, IncidentStatus.CLOSED]


def severity_rank(severity: str) -> int:
    """Position of a severity in VALID_SEVERITIES (unknown values rank lowest)."""
    try:
        return VALID_SEVERITIES.index(severity)
    except ValueError:
        return -1
