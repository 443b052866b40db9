"""
Error Tracking Value Objects
=============================

Threshold configuration loaded from YAML.

This is a value object - immutable and defined by its attributes.
"""

from datetime import timedelta
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, Field

from errorwatch.config import ErrorSeverity
from errorwatch.core import ValidationException
from errorwatch.tracking.domain.alerting import build_threshold
from errorwatch.tracking.domain.entities import ErrorThreshold


class ThresholdConfig(BaseModel):
    """
    Threshold rules keyed by error type.

    Example YAML::

        include_defaults: true
        thresholds:
          network_error:
            max_occurrences: 3
            time_window_minutes: 5
            alert_severity: high
    """
    include_defaults: bool = Field(
        default=True,
        description="Keep built-in thresholds for types the file does not mention"
    )
    thresholds: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Raw rules; each is validated on its own"
    )

    def build(self) -> Tuple[List[ErrorThreshold], Dict[str, str]]:
        """
        Validate each rule independently.

        Returns:
            Tuple of (valid thresholds, {error_type: reason} for rejected rules)
        """
        valid: List[ErrorThreshold] = []
        rejected: Dict[str, str] = {}
        for error_type, rule in self.thresholds.items():
            try:
                window_minutes = float(rule["time_window_minutes"])
                valid.append(build_threshold(
                    error_type=error_type,
                    max_occurrences=int(rule["max_occurrences"]),
                    time_window=timedelta(minutes=window_minutes),
                    alert_severity=rule.get("alert_severity", ErrorSeverity.HIGH),
                ))
            except (KeyError, TypeError, ValueError) as e:
                rejected[error_type] = f"missing or malformed field: {e}"
            except ValidationException as e:
                rejected[error_type] = "; ".join(e.details.get("errors", [e.message]))
        return valid, rejected
