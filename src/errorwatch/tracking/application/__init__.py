"""
Error Tracking Application Layer
=================================

Contains:
- Services: ErrorTrackingService orchestrating ingestion, alerting and queries
- External interfaces: persistence adapter, notification and analytics sinks
- DTOs: the persisted snapshot envelope

This layer depends on the domain layer and the sink abstractions,
but not on concrete infrastructure implementations.
"""

from errorwatch.tracking.application.dto import ErrorSnapshotDTO, RestoredState, decode_snapshot
from errorwatch.tracking.application.services import (
    ErrorTrackingService,
    IPersistenceAdapter,
    INotificationSink,
    IAnalyticsSink,
    utc_now,
)

__all__ = [
    # DTOs
    "ErrorSnapshotDTO",
    "RestoredState",
    "decode_snapshot",
    # Services
    "ErrorTrackingService",
    "utc_now",
    # External Interfaces
    "IPersistenceAdapter",
    "INotificationSink",
    "IAnalyticsSink",
]
