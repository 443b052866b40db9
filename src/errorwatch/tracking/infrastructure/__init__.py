"""
Error Tracking Infrastructure Layer
====================================

Infrastructure implementations for error tracking:
- Persistence: snapshot stores (in-memory, JSON files)
- External: notification and analytics sinks, threshold file watcher
"""

from errorwatch.tracking.infrastructure.persistence import (
    InMemorySnapshotStore,
    JSONFileSnapshotStore,
)
from errorwatch.tracking.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    LoggingAnalyticsSink,
    LoggingNotificationSink,
    ThresholdConfigManager,
    WebhookNotificationSink,
)

__all__ = [
    "InMemorySnapshotStore",
    "JSONFileSnapshotStore",
    "CircuitBreaker",
    "CircuitState",
    "LoggingAnalyticsSink",
    "LoggingNotificationSink",
    "ThresholdConfigManager",
    "WebhookNotificationSink",
]
