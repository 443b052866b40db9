"""
Error Monitor
=============

Composition root for the error tracking engine.

Builds every service explicitly and wires them together:
- Error tracking (history, thresholds, alerts, persistence)
- Incident management (alert-triggered incidents, timeout escalation)
- Performance regression detection
- YAML threshold file with hot reload
- Background jobs (retention sweep, incident timeouts, baseline refresh)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from errorwatch.config import Settings, get_settings
from errorwatch.core import ConfigurationException
from errorwatch.incidents.application import IncidentManagementService
from errorwatch.performance.application import PerformanceRegressionDetector
from errorwatch.shared.infrastructure.logging import get_logger, setup_logging
from errorwatch.shared.infrastructure.scheduler import MonitoringScheduler
from errorwatch.tracking.application import (
    ErrorTrackingService,
    IAnalyticsSink,
    INotificationSink,
    IPersistenceAdapter,
)
from errorwatch.tracking.infrastructure import (
    JSONFileSnapshotStore,
    LoggingAnalyticsSink,
    LoggingNotificationSink,
    ThresholdConfigManager,
    WebhookNotificationSink,
)

logger = get_logger(__name__)


class ErrorMonitor:
    """
    Owns the engine's services and their lifecycle.

    Collaborators not passed in are built from settings: a JSON file
    snapshot store, a webhook notification sink when a URL is configured
    (log-only otherwise) and a logging analytics sink.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        persistence: Optional[IPersistenceAdapter] = None,
        notification_sink: Optional[INotificationSink] = None,
        analytics_sink: Optional[IAnalyticsSink] = None,
        clock=None,
        configure_logging: bool = True
    ):
        self.settings = settings or get_settings()
        self._configure_logging = configure_logging

        self.persistence = persistence or JSONFileSnapshotStore(self.settings.snapshot_dir)
        self.notification_sink = notification_sink or self._build_notification_sink()
        self.analytics_sink = analytics_sink or LoggingAnalyticsSink()

        self.tracking = ErrorTrackingService(
            persistence=self.persistence,
            notification_sink=self.notification_sink,
            analytics_sink=self.analytics_sink,
            settings=self.settings,
            clock=clock,
        )
        self.incidents = IncidentManagementService(
            notification_sink=self.notification_sink,
            settings=self.settings,
            clock=clock,
        )
        if self.settings.auto_create_incidents:
            self.tracking.add_alert_handler(self.incidents.create_from_alert)

        self.performance = PerformanceRegressionDetector(
            self.tracking,
            settings=self.settings,
            clock=clock,
        )
        self.thresholds = ThresholdConfigManager(self.tracking.threshold_registry)

        self.scheduler = MonitoringScheduler()
        self._register_jobs()
        self._started = False

    def _build_notification_sink(self) -> INotificationSink:
        if self.settings.notification_webhook_url:
            return WebhookNotificationSink(
                self.settings.notification_webhook_url,
                timeout_seconds=self.settings.notification_timeout_seconds,
            )
        return LoggingNotificationSink()

    def _register_jobs(self) -> None:
        self.scheduler.add_interval_job(
            "retention_sweep",
            self.tracking.cleanup_old_errors,
            self.settings.retention_sweep_interval_minutes * 60,
            name="Error retention sweep",
        )
        self.scheduler.add_interval_job(
            "incident_timeouts",
            self.incidents.check_incident_timeouts,
            self.settings.incident_check_interval_minutes * 60,
            name="Incident timeout escalation",
        )
        self.scheduler.add_interval_job(
            "baseline_refresh",
            self.performance.update_baselines,
            self.settings.baseline_update_interval_minutes * 60,
            name="Performance baseline refresh",
        )

    async def start(self) -> None:
        """
        STARTUP:
        1. Setup structured logging
        2. Restore the persisted snapshot
        3. Load the threshold file and watch it
        4. Start background jobs

        Raises:
            InitializationException: if the snapshot store is unavailable
        """
        if self._started:
            return

        if self._configure_logging:
            setup_logging(self.settings.log_level, self.settings.environment)
        logger.info("Starting error monitor", extra={
            "version": self.settings.app_version,
            "environment": self.settings.environment
        })

        await self.tracking.initialize()

        try:
            self.thresholds.load(self.settings.thresholds_config_path)
        except ConfigurationException as e:
            logger.error(
                "Threshold file rejected, running with built-in thresholds",
                extra={"path": str(self.settings.thresholds_config_path), **e.details}
            )
        else:
            self.thresholds.start_watching()

        await self.scheduler.start()
        self._started = True
        logger.info("Error monitor started", extra={"jobs": self.scheduler.job_ids})

    async def shutdown(self) -> None:
        """
        SHUTDOWN:
        1. Stop background jobs
        2. Stop the threshold file watcher
        3. Flush the pending snapshot write
        4. Close notification sinks
        """
        if not self._started:
            return

        logger.info("Shutting down error monitor")
        await self.scheduler.stop()
        self.thresholds.stop_watching()
        await self.tracking.dispose()
        await self.notification_sink.close()

        self._started = False
        logger.info("Error monitor shutdown complete")

    @property
    def is_running(self) -> bool:
        return self._started

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator["ErrorMonitor", None]:
        """Run the monitor for the duration of an ``async with`` block."""
        await self.start()
        try:
            yield self
        finally:
            await self.shutdown()
