"""
errorwatch
==========

In-process error tracking and alerting engine.

Ingests application errors, keeps bounded rolling history, raises threshold
alerts with a cooldown, promotes alerts to incidents, detects performance
regressions against baselines and serves statistics.

Usage:
    from errorwatch import ErrorMonitor

    async with ErrorMonitor().lifespan() as monitor:
        await monitor.tracking.track_error("network_error", "Timeout", "GET /users")
"""

from errorwatch.monitor import ErrorMonitor

__version__ = "1.0.0"

__all__ = ["ErrorMonitor", "__version__"]
