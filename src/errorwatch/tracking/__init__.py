"""
Error Tracking Module
=====================

Bounded context for error ingestion, threshold alerting and statistics.

Responsibilities:
- Keep bounded rolling history of ingested errors
- Evaluate per-type sliding-window thresholds with alert cooldown
- Notify admins and forward errors to analytics (best-effort)
- Persist and restore history snapshots
- Serve read-side statistics to the dashboard
"""
