"""
Performance Monitoring Module
=============================

Bounded context for metric samples and baseline regression detection.

Responsibilities:
- Keep bounded per-metric sample history
- Maintain rolling baselines (average, p50, p95)
- Report regressions to error tracking as performance degradation errors
"""
