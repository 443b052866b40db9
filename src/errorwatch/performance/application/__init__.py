"""
Performance Application Layer
=============================
"""

from errorwatch.performance.application.services import PerformanceRegressionDetector

__all__ = ["PerformanceRegressionDetector"]
