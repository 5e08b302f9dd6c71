# src/govflow/observability/__init__.py
"""Performance metrics for governed operations."""

from .performance import MetricSample, MetricSummary, PerformanceMonitor

__all__ = ["MetricSample", "MetricSummary", "PerformanceMonitor"]
