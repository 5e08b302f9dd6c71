# src/govflow/observability/performance.py
"""
In-process performance metrics for governed operations.

Keeps the most recent samples per metric name (bounded deque) and derives
summaries, an overall performance report and an error breakdown.

Thread Safety:
    All operations take a single lock.

Usage:
    >>> monitor = PerformanceMonitor()
    >>> monitor.record_metric("code_generation", 812.5, success=True, tenant_id="acme")
    >>> monitor.metric_summary("code_generation").average_ms
    812.5
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel

MAX_SAMPLES_PER_METRIC = 1000


@dataclass
class MetricSample:
    value_ms: float
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class MetricSummary(BaseModel):
    name: str
    count: int = 0
    average_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p95_ms: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0


class PerformanceMonitor:
    """Bounded per-metric sample store."""

    def __init__(self, max_samples: int = MAX_SAMPLES_PER_METRIC):
        self._max_samples = max_samples
        self._metrics: Dict[str, Deque[MetricSample]] = {}
        self._lock = threading.Lock()

    def record_metric(
        self,
        name: str,
        value_ms: float,
        success: bool = True,
        error: Optional[str] = None,
        **labels: Any,
    ) -> None:
        sample = MetricSample(value_ms=float(value_ms), success=success, labels=labels, error=error)
        with self._lock:
            samples = self._metrics.get(name)
            if samples is None:
                samples = self._metrics[name] = deque(maxlen=self._max_samples)
            samples.append(sample)

    def samples(self, name: str) -> List[MetricSample]:
        with self._lock:
            return list(self._metrics.get(name, ()))

    def metric_summary(self, name: str) -> MetricSummary:
        samples = self.samples(name)
        if not samples:
            return MetricSummary(name=name)
        values = sorted(s.value_ms for s in samples)
        errors = sum(1 for s in samples if not s.success)
        p95_index = min(len(values) - 1, int(round(0.95 * (len(values) - 1))))
        return MetricSummary(
            name=name,
            count=len(values),
            average_ms=sum(values) / len(values),
            min_ms=values[0],
            max_ms=values[-1],
            p95_ms=values[p95_index],
            error_count=errors,
            error_rate=errors / len(values),
        )

    def performance_report(self) -> Dict[str, Any]:
        with self._lock:
            names = list(self._metrics)
        summaries = [self.metric_summary(n) for n in names]
        total = sum(s.count for s in summaries)
        errors = sum(s.error_count for s in summaries)
        return {
            "total_operations": total,
            "error_count": errors,
            "error_rate": errors / total if total else 0.0,
            "metrics": {s.name: s.model_dump() for s in summaries},
        }

    def error_summary(self) -> Dict[str, int]:
        """Count of failed samples per error message across all metrics."""
        counts: Dict[str, int] = {}
        with self._lock:
            for samples in self._metrics.values():
                for s in samples:
                    if not s.success:
                        key = s.error or "unknown"
                        counts[key] = counts.get(key, 0) + 1
        return counts
