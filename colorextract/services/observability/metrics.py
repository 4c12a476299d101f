"""
Observability metrics for the colorextract pipeline.

Per-operation timing, memory and CPU samples, aggregated in a thread-safe
collector, plus helpers for logging memory and forcing garbage collection.
"""

import gc
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import psutil
from loguru import logger


@dataclass
class PerformanceMetrics:
    """Performance sample for one pipeline operation."""
    operation_name: str
    duration_ms: float
    memory_usage_mb: float
    cpu_percent: float
    pixel_count: int
    region_count: int
    timestamp: float
    error: Optional[str] = None


class MetricsCollector:
    """Thread-safe metrics collector for extraction operations."""

    def __init__(self, max_history: int = 1000):
        self.max_history = max_history
        self._lock = threading.Lock()
        self._metrics_history: deque = deque(maxlen=max_history)
        self._operation_counts = defaultdict(int)
        self._error_counts = defaultdict(int)
        self._durations = defaultdict(lambda: deque(maxlen=100))

    def record_performance(self, metrics: PerformanceMetrics) -> None:
        """Record a performance sample."""
        with self._lock:
            self._metrics_history.append(metrics)
            self._operation_counts[metrics.operation_name] += 1
            if metrics.error:
                self._error_counts[metrics.operation_name] += 1
            self._durations[metrics.operation_name].append(metrics.duration_ms)

    def _stats_locked(self, operation_name: str) -> Dict[str, Any]:
        durations = list(self._durations.get(operation_name, ()))
        if not durations:
            return {}

        calls = self._operation_counts[operation_name]
        errors = self._error_counts[operation_name]
        return {
            'operation_name': operation_name,
            'total_calls': calls,
            'error_count': errors,
            'error_rate': errors / max(1, calls),
            'duration_stats': {
                'mean_ms': float(np.mean(durations)),
                'median_ms': float(np.median(durations)),
                'p95_ms': float(np.percentile(durations, 95)),
                'max_ms': float(np.max(durations)),
            },
        }

    def get_operation_stats(self, operation_name: str) -> Dict[str, Any]:
        """Aggregated statistics for one operation."""
        with self._lock:
            return self._stats_locked(operation_name)

    def get_all_stats(self) -> Dict[str, Any]:
        """Aggregated statistics for all operations."""
        with self._lock:
            total = sum(self._operation_counts.values())
            errors = sum(self._error_counts.values())
            return {
                'operations': {name: self._stats_locked(name) for name in self._operation_counts},
                'total_operations': total,
                'total_errors': errors,
                'overall_error_rate': errors / max(1, total),
            }

    def get_recent_metrics(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            recent = list(self._metrics_history)[-limit:]
            return [asdict(metric) for metric in recent]

    def reset(self) -> None:
        with self._lock:
            self._metrics_history.clear()
            self._operation_counts.clear()
            self._error_counts.clear()
            self._durations.clear()


# Global metrics collector instance
_metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return _metrics_collector


@contextmanager
def performance_monitor(operation_name: str, pixel_count: int = 0, region_count: int = 0):
    """Context manager recording duration, memory and CPU for an operation."""
    start_time = time.time()
    process = psutil.Process()
    start_memory = process.memory_info().rss / 1024 / 1024
    error_msg = None

    try:
        yield
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        raise
    finally:
        end_time = time.time()
        end_memory = process.memory_info().rss / 1024 / 1024

        metrics = PerformanceMetrics(
            operation_name=operation_name,
            duration_ms=(end_time - start_time) * 1000,
            memory_usage_mb=max(end_memory, start_memory),
            cpu_percent=process.cpu_percent(),
            pixel_count=pixel_count,
            region_count=region_count,
            timestamp=end_time,
            error=error_msg,
        )
        _metrics_collector.record_performance(metrics)

        if error_msg:
            logger.warning(f"Operation {operation_name} failed after {metrics.duration_ms:.1f}ms: {error_msg}")
        else:
            logger.debug(f"Operation {operation_name} completed in {metrics.duration_ms:.1f}ms "
                         f"(memory: {metrics.memory_usage_mb:.1f}MB, pixels: {pixel_count})")


def log_memory_usage(stage_name: str) -> Dict[str, Any]:
    """Log current process memory usage for a stage."""
    memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
    logger.debug(f"Memory usage at {stage_name}: {memory_mb:.1f}MB")
    return {
        'stage': stage_name,
        'memory_mb': memory_mb,
        'timestamp': time.time(),
    }


def force_garbage_collection() -> Dict[str, Any]:
    """Force garbage collection and log memory recovery."""
    before_mb = psutil.Process().memory_info().rss / 1024 / 1024
    collected = gc.collect()
    after_mb = psutil.Process().memory_info().rss / 1024 / 1024

    freed_mb = before_mb - after_mb
    if freed_mb > 1:
        logger.debug(f"Garbage collection freed {freed_mb:.1f}MB (collected {collected} objects)")

    return {
        'before_mb': before_mb,
        'after_mb': after_mb,
        'freed_mb': freed_mb,
        'objects_collected': collected,
    }
