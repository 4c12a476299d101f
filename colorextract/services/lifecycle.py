"""
colorextract Resource Lifecycle
Prioritized cleanup tasks driven by system memory pressure.
"""
import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

import psutil
from loguru import logger

from colorextract.config import config
from colorextract.services.observability.metrics import force_garbage_collection

PRIORITIES = ("high", "medium", "low")
_PRIORITY_RANK = {name: rank for rank, name in enumerate(PRIORITIES)}


@dataclass
class CleanupTask:
    """Registered cleanup callback."""
    task_id: str
    cleanup: Callable[[], Any]
    priority: str = "medium"
    sequence: int = 0
    failures: int = 0


@dataclass
class MemoryStats:
    """Snapshot of system memory usage."""
    total_mb: float
    used_mb: float
    available_mb: float
    usage_ratio: float
    process_rss_mb: float = 0.0


class ResourceLifecycleManager:
    """
    Registry of cleanup callbacks run when memory gets tight.

    Levels map to the priorities they release:
        warning   -> low
        critical  -> low, medium (then a GC pass)
        emergency -> every priority (then a GC pass)
    """

    def __init__(self, warning: Optional[float] = None, critical: Optional[float] = None,
                 emergency: Optional[float] = None):
        self.thresholds = {
            'warning': warning if warning is not None else config.MEMORY_WARNING,
            'critical': critical if critical is not None else config.MEMORY_CRITICAL,
            'emergency': emergency if emergency is not None else config.MEMORY_EMERGENCY,
        }
        self._tasks: Dict[str, CleanupTask] = {}
        self._sequence = itertools.count()

    def register_cleanup(self, task_id: str, cleanup: Callable[[], Any], priority: str = "medium") -> None:
        """Register (or replace) a cleanup callback."""
        if priority not in _PRIORITY_RANK:
            raise ValueError(f"Unknown cleanup priority: {priority}")
        self._tasks[task_id] = CleanupTask(
            task_id=task_id,
            cleanup=cleanup,
            priority=priority,
            sequence=next(self._sequence),
        )

    def unregister_cleanup(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def registered(self) -> List[str]:
        return [task.task_id for task in self._ordered(PRIORITIES)]

    def _ordered(self, priorities: Iterable[str]) -> List[CleanupTask]:
        wanted = set(priorities)
        tasks = [t for t in self._tasks.values() if t.priority in wanted]
        # High priority first, oldest registration first within a priority
        return sorted(tasks, key=lambda t: (_PRIORITY_RANK[t.priority], t.sequence))

    def run_cleanup(self, priorities: Iterable[str] = PRIORITIES) -> Dict[str, bool]:
        """
        Run registered cleanups for the given priorities.

        Returns:
            Mapping task_id -> succeeded. Failing tasks are logged and stay
            registered.
        """
        priorities = tuple(priorities)
        outcome: Dict[str, bool] = {}
        for task in self._ordered(priorities):
            try:
                task.cleanup()
                outcome[task.task_id] = True
            except Exception as e:
                task.failures += 1
                outcome[task.task_id] = False
                logger.error(f"Cleanup task {task.task_id} ({task.priority}) failed: {e}")

        if outcome:
            logger.debug(f"Ran {len(outcome)} cleanup tasks for priorities {list(priorities)}")
        return outcome

    def get_memory_stats(self) -> MemoryStats:
        vm = psutil.virtual_memory()
        rss = psutil.Process().memory_info().rss
        return MemoryStats(
            total_mb=vm.total / 1024 / 1024,
            used_mb=(vm.total - vm.available) / 1024 / 1024,
            available_mb=vm.available / 1024 / 1024,
            usage_ratio=(vm.total - vm.available) / vm.total if vm.total else 0.0,
            process_rss_mb=rss / 1024 / 1024,
        )

    def pressure_level(self, usage_ratio: float) -> Optional[str]:
        """Highest threshold crossed by usage_ratio, or None."""
        for level in ('emergency', 'critical', 'warning'):
            if usage_ratio >= self.thresholds[level]:
                return level
        return None

    def check_memory_pressure(self, stats: Optional[MemoryStats] = None) -> Optional[str]:
        """
        Sample memory usage and run the cleanups its level calls for.

        Args:
            stats: Pre-sampled stats; sampled with psutil when omitted

        Returns:
            The pressure level acted upon, or None
        """
        stats = stats or self.get_memory_stats()
        level = self.pressure_level(stats.usage_ratio)
        if level is None:
            return None

        logger.warning(f"Memory pressure {level}: {stats.usage_ratio:.0%} in use "
                       f"({stats.available_mb:.0f}MB available)")

        if level == 'warning':
            self.run_cleanup(['low'])
        elif level == 'critical':
            self.run_cleanup(['low', 'medium'])
            force_garbage_collection()
        else:
            self.run_cleanup(PRIORITIES)
            force_garbage_collection()

        return level

    def __len__(self) -> int:
        return len(self._tasks)
