"""
Tests for prioritized cleanup and memory pressure handling.
"""
import pytest

from colorextract.services.lifecycle import MemoryStats, ResourceLifecycleManager


def stats(ratio):
    return MemoryStats(total_mb=1000.0, used_mb=1000.0 * ratio, available_mb=1000.0 * (1 - ratio),
                       usage_ratio=ratio)


@pytest.fixture
def manager_with_tasks():
    calls = []
    manager = ResourceLifecycleManager(warning=0.75, critical=0.90, emergency=0.95)
    manager.register_cleanup("low-a", lambda: calls.append("low-a"), "low")
    manager.register_cleanup("high-a", lambda: calls.append("high-a"), "high")
    manager.register_cleanup("medium-a", lambda: calls.append("medium-a"), "medium")
    manager.register_cleanup("high-b", lambda: calls.append("high-b"), "high")
    return manager, calls


class TestCleanupRegistry:
    """Test cleanup task ordering and failure handling"""

    def test_runs_high_priority_first_then_oldest(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        outcome = manager.run_cleanup()
        assert calls == ["high-a", "high-b", "medium-a", "low-a"]
        assert all(outcome.values())

    def test_runs_only_requested_priorities(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        manager.run_cleanup(["low", "medium"])
        assert calls == ["medium-a", "low-a"]

    def test_failing_task_is_kept(self):
        manager = ResourceLifecycleManager()

        def broken():
            raise RuntimeError("boom")

        manager.register_cleanup("broken", broken, "high")
        assert manager.run_cleanup() == {"broken": False}
        assert manager.registered() == ["broken"]

    def test_unregister(self, manager_with_tasks):
        manager, _ = manager_with_tasks
        assert manager.unregister_cleanup("low-a")
        assert not manager.unregister_cleanup("low-a")
        assert len(manager) == 3

    def test_unknown_priority(self):
        with pytest.raises(ValueError):
            ResourceLifecycleManager().register_cleanup("x", lambda: None, "urgent")


class TestMemoryPressure:
    """Test pressure levels and the cleanups they trigger"""

    def test_no_pressure(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        assert manager.check_memory_pressure(stats(0.5)) is None
        assert calls == []

    def test_warning_runs_low(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        assert manager.check_memory_pressure(stats(0.80)) == "warning"
        assert calls == ["low-a"]

    def test_critical_runs_low_and_medium(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        assert manager.check_memory_pressure(stats(0.92)) == "critical"
        assert calls == ["medium-a", "low-a"]

    def test_emergency_runs_everything(self, manager_with_tasks):
        manager, calls = manager_with_tasks
        assert manager.check_memory_pressure(stats(0.99)) == "emergency"
        assert calls == ["high-a", "high-b", "medium-a", "low-a"]

    def test_memory_stats_sampled_with_psutil(self):
        sample = ResourceLifecycleManager().get_memory_stats()
        assert sample.total_mb > 0
        assert 0.0 <= sample.usage_ratio <= 1.0
        assert sample.process_rss_mb > 0
