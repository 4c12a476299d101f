"""
Tests for the quantization worker handle and task envelopes.
"""
import numpy as np
import pytest

from colorextract.errors import ResourceUnavailableError
from colorextract.schemas import QuantizationOptions
from colorextract.services.colors.quantize import build_region_histogram
from colorextract.services.colors.regions import Region, partition
from colorextract.services.imaging import PixelBuffer
from colorextract.services.workers import ExtractionTask, QuantizationWorker, quantize_task


@pytest.fixture
def noisy_buffer():
    rng = np.random.default_rng(21)
    return PixelBuffer.from_array(rng.integers(0, 256, size=(48, 64, 4), dtype=np.uint8))


def make_tasks(buffer, options, count=4):
    return [
        ExtractionTask(request_id="pal-test", region_index=i, region=region, buffer=buffer, options=options)
        for i, region in enumerate(partition(buffer.width, buffer.height, count))
    ]


class TestExtractionTask:
    """Test task envelopes"""

    def test_task_ids_are_unique(self, noisy_buffer):
        tasks = make_tasks(noisy_buffer, QuantizationOptions())
        assert len({t.id for t in tasks}) == len(tasks)

    def test_quantize_task_tags_result(self, noisy_buffer):
        options = QuantizationOptions(quality="high")
        task = make_tasks(noisy_buffer, options)[3]

        result = quantize_task(task)

        assert result.task_id == task.id
        assert result.request_id == "pal-test"
        assert result.region_index == 3
        assert result.histogram == build_region_histogram(noisy_buffer.pixels, task.region, options, region_index=3)

    def test_detached_task_matches_shared_buffer(self, noisy_buffer):
        """A cropped, rebased region quantizes exactly like the original"""
        options = QuantizationOptions(quality="medium")
        task = ExtractionTask(
            request_id="pal-test", region_index=1, region=Region(13, 7, 30, 21),
            buffer=noisy_buffer, options=options,
        )

        detached = task.detached()

        assert detached.id == task.id
        assert detached.region == Region(0, 0, 30, 21)
        assert detached.buffer.size == (30, 21)
        assert quantize_task(detached).histogram == quantize_task(task).histogram


class TestQuantizationWorker:
    """Test executor lifecycle"""

    def test_thread_worker_runs_tasks(self, noisy_buffer):
        options = QuantizationOptions(quality="high")
        with QuantizationWorker("thread", max_workers=2) as worker:
            futures = [worker.submit(task) for task in make_tasks(noisy_buffer, options)]
            results = [f.result(timeout=10) for f in futures]
            assert worker.started

        assert [r.region_index for r in results] == [0, 1, 2, 3]
        assert sum(r.histogram.sampled_pixels for r in results) == int(np.count_nonzero(noisy_buffer.pixels[..., 3] >= 128))

    def test_process_worker_matches_thread_worker(self, noisy_buffer):
        options = QuantizationOptions(quality="high")
        tasks = make_tasks(noisy_buffer, options)

        with QuantizationWorker("process", max_workers=2) as worker:
            process_results = [worker.submit(t).result(timeout=60) for t in tasks]

        assert [r.histogram for r in process_results] == [quantize_task(t).histogram for t in tasks]

    def test_sync_worker_has_no_executor(self, noisy_buffer):
        worker = QuantizationWorker("sync")
        assert not worker.available
        with pytest.raises(ResourceUnavailableError):
            worker.submit(make_tasks(noisy_buffer, QuantizationOptions())[0])

    def test_release_keeps_handle_usable(self, noisy_buffer):
        worker = QuantizationWorker("thread", max_workers=1)
        task = make_tasks(noisy_buffer, QuantizationOptions())[0]
        worker.submit(task).result(timeout=10)

        assert worker.release(wait=True)
        assert not worker.started
        assert not worker.release()

        worker.submit(task).result(timeout=10)
        worker.shutdown(wait=True)

    def test_shutdown_refuses_work(self, noisy_buffer):
        worker = QuantizationWorker("thread", max_workers=1)
        worker.shutdown()
        assert not worker.available
        with pytest.raises(ResourceUnavailableError):
            worker.submit(make_tasks(noisy_buffer, QuantizationOptions())[0])

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            QuantizationWorker("gpu")
