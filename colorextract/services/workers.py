"""
colorextract Quantization Workers
Task envelopes and the executor handle regions are fanned out to.
"""
import time
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from colorextract.config import config
from colorextract.errors import ResourceUnavailableError
from colorextract.schemas import QuantizationOptions
from colorextract.services.colors.quantize import RegionHistogram, build_region_histogram
from colorextract.services.colors.regions import Region
from colorextract.services.imaging import PixelBuffer
from colorextract.utils.ids import new_task_id


@dataclass(frozen=True, eq=False)
class ExtractionTask:
    """One region of one request, as handed to a worker."""
    request_id: str
    region_index: int
    region: Region
    buffer: PixelBuffer
    options: QuantizationOptions
    id: str = field(default_factory=new_task_id)

    def detached(self) -> "ExtractionTask":
        """
        Copy of this task carrying only its own region's pixels.

        Used before crossing a process boundary so each worker receives a
        region-sized array instead of the whole buffer. The region is rebased
        to the origin of the cropped buffer.
        """
        rows, cols = self.region.slices()
        cropped = PixelBuffer.from_array(self.buffer.pixels[rows, cols].copy())
        return ExtractionTask(
            request_id=self.request_id,
            region_index=self.region_index,
            region=Region(x=0, y=0, width=self.region.width, height=self.region.height),
            buffer=cropped,
            options=self.options,
            id=self.id,
        )


@dataclass
class RegionResult:
    """Histogram produced for one task, tagged for correlation."""
    task_id: str
    request_id: str
    region_index: int
    histogram: RegionHistogram
    elapsed_ms: float = 0.0


def quantize_task(task: ExtractionTask) -> RegionResult:
    """Worker entry point. Module level so process pools can pickle it."""
    start_time = time.time()
    histogram = build_region_histogram(
        task.buffer.pixels,
        task.region,
        task.options,
        region_index=task.region_index,
    )
    return RegionResult(
        task_id=task.id,
        request_id=task.request_id,
        region_index=task.region_index,
        histogram=histogram,
        elapsed_ms=(time.time() - start_time) * 1000,
    )


class QuantizationWorker:
    """
    Lazily created executor handle owned by one orchestrator.

    Modes:
        thread: ThreadPoolExecutor; tasks share the buffer read-only
        process: ProcessPoolExecutor; tasks ship a detached region copy
        sync: no executor; callers quantize on their own thread
    """

    def __init__(self, mode: Optional[str] = None, max_workers: Optional[int] = None):
        self.mode = mode or config.EXECUTOR
        if not config.validate_executor(self.mode):
            raise ValueError(f"Unknown executor mode: {self.mode}")
        self.max_workers = max_workers or config.MAX_WORKERS
        self._executor: Optional[Executor] = None
        self._closed = False

    @property
    def available(self) -> bool:
        """Whether tasks can be submitted (an executor exists or can be created)."""
        return not self._closed and self.mode != "sync"

    @property
    def started(self) -> bool:
        return self._executor is not None

    def _ensure_executor(self) -> Executor:
        if self._closed:
            raise ResourceUnavailableError("Quantization worker has been shut down")
        if self.mode == "sync":
            raise ResourceUnavailableError("Synchronous mode has no executor")

        if self._executor is None:
            try:
                if self.mode == "process":
                    self._executor = ProcessPoolExecutor(max_workers=self.max_workers)
                else:
                    self._executor = ThreadPoolExecutor(
                        max_workers=self.max_workers,
                        thread_name_prefix="colorextract",
                    )
            except (OSError, ValueError, NotImplementedError) as e:
                logger.error(f"Failed to start {self.mode} executor: {e}")
                raise ResourceUnavailableError(f"Could not start {self.mode} executor: {e}") from e

            logger.info(f"Started {self.mode} executor with {self.max_workers} workers")

        return self._executor

    def submit(self, task: ExtractionTask) -> Future:
        """Schedule a task and return its future."""
        executor = self._ensure_executor()
        if self.mode == "process":
            task = task.detached()
        try:
            return executor.submit(quantize_task, task)
        except RuntimeError as e:
            # Raised when the pool is broken or already shutting down
            raise ResourceUnavailableError(f"Executor rejected task: {e}") from e

    def release(self, wait: bool = False) -> bool:
        """
        Drop the current executor, cancelling pending tasks.

        The handle stays usable; the next submit starts a fresh executor.
        Returns True if an executor was running.
        """
        executor, self._executor = self._executor, None
        if executor is None:
            return False
        executor.shutdown(wait=wait, cancel_futures=True)
        logger.info(f"Released {self.mode} executor")
        return True

    def shutdown(self, wait: bool = False) -> None:
        """Release the executor and refuse further work."""
        self._closed = True
        self.release(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
