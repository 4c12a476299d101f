"""
colorextract Extraction Orchestrator
Drives one extraction from validation through cache, preprocessing, region
fan-out and merge, tracking per-slot state, supersession and cancellation.
"""
import asyncio
import itertools
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger

from colorextract.config import config
from colorextract.errors import (
    DecodeError,
    ExtractionCancelled,
    QuantizationError,
    QuantizationTimeout,
    ResourceUnavailableError,
)
from colorextract.schemas import ExtractionMetadata, ExtractionResult, ImageSize, QuantizationOptions
from colorextract.services.cache import ResultCache
from colorextract.services.colors.merge import merge
from colorextract.services.colors.quantize import HistogramAccumulator, RegionHistogram, iter_region_keys
from colorextract.services.colors.regions import Region, partition
from colorextract.services.fingerprint import FingerprintManager
from colorextract.services.imaging import (
    ImageSource,
    PixelBuffer,
    decode_image,
    downscale,
    validate_image_source,
)
from colorextract.services.lifecycle import ResourceLifecycleManager
from colorextract.services.observability.metrics import log_memory_usage, performance_monitor
from colorextract.services.reliability import DegradationManager, TimeoutManager
from colorextract.services.workers import ExtractionTask, QuantizationWorker, RegionResult
from colorextract.utils.ids import generate_request_id

ProgressCallback = Callable[[int], None]


class ExtractionState(str, Enum):
    """Lifecycle of the extraction running in a slot."""
    IDLE = "idle"
    CACHE_CHECK = "cache_check"
    PREPROCESSING = "preprocessing"
    DISPATCHING = "dispatching"
    AWAITING_RESULT = "awaiting_result"
    MERGED = "merged"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class ExtractionRun:
    """Bookkeeping for one in-flight extract call."""
    slot: str
    sequence: int
    request_id: str
    tracked: bool = True
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    futures: List[Future] = field(default_factory=list)

    def cancel_futures(self) -> None:
        for future in self.futures:
            future.cancel()


class ExtractionOrchestrator:
    """
    Main entry point for palette extraction.

    One orchestrator owns its cache, its worker handle and its lifecycle
    registrations. Requests are grouped by `slot`; a newer request on a slot
    supersedes the older one, which ends with ExtractionCancelled.
    """

    def __init__(self, executor: Optional[str] = None, max_workers: Optional[int] = None,
                 cache: Optional[ResultCache] = None,
                 lifecycle: Optional[ResourceLifecycleManager] = None,
                 timeout_manager: Optional[TimeoutManager] = None,
                 monitor_memory: Optional[bool] = None):
        self.worker = QuantizationWorker(executor, max_workers)
        self.cache = cache if cache is not None else ResultCache()
        self.fingerprint_manager = FingerprintManager()
        self.timeout_manager = timeout_manager or TimeoutManager()
        self.degradation_manager = DegradationManager()
        self.lifecycle = lifecycle if lifecycle is not None else ResourceLifecycleManager()
        self.monitor_memory = config.MEMORY_MONITOR if monitor_memory is None else monitor_memory

        self._states: Dict[str, ExtractionState] = {}
        self._runs: Dict[str, ExtractionRun] = {}
        self._sequence = itertools.count(1)
        self._closed = False

        self._cleanup_ids = (f"result-cache-{id(self)}", f"quantization-worker-{id(self)}")
        self.lifecycle.register_cleanup(self._cleanup_ids[0], self.cache.clear, "medium")
        self.lifecycle.register_cleanup(self._cleanup_ids[1], self._release_idle_worker, "high")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def state(self, slot: str = "default") -> ExtractionState:
        return self._states.get(slot, ExtractionState.IDLE)

    async def extract(self, source: ImageSource, options: Optional[QuantizationOptions] = None, *,
                      slot: Optional[str] = "default", best_effort: bool = False, use_cache: bool = True,
                      progress: Optional[ProgressCallback] = None) -> ExtractionResult:
        """
        Extract a palette from an image.

        Args:
            source: Encoded bytes or a decoded pixel buffer
            options: Quantization options (defaults from config)
            slot: Requests on the same slot supersede each other; None runs
                the request on a private slot that is forgotten afterwards
            best_effort: Serve the default palette instead of raising on
                decode, quantization or timeout failures
            use_cache: Read and populate the result cache
            progress: Called with a percentage as the extraction advances

        Returns:
            ExtractionResult sorted by dominance

        Raises:
            ValidationError: Input rejected (raised even with best_effort)
            ExtractionCancelled: Superseded or cancelled via cancel(slot)
            ResourceUnavailableError: The orchestrator has been closed
            DecodeError, QuantizationError, QuantizationTimeout: Unless best_effort
        """
        if self._closed:
            raise ResourceUnavailableError("Extraction orchestrator has been closed")

        options = options or QuantizationOptions()
        start_time = time.time()
        run = self._begin(slot)
        request_id = run.request_id
        original_size: Optional[ImageSize] = None

        logger.bind(slot=slot, quality=options.quality.value, max_colors=options.max_colors).info(
            f"[{request_id}] Starting extraction"
        )

        try:
            self._transition(run, ExtractionState.CACHE_CHECK)
            _report(progress, 10)
            validate_image_source(source)

            cache_key = None
            if use_cache:
                cache_key = self.fingerprint_manager.get_extraction_key(source, options)
                cached = self.cache.get(cache_key)
                if cached is not None:
                    result = self._from_cache(cached, request_id, start_time)
                    self._transition(run, ExtractionState.IDLE)
                    _report(progress, 100)
                    logger.info(f"[{request_id}] Cache hit in {result.metadata.processing_time_ms:.1f}ms")
                    return result
            _report(progress, 20)

            self._transition(run, ExtractionState.PREPROCESSING)
            if self.monitor_memory:
                self.lifecycle.check_memory_pressure()
            buffer = source.buffer if source.buffer is not None else decode_image(source.data)
            original_size = ImageSize(width=buffer.width, height=buffer.height)
            processed = downscale(buffer, options.max_dimension)
            regions = partition(processed.width, processed.height, options.region_count)
            log_memory_usage(f"{request_id} preprocessed")
            _report(progress, 40)

            self._transition(run, ExtractionState.DISPATCHING)
            with performance_monitor("quantize", pixel_count=processed.pixel_count,
                                     region_count=len(regions)):
                histograms = await self._quantize_regions(run, processed, regions, options, progress)
            self._raise_if_cancelled(run)

            total_sampled = sum(h.sampled_pixels for h in histograms)
            colors = merge(
                [h.bins for h in histograms],
                options.max_colors,
                options.dedup_threshold,
                total_sampled=total_sampled,
                min_population=options.min_population,
            )
            self._transition(run, ExtractionState.MERGED)

            result = ExtractionResult(
                colors=colors,
                metadata=ExtractionMetadata(
                    original_size=original_size,
                    processed_size=ImageSize(width=processed.width, height=processed.height),
                    quality=options.quality,
                    processing_time_ms=(time.time() - start_time) * 1000,
                    color_count=len(colors),
                    sampled_pixels=total_sampled,
                    region_count=len(regions),
                    request_id=request_id,
                ),
            )
            if cache_key is not None:
                self.cache.set(cache_key, result.model_copy(deep=True))

            self._transition(run, ExtractionState.IDLE)
            _report(progress, 100)
            logger.info(f"[{request_id}] Extracted {len(colors)} colors in "
                        f"{result.metadata.processing_time_ms:.1f}ms")
            return result

        except ExtractionCancelled:
            self._transition(run, ExtractionState.CANCELLED)
            logger.info(f"[{request_id}] Extraction cancelled")
            raise

        except (DecodeError, QuantizationError, QuantizationTimeout) as e:
            self._transition(run, ExtractionState.ERROR)
            logger.error(f"[{request_id}] Extraction failed: {e.code}: {e.message}")
            if not best_effort:
                raise
            return self.degradation_manager.default_palette(
                options,
                original_size=original_size,
                reason=e.code,
                request_id=request_id,
                processing_time_ms=(time.time() - start_time) * 1000,
            )

        except Exception as e:
            self._transition(run, ExtractionState.ERROR)
            logger.error(f"[{request_id}] Extraction failed: {type(e).__name__}: {e}")
            raise

        finally:
            self._finish(run)

    def cancel(self, slot: str = "default") -> bool:
        """
        Cancel the in-flight extraction on a slot.

        Returns:
            True if an extraction was running
        """
        run = self._runs.get(slot)
        if run is None:
            return False
        run.cancel_event.set()
        run.cancel_futures()
        self._states[slot] = ExtractionState.CANCELLED
        logger.info(f"[{run.request_id}] Cancellation requested for slot {slot!r}")
        return True

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> Dict[str, float]:
        return self.cache.get_stats()

    def close(self) -> None:
        """Cancel in-flight work and release the worker, cache and registrations."""
        if self._closed:
            return
        self._closed = True
        for slot in list(self._runs):
            self.cancel(slot)
        self.worker.shutdown(wait=False)
        self.cache.clear()
        for cleanup_id in self._cleanup_ids:
            self.lifecycle.unregister_cleanup(cleanup_id)
        logger.info("Extraction orchestrator closed")

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _begin(self, slot: Optional[str]) -> ExtractionRun:
        sequence = next(self._sequence)
        run = ExtractionRun(
            slot=slot if slot is not None else f"private-{sequence}",
            sequence=sequence,
            request_id=f"{generate_request_id()}-{sequence:06d}",
            tracked=slot is not None,
        )
        slot = run.slot

        previous = self._runs.get(slot)
        if previous is not None:
            logger.info(f"[{previous.request_id}] Superseded by {run.request_id}")
            previous.cancel_event.set()
            previous.cancel_futures()

        self._runs[slot] = run
        return run

    def _finish(self, run: ExtractionRun) -> None:
        if self._runs.get(run.slot) is run:
            del self._runs[run.slot]
            if not run.tracked:
                self._states.pop(run.slot, None)

    def _is_current(self, run: ExtractionRun) -> bool:
        return self._runs.get(run.slot) is run

    def _transition(self, run: ExtractionRun, state: ExtractionState) -> None:
        # Superseded runs never overwrite the state of their successor
        if self._is_current(run):
            self._states[run.slot] = state

    def _raise_if_cancelled(self, run: ExtractionRun) -> None:
        if run.cancel_event.is_set() or not self._is_current(run):
            raise ExtractionCancelled(f"Extraction {run.request_id} was cancelled")

    def _release_idle_worker(self) -> bool:
        """Release the executor unless region tasks are still pending on it."""
        busy = [run for run in self._runs.values() if any(not f.done() for f in run.futures)]
        if busy:
            logger.info(f"Keeping quantization worker; {len(busy)} extraction(s) awaiting region results")
            return False
        return self.worker.release()

    def _from_cache(self, cached: ExtractionResult, request_id: str, start_time: float) -> ExtractionResult:
        metadata = cached.metadata.model_copy(update={
            'from_cache': True,
            'request_id': request_id,
            'processing_time_ms': (time.time() - start_time) * 1000,
        })
        return cached.model_copy(update={'metadata': metadata}, deep=True)

    # ------------------------------------------------------------------
    # Quantization
    # ------------------------------------------------------------------

    async def _quantize_regions(self, run: ExtractionRun, buffer: PixelBuffer, regions: List[Region],
                                options: QuantizationOptions,
                                progress: Optional[ProgressCallback]) -> List[RegionHistogram]:
        tasks = [
            ExtractionTask(
                request_id=run.request_id,
                region_index=index,
                region=region,
                buffer=buffer,
                options=options,
            )
            for index, region in enumerate(regions)
        ]

        if self.worker.available:
            try:
                return await self._dispatch(run, tasks, progress)
            except ResourceUnavailableError as e:
                logger.warning(f"[{run.request_id}] {e.message}; quantizing on the event loop")
                async with self.timeout_manager.timeout('quantization'):
                    return await self._quantize_cooperatively(run, tasks, progress)
            except QuantizationTimeout:
                logger.warning(f"[{run.request_id}] Worker dispatch timed out; retrying synchronously")
                async with self.timeout_manager.timeout('sync_retry'):
                    return await self._quantize_cooperatively(run, tasks, progress)

        async with self.timeout_manager.timeout('quantization'):
            return await self._quantize_cooperatively(run, tasks, progress)

    async def _dispatch(self, run: ExtractionRun, tasks: List[ExtractionTask],
                        progress: Optional[ProgressCallback]) -> List[RegionHistogram]:
        """Fan tasks out to the worker and gather histograms in region order."""
        pending: Dict[asyncio.Future, ExtractionTask] = {}
        histograms: Dict[int, RegionHistogram] = {}
        cancel_waiter = asyncio.ensure_future(run.cancel_event.wait())

        try:
            for task in tasks:
                future = self.worker.submit(task)
                run.futures.append(future)
                pending[asyncio.wrap_future(future)] = task

            self._transition(run, ExtractionState.AWAITING_RESULT)
            _report(progress, 50)

            async with self.timeout_manager.timeout('quantization'):
                while pending:
                    done, _ = await asyncio.wait(
                        set(pending) | {cancel_waiter},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                    self._raise_if_cancelled(run)

                    for future in done:
                        task = pending.pop(future)
                        result = self._collect(run, task, future)
                        if result is None:
                            continue
                        histograms[task.region_index] = result.histogram
                        _report(progress, 50 + 40 * len(histograms) // len(tasks))
        finally:
            cancel_waiter.cancel()
            for future in pending:
                future.cancel()

        if len(histograms) != len(tasks):
            raise QuantizationError(
                f"Received {len(histograms)} of {len(tasks)} region results for {run.request_id}"
            )
        return [histograms[index] for index in range(len(tasks))]

    def _collect(self, run: ExtractionRun, task: ExtractionTask,
                 future: asyncio.Future) -> Optional[RegionResult]:
        """Unwrap a finished region future; stale results yield None."""
        if future.cancelled():
            raise QuantizationError(f"Region {task.region_index} task was cancelled")

        error = future.exception()
        if error is not None:
            logger.error(f"[{run.request_id}] Region {task.region_index} failed: {error}")
            raise QuantizationError(f"Region {task.region_index} failed: {error}") from error

        result: RegionResult = future.result()
        if result.request_id != run.request_id or result.task_id != task.id:
            logger.warning(f"[{run.request_id}] Discarding stale result for task {result.task_id} "
                           f"(request {result.request_id})")
            return None
        return result

    async def _quantize_cooperatively(self, run: ExtractionRun, tasks: List[ExtractionTask],
                                      progress: Optional[ProgressCallback]) -> List[RegionHistogram]:
        """Quantize on the event loop, yielding between row chunks."""
        self._transition(run, ExtractionState.AWAITING_RESULT)
        _report(progress, 50)

        histograms: List[RegionHistogram] = []
        for task in tasks:
            accumulator = HistogramAccumulator(task.region_index)
            await asyncio.sleep(0)
            self._raise_if_cancelled(run)

            try:
                for keys in iter_region_keys(task.buffer.pixels, task.region, task.options,
                                             chunk_rows=config.SYNC_CHUNK_ROWS):
                    accumulator.add(keys)
                    await asyncio.sleep(0)
                    self._raise_if_cancelled(run)
                histogram = accumulator.finalize(config.MAX_BINS_PER_REGION or None)
            except ExtractionCancelled:
                raise
            except Exception as e:
                logger.error(f"[{run.request_id}] Region {task.region_index} failed: {e}")
                raise QuantizationError(f"Region {task.region_index} failed: {e}") from e

            histograms.append(histogram)
            _report(progress, 50 + 40 * len(histograms) // len(tasks))

        return histograms


def _report(progress: Optional[ProgressCallback], percent: int) -> None:
    if progress is not None:
        progress(percent)
