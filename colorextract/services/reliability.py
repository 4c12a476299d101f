"""
colorextract Reliability & Timeout Management
Implements operation timeouts and graceful degradation.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional

from loguru import logger

from colorextract.config import config
from colorextract.errors import QuantizationTimeout
from colorextract.schemas import ExtractionMetadata, ExtractionResult, ImageSize, QuantizationOptions
from colorextract.services.colors.merge import to_extracted_color
from colorextract.services.colors.quantize import ColorBin

# Served when extraction fails and the caller asked for best effort.
DEFAULT_PALETTE = (
    ColorBin(rgb=(100, 150, 200), count=100),
    ColorBin(rgb=(80, 120, 160), count=80),
    ColorBin(rgb=(60, 90, 120), count=60),
    ColorBin(rgb=(120, 180, 240), count=40),
    ColorBin(rgb=(40, 60, 80), count=20),
)


class TimeoutManager:
    """Manages timeouts for different operations."""

    def __init__(self, default_timeout: float = 30.0):
        self.default_timeout = default_timeout
        self.timeouts = {
            'quantization': config.QUANTIZATION_TIMEOUT_MS / 1000,
            'sync_retry': config.SYNC_RETRY_TIMEOUT_MS / 1000,
        }

    def get_timeout(self, operation: str) -> float:
        return self.timeouts.get(operation, self.default_timeout)

    @asynccontextmanager
    async def timeout(self, operation: str, custom_timeout: Optional[float] = None):
        """Context manager raising QuantizationTimeout when the budget runs out."""
        timeout_value = custom_timeout if custom_timeout is not None else self.get_timeout(operation)

        try:
            async with asyncio.timeout(timeout_value):
                yield
        except TimeoutError:
            logger.error(f"Timeout in {operation} after {timeout_value}s")
            raise QuantizationTimeout(f"Operation {operation} timed out after {timeout_value}s")

    def configure_timeouts(self, timeout_config: Dict[str, float]) -> None:
        """Override per-operation budgets (seconds)."""
        self.timeouts.update(timeout_config)
        logger.info(f"Updated timeout configuration: {timeout_config}")


class DegradationManager:
    """Builds the degraded response served in best-effort mode."""

    def default_palette(self, options: QuantizationOptions, original_size: Optional[ImageSize] = None,
                        reason: str = "extraction_failed", request_id: Optional[str] = None,
                        processing_time_ms: float = 0.0) -> ExtractionResult:
        """
        Fixed palette of five blues, truncated to options.max_colors.

        Dominance is relative to the palette's own total count.
        """
        bins = DEFAULT_PALETTE[:options.max_colors]
        total = sum(b.count for b in DEFAULT_PALETTE)
        colors = [to_extracted_color(b, total) for b in bins]
        size = original_size or ImageSize(width=0, height=0)

        logger.warning(f"Serving default palette ({reason})")

        return ExtractionResult(
            colors=colors,
            metadata=ExtractionMetadata(
                original_size=size,
                processed_size=size,
                quality=options.quality,
                processing_time_ms=processing_time_ms,
                color_count=len(colors),
                sampled_pixels=0,
                region_count=0,
                request_id=request_id,
                degraded=True,
                fallback_reason=reason,
            ),
        )
