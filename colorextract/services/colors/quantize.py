"""
Fixed-grid bucket quantization for a single region.

Each sampled pixel is reduced to the bucket (floor(c / precision) * precision)
on every channel and counted. The scan is vectorized with numpy; bucket keys
are packed as 0xRRGGBB integers so a histogram is a single np.unique call.
"""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

import numpy as np
from loguru import logger

from colorextract.config import config
from colorextract.schemas import Quality, QuantizationOptions
from colorextract.services.colors.regions import Region

if TYPE_CHECKING:
    from colorextract.services.imaging import PixelBuffer

# Pixels with alpha below this are treated as transparent and never sampled.
ALPHA_THRESHOLD = 128

# r+g+b bounds used by ignore_black / ignore_white.
BLACK_SUM_MAX = 30
WHITE_SUM_MIN = 720


@dataclass(frozen=True)
class QualityProfile:
    sample_step: int
    precision: int


QUALITY_PROFILES = {
    Quality.HIGH: QualityProfile(sample_step=1, precision=8),
    Quality.MEDIUM: QualityProfile(sample_step=2, precision=16),
    Quality.LOW: QualityProfile(sample_step=4, precision=32),
}


def get_quality_profile(quality: Quality) -> QualityProfile:
    """Deterministic quality -> (sample_step, precision) mapping."""
    return QUALITY_PROFILES[Quality(quality)]


@dataclass(frozen=True)
class ColorBin:
    """Histogram entry keyed by a quantized RGB triple."""
    rgb: Tuple[int, int, int]
    count: int


@dataclass
class RegionHistogram:
    """Ranked bins for one region plus the number of pixels sampled."""
    region_index: int
    bins: List[ColorBin] = field(default_factory=list)
    sampled_pixels: int = 0


def quantize_channel(value: int, precision: int) -> int:
    return (int(value) // precision) * precision


def pack_keys(rgb: np.ndarray) -> np.ndarray:
    """Pack an (N, 3) integer array into 0xRRGGBB keys."""
    rgb = rgb.astype(np.int64, copy=False)
    return (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]


def unpack_key(key: int) -> Tuple[int, int, int]:
    key = int(key)
    return ((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF)


def bucket_keys(samples: np.ndarray, precision: int,
                ignore_white: bool = False, ignore_black: bool = False) -> np.ndarray:
    """
    Filter and bucket a block of sampled RGBA pixels.

    Args:
        samples: (..., 4) uint8 RGBA pixels in scan order
        precision: Bucket width per channel
        ignore_white: Drop pixels with r+g+b >= WHITE_SUM_MIN
        ignore_black: Drop pixels with r+g+b <= BLACK_SUM_MAX

    Returns:
        1-D int64 array of bucket keys, scan order preserved
    """
    flat = samples.reshape(-1, 4)
    opaque = flat[flat[:, 3] >= ALPHA_THRESHOLD]
    rgb = opaque[:, :3].astype(np.int32)

    if ignore_white or ignore_black:
        totals = rgb.sum(axis=1)
        keep = np.ones(len(rgb), dtype=bool)
        if ignore_black:
            keep &= totals > BLACK_SUM_MAX
        if ignore_white:
            keep &= totals < WHITE_SUM_MIN
        rgb = rgb[keep]

    quantized = (rgb // precision) * precision
    return pack_keys(quantized)


class HistogramAccumulator:
    """Folds chunks of bucket keys into a ranked region histogram.

    Feeding chunks in scan order yields exactly the histogram a single pass
    over the whole region would.
    """

    def __init__(self, region_index: int = 0):
        self.region_index = region_index
        self._chunks: List[np.ndarray] = []
        self._sampled = 0

    @property
    def sampled_pixels(self) -> int:
        return self._sampled

    def add(self, keys: np.ndarray) -> None:
        if keys.size:
            self._chunks.append(keys)
            self._sampled += int(keys.size)

    def finalize(self, limit: Optional[int] = None) -> RegionHistogram:
        """Rank buckets by count (ties: first seen wins) and truncate."""
        if not self._chunks:
            return RegionHistogram(region_index=self.region_index)

        keys = np.concatenate(self._chunks)
        unique, first_index, counts = np.unique(keys, return_index=True, return_counts=True)
        order = np.lexsort((first_index, -counts))
        if limit is not None:
            order = order[:limit]

        bins = [ColorBin(rgb=unpack_key(unique[i]), count=int(counts[i])) for i in order]
        return RegionHistogram(
            region_index=self.region_index,
            bins=bins,
            sampled_pixels=self._sampled,
        )


def iter_region_keys(pixels: np.ndarray, region: Region, options: QuantizationOptions,
                     chunk_rows: Optional[int] = None) -> Iterator[np.ndarray]:
    """
    Yield bucket keys for a region in row chunks.

    Rows and columns are sampled with the quality's stride starting at the
    region origin. Slicing produces views, so the shared buffer is read but
    never copied or mutated.
    """
    profile = get_quality_profile(options.quality)
    rows, cols = region.slices(profile.sample_step)
    block = pixels[rows, cols]

    if block.size == 0:
        return

    step = chunk_rows or block.shape[0]
    for start in range(0, block.shape[0], step):
        yield bucket_keys(
            block[start:start + step],
            profile.precision,
            ignore_white=options.ignore_white,
            ignore_black=options.ignore_black,
        )


def build_region_histogram(pixels: np.ndarray, region: Region, options: QuantizationOptions,
                           region_index: int = 0,
                           max_bins: Optional[int] = None) -> RegionHistogram:
    """
    Sample a region and build its ranked bucket histogram.

    Args:
        pixels: (H, W, 4) uint8 RGBA array
        region: Bounds to scan
        options: Quality and pixel filters
        region_index: Position of the region in scan order
        max_bins: Per-region cap (defaults to config.MAX_BINS_PER_REGION, 0 disables)

    Returns:
        RegionHistogram; empty bins for fully transparent regions
    """
    if max_bins is None:
        max_bins = config.MAX_BINS_PER_REGION

    accumulator = HistogramAccumulator(region_index)
    for keys in iter_region_keys(pixels, region, options):
        accumulator.add(keys)

    histogram = accumulator.finalize(max_bins or None)
    logger.debug(f"Region {region_index} {region}: {histogram.sampled_pixels} sampled, "
                 f"{len(histogram.bins)} bins")
    return histogram


def quantize(buffer: "PixelBuffer", region: Region, options: QuantizationOptions) -> List[ColorBin]:
    """Ranked bins for one region of a PixelBuffer, capped per region."""
    return build_region_histogram(buffer.pixels, region, options).bins
