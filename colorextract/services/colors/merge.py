"""
Merging of per-region histograms into a ranked, de-duplicated palette.
"""
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from colorextract.schemas import ExtractedColor, HSLColor
from colorextract.services.colors.convert import rgb_to_hex, rgb_to_hsl
from colorextract.services.colors.quantize import ColorBin


def combine_bins(per_region_bins: Sequence[Sequence[ColorBin]]) -> List[ColorBin]:
    """
    Sum counts of identical buckets across regions.

    Buckets keep the position at which they were first seen when regions
    are walked in scan order, which later acts as the ranking tie-break.
    """
    combined: Dict[Tuple[int, int, int], int] = {}
    for bins in per_region_bins:
        for color_bin in bins:
            combined[color_bin.rgb] = combined.get(color_bin.rgb, 0) + color_bin.count
    return [ColorBin(rgb=rgb, count=count) for rgb, count in combined.items()]


def rank_bins(bins: Sequence[ColorBin]) -> List[ColorBin]:
    """Stable sort by count, descending."""
    return sorted(bins, key=lambda b: -b.count)


def is_similar(a: Tuple[int, int, int], b: Tuple[int, int, int], threshold: int) -> bool:
    """True when every channel differs by less than threshold."""
    return all(abs(ca - cb) < threshold for ca, cb in zip(a, b))


def dedupe_bins(ranked: Sequence[ColorBin], target_count: int, threshold: int) -> List[ColorBin]:
    """
    Single-pass perceptual de-duplication.

    A candidate similar to an accepted color replaces it in place when its
    count is higher and is discarded otherwise. Accepted colors are only
    compared against each other at insertion time.
    """
    accepted: List[ColorBin] = []
    for candidate in ranked:
        if len(accepted) >= target_count:
            break

        duplicate_index = next(
            (i for i, existing in enumerate(accepted) if is_similar(candidate.rgb, existing.rgb, threshold)),
            None,
        )
        if duplicate_index is None:
            accepted.append(candidate)
        elif candidate.count > accepted[duplicate_index].count:
            accepted[duplicate_index] = candidate

    return accepted


def to_extracted_color(color_bin: ColorBin, total_sampled: int) -> ExtractedColor:
    r, g, b = color_bin.rgb
    hsl = rgb_to_hsl(r, g, b)
    return ExtractedColor(
        rgb=color_bin.rgb,
        hex=rgb_to_hex(r, g, b),
        hsl=HSLColor(h=hsl.h, s=hsl.s, l=hsl.l),
        count=color_bin.count,
        dominance=color_bin.count / total_sampled if total_sampled > 0 else 0.0,
    )


def merge(per_region_bins: Sequence[Sequence[ColorBin]], target_count: int, dedup_threshold: int,
          total_sampled: Optional[int] = None, min_population: int = 0) -> List[ExtractedColor]:
    """
    Combine region histograms into the final palette.

    Args:
        per_region_bins: Bins per region, in region-scan order
        target_count: Maximum number of colors to return
        dedup_threshold: Per-channel distance for duplicate detection
        total_sampled: Dominance denominator; defaults to the sum of all counts
        min_population: Buckets with fewer pixels are dropped before ranking

    Returns:
        ExtractedColor list sorted by dominance, descending
    """
    combined = combine_bins(per_region_bins)
    if total_sampled is None:
        total_sampled = sum(b.count for b in combined)

    if min_population > 0:
        combined = [b for b in combined if b.count >= min_population]

    ranked = rank_bins(combined)
    accepted = dedupe_bins(ranked, target_count, dedup_threshold)

    colors = [to_extracted_color(b, total_sampled) for b in accepted]
    colors.sort(key=lambda c: -c.dominance)

    logger.debug(f"Merged {len(combined)} buckets into {len(colors)} colors "
                 f"(total sampled: {total_sampled})")
    return colors
