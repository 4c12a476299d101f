"""
Unit tests for merging region histograms into a palette.
"""
import itertools

import numpy as np
import pytest

from colorextract.services.colors.merge import (
    combine_bins,
    dedupe_bins,
    is_similar,
    merge,
    rank_bins,
)
from colorextract.services.colors.quantize import ColorBin


class TestCombineAndRank:
    """Test cross-region accumulation and ranking"""

    def test_identical_buckets_are_summed(self):
        combined = combine_bins([
            [ColorBin((16, 16, 16), 5), ColorBin((32, 0, 0), 2)],
            [ColorBin((32, 0, 0), 7)],
        ])
        assert combined == [ColorBin((16, 16, 16), 5), ColorBin((32, 0, 0), 9)]

    def test_rank_is_stable(self):
        """Equal counts keep their scan-order position"""
        bins = [ColorBin((1, 0, 0), 3), ColorBin((2, 0, 0), 5), ColorBin((3, 0, 0), 3)]
        assert rank_bins(bins) == [bins[1], bins[0], bins[2]]


class TestDeduplication:
    """Test perceptual de-duplication"""

    def test_similarity_is_strict_per_channel(self):
        assert is_similar((200, 100, 100), (210, 105, 105), 30)
        assert not is_similar((200, 100, 100), (230, 100, 100), 30)
        assert is_similar((200, 100, 100), (229, 71, 129), 30)

    def test_higher_count_duplicate_wins(self):
        """(200,100,100)x50 and (210,105,105)x80 merge into the 80-count color"""
        colors = merge(
            [[ColorBin((200, 100, 100), 50)], [ColorBin((210, 105, 105), 80)]],
            target_count=5,
            dedup_threshold=30,
        )
        assert len(colors) == 1
        assert colors[0].rgb == (210, 105, 105)
        assert colors[0].count == 80

    def test_duplicate_replaced_in_place(self):
        """An unranked stronger duplicate takes the earlier slot"""
        accepted = dedupe_bins(
            [ColorBin((200, 100, 100), 50), ColorBin((0, 0, 200), 60), ColorBin((210, 105, 105), 80)],
            target_count=5,
            threshold=30,
        )
        assert accepted == [ColorBin((210, 105, 105), 80), ColorBin((0, 0, 200), 60)]

    def test_stops_at_target_count(self):
        ranked = [ColorBin((i * 40, 0, 0), 100 - i) for i in range(6)]
        assert dedupe_bins(ranked, target_count=3, threshold=30) == ranked[:3]

    def test_merged_colors_are_pairwise_distinct(self):
        """No two merged colors are within the threshold on every channel"""
        rng = np.random.default_rng(5)
        regions = [
            [ColorBin(tuple(int(c) for c in rng.integers(0, 16, 3) * 16), int(rng.integers(1, 500)))
             for _ in range(20)]
            for _ in range(4)
        ]

        colors = merge(regions, target_count=12, dedup_threshold=30)

        for a, b in itertools.combinations(colors, 2):
            assert not is_similar(a.rgb, b.rgb, 30)


class TestMerge:
    """Test the full merge step"""

    def test_dominance_uses_total_sampled(self):
        colors = merge(
            [[ColorBin((0, 0, 192), 30)], [ColorBin((192, 0, 0), 10)]],
            target_count=5,
            dedup_threshold=30,
            total_sampled=80,
        )
        assert [c.dominance for c in colors] == [pytest.approx(0.375), pytest.approx(0.125)]

    def test_default_total_is_sum_of_counts(self):
        colors = merge([[ColorBin((0, 0, 192), 30), ColorBin((192, 0, 0), 10)]], 5, 30)
        assert sum(c.dominance for c in colors) == pytest.approx(1.0)

    def test_sorted_by_dominance_with_enrichment(self):
        colors = merge([[ColorBin((192, 0, 0), 10)], [ColorBin((0, 0, 192), 30)]], 5, 30)

        assert [c.hex for c in colors] == ["#0000C0", "#C00000"]
        assert colors[0].hsl.h == 240
        assert colors[1].hsl.h == 0
        assert colors[1].hsl.s == 100

    def test_min_population_filter(self):
        colors = merge(
            [[ColorBin((0, 0, 192), 30), ColorBin((192, 0, 0), 2)]],
            5, 30, min_population=5,
        )
        assert [c.rgb for c in colors] == [(0, 0, 192)]
        assert colors[0].dominance == pytest.approx(30 / 32)

    def test_empty_input(self):
        assert merge([], 5, 30) == []
        assert merge([[], []], 5, 30, total_sampled=0) == []

    def test_zero_total_gives_zero_dominance(self):
        colors = merge([[ColorBin((0, 0, 192), 3)]], 5, 30, total_sampled=0)
        assert colors[0].dominance == 0.0
