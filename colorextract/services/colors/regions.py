"""
Region partitioning for parallel histogram building.

Splits a width x height buffer into a row-major grid of rectangular,
non-overlapping regions whose union covers every pixel exactly once.
"""
import math
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Region:
    """Rectangular bounds into a pixel buffer."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def slices(self, step: int = 1) -> Tuple[slice, slice]:
        """Row and column slices sampling this region with the given stride."""
        return (
            slice(self.y, self.y + self.height, step),
            slice(self.x, self.x + self.width, step),
        )


def partition(width: int, height: int, region_count: int) -> List[Region]:
    """
    Partition a buffer into at most `region_count` regions.

    The grid uses cols = ceil(sqrt(n)) and rows = ceil(n / cols) with uniform
    floor-divided cell sizes; the last column and last row absorb remainder
    pixels. When the grid has more cells than requested regions, the final
    row holds fewer, wider regions so coverage stays exact.

    Args:
        width: Buffer width in pixels
        height: Buffer height in pixels
        region_count: Requested number of regions

    Returns:
        Regions in row-major order; never contains a zero-area region

    Raises:
        ValueError: If width or height is not positive
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Cannot partition a {width}x{height} buffer")

    count = max(1, min(int(region_count), width * height))
    cols = min(math.ceil(math.sqrt(count)), width)
    rows = min(math.ceil(count / cols), height)
    count = min(count, cols * rows)

    row_height = height // rows
    last_row_count = count - cols * (rows - 1)

    regions: List[Region] = []
    for row in range(rows):
        y = row * row_height
        is_last_row = row == rows - 1
        region_height = height - y if is_last_row else row_height

        row_cols = last_row_count if is_last_row else cols
        col_width = width // row_cols
        for col in range(row_cols):
            x = col * col_width
            region_width = width - x if col == row_cols - 1 else col_width
            regions.append(Region(x=x, y=y, width=region_width, height=region_height))

    return regions
