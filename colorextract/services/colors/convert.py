"""
Color space conversion helpers.

Pure functions, no state. HSL uses the standard max/min/diff formulation
with integer degrees and percentages.
"""
import math
import numbers
from typing import NamedTuple, Tuple


class Hsl(NamedTuple):
    h: int
    s: int
    l: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _validate_channel(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"Channel {name} must be an integer, got {value!r}")
    value = int(value)
    if not 0 <= value <= 255:
        raise ValueError(f"Channel {name} out of range [0, 255]: {value}")
    return value


def rgb_to_hsl(r: int, g: int, b: int) -> Hsl:
    """
    Convert an RGB triple to HSL.

    Args:
        r, g, b: Channels in [0, 255]

    Returns:
        Hsl with h in [0, 360), s and l in [0, 100]

    Raises:
        ValueError: If a channel is not an integer in [0, 255]
    """
    r = _validate_channel("r", r) / 255.0
    g = _validate_channel("g", g) / 255.0
    b = _validate_channel("b", b) / 255.0

    high = max(r, g, b)
    low = min(r, g, b)
    diff = high - low
    total = high + low

    h = 0.0
    s = 0.0
    l = total / 2

    if diff != 0:
        s = diff / (2 - total) if l > 0.5 else diff / total

        if high == r:
            h = ((g - b) / diff + (6 if g < b else 0)) / 6
        elif high == g:
            h = ((b - r) / diff + 2) / 6
        else:
            h = ((r - g) / diff + 4) / 6

    return Hsl(
        h=_round_half_up(h * 360) % 360,
        s=min(100, _round_half_up(s * 100)),
        l=min(100, _round_half_up(l * 100)),
    )


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Convert RGB channels to a #RRGGBB string."""
    r, g, b = (_validate_channel(n, v) for n, v in zip("rgb", (r, g, b)))
    return f"#{r:02X}{g:02X}{b:02X}"


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Convert hex color string to RGB tuple."""
    hex_color = hex_color.lstrip('#')
    if len(hex_color) != 6:
        raise ValueError(f"Expected #RRGGBB, got {hex_color!r}")
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))
