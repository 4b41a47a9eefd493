import math
from typing import Tuple

RGBA = Tuple[int, int, int, int]


def _round(v: float) -> int:
    # half-up, not Python's banker's rounding
    return int(math.floor(v + 0.5))


def _wave(t: float, amplitude: float, offset: float) -> int:
    return _round(math.sin(t) * amplitude + offset)


def tile_color(x: int, y: int, claimed: bool) -> RGBA:
    """
    Colour of the tile anchored at (x, y). Claimed tiles get a sine rainbow over
    both axes; unclaimed ones a faint grey wash, so empty space still reads as
    canvas.
    """
    if claimed:
        return (
            _wave(0.3 * x, 127, 128),
            _wave(0.3 * y, 127, 128),
            _wave(0.3 * (x + y), 127, 128),
            255,
        )
    v = _wave(0.1 * (x + y), 30, 225)
    return (v, v, v, 255)
