"""Frame image rendering.

The canvas is painted tile by tile with tile_color, the freshly claimed tile
(if any) gets a translucent yellow wash, and the caption goes on last.
"""
import io
import math
from functools import lru_cache
from typing import Iterable, Optional, Set, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from pixelframe.errors import RenderEncodingError
from pixelframe.grid_store import GRID_SIZE, TOKEN_SIZE, Coord, GridStore
from pixelframe.tile_color import tile_color

FRAME_WIDTH = 1200
FRAME_HEIGHT = 630
BACKGROUND = (255, 255, 255, 255)
HIGHLIGHT = (255, 255, 0, 128)
CAPTION = "Million Pixel Frame"
CAPTION_OFFSET = (10, 10)
CAPTION_FONT_SIZE = 16
CAPTION_COLOR = (0, 0, 0, 255)

SCALE_FACTOR = FRAME_WIDTH / GRID_SIZE
SCALED_TOKEN_SIZE = math.floor(TOKEN_SIZE * SCALE_FACTOR)


@lru_cache(maxsize=1)
def caption_font() -> Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]:
    return ImageFont.load_default(size=CAPTION_FONT_SIZE)


def tile_box(x: int, y: int) -> Optional[Tuple[int, int, int, int]]:
    """Pixel box (left, top, right, bottom) of a tile, clipped to the frame.

    Right and bottom are exclusive. None if the tile is entirely off-frame.
    """
    left = math.floor(x * SCALE_FACTOR)
    top = math.floor(y * SCALE_FACTOR)
    right = min(left + SCALED_TOKEN_SIZE, FRAME_WIDTH)
    bottom = min(top + SCALED_TOKEN_SIZE, FRAME_HEIGHT)
    if left >= right or top >= bottom:
        return None
    return left, top, right, bottom


def compose(claimed: Iterable[Coord], highlight: Optional[Coord] = None) -> Image.Image:
    claimed_set: Set[Coord] = set(claimed)
    image = Image.new("RGBA", (FRAME_WIDTH, FRAME_HEIGHT), BACKGROUND)
    draw = ImageDraw.Draw(image)

    for y in range(0, GRID_SIZE, TOKEN_SIZE):
        for x in range(0, GRID_SIZE, TOKEN_SIZE):
            box = tile_box(x, y)
            if box is None:
                continue
            left, top, right, bottom = box
            # rectangle() bounds are inclusive
            draw.rectangle(
                (left, top, right - 1, bottom - 1),
                fill=tile_color(x, y, (x, y) in claimed_set),
            )

    if highlight is not None:
        box = tile_box(*highlight)
        if box is not None:
            base = image.crop(box)
            wash = Image.new("RGBA", base.size, HIGHLIGHT)
            image.paste(Image.alpha_composite(base, wash), box[:2])

    draw.text(CAPTION_OFFSET, CAPTION, font=caption_font(), fill=CAPTION_COLOR)
    return image


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    try:
        image.save(buf, format="PNG")
    except (OSError, ValueError) as e:
        raise RenderEncodingError(f"PNG encoding failed: {e}") from e
    return buf.getvalue()


def render(store: GridStore, highlight: Optional[Coord] = None) -> bytes:
    """PNG bytes of the whole canvas, optionally highlighting one tile."""
    claimed = [(x, y) for x, y, _ in store.claimed_tiles()]
    return encode_png(compose(claimed, highlight))
