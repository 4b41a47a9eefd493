"""Million Pixel Frame: a shared canvas of claimable tiles."""

from pixelframe.allocation import AllocationEngine
from pixelframe.compositor import render
from pixelframe.errors import PersistenceError, PixelFrameError, RenderEncodingError
from pixelframe.grid_store import GRID_SIZE, TOKEN_SIZE, GridStore
from pixelframe.tile_color import tile_color

__all__ = [
    "AllocationEngine",
    "GRID_SIZE",
    "GridStore",
    "PersistenceError",
    "PixelFrameError",
    "RenderEncodingError",
    "TOKEN_SIZE",
    "render",
    "tile_color",
]
