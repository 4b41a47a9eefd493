class PixelFrameError(Exception):
    pass


class PersistenceError(PixelFrameError):
    """Snapshot could not be read or written."""


class RenderEncodingError(PixelFrameError):
    """The frame image could not be encoded."""
