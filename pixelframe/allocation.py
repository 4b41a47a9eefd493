import logging
from typing import Optional

from pixelframe.errors import PersistenceError
from pixelframe.grid_store import Coord, GridStore

logger = logging.getLogger(__name__)


class AllocationEngine:
    """Hands out tiles first-come first-served in row-major order."""

    def __init__(self, store: GridStore):
        self.store = store

    def claim(self, owner_id) -> Optional[Coord]:
        """Claim the next free tile for ``owner_id`` and persist it.

        Returns the tile's (x, y), or None when the canvas is full. Scan, mark
        and save all happen under the store lock, so concurrent claims are
        totally ordered in memory and on disk. If the save fails the claim is
        rolled back and PersistenceError propagates.
        """
        owner_id = str(owner_id)
        with self.store.lock:
            coord = self.store.first_free()
            if coord is None:
                return None
            x, y = coord
            self.store.mark(x, y, owner_id)
            try:
                self.store.save()
            except PersistenceError:
                self.store.unmark(x, y, owner_id)
                logger.error("Rolled back claim of (%d, %d) by fid=%s", x, y, owner_id)
                raise
        return coord
