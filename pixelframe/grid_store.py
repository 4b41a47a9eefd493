"""Canvas state: the tile lattice and the fid -> claims index.

Only coordinates on the TOKEN_SIZE stride are claim anchors, so the store keeps
a GRID_SIZE/TOKEN_SIZE square lattice rather than the full logical grid. Both
structures are written to a single JSON snapshot so they can never disagree on
disk.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Dict, List, Optional, Tuple

from pixelframe.errors import PersistenceError

GRID_SIZE = 1000
TOKEN_SIZE = 10
LATTICE_SIZE = GRID_SIZE // TOKEN_SIZE
SNAPSHOT_VERSION = 1

Coord = Tuple[int, int]

logger = logging.getLogger(__name__)


def lattice_index(x: int, y: int) -> Tuple[int, int]:
    """(x, y) grid coordinate -> (row, col) in the lattice."""
    if x % TOKEN_SIZE or y % TOKEN_SIZE:
        raise ValueError(f"({x}, {y}) is not a tile anchor")
    if not (0 <= x < GRID_SIZE and 0 <= y < GRID_SIZE):
        raise ValueError(f"({x}, {y}) is outside the grid")
    return y // TOKEN_SIZE, x // TOKEN_SIZE


class GridStore:
    def __init__(self, path: Optional[str] = None):
        # path=None keeps the store in memory only (save() is a no-op)
        self.path = path
        self.lock = threading.RLock()
        self._cells: List[List[Optional[str]]] = [
            [None] * LATTICE_SIZE for _ in range(LATTICE_SIZE)
        ]
        self._claims: Dict[str, List[Coord]] = {}
        # every lattice index below the cursor is claimed
        self._cursor = 0

    @property
    def capacity(self) -> int:
        return LATTICE_SIZE * LATTICE_SIZE

    # —————————————————————————————————————————————————
    # Persistence
    # —————————————————————————————————————————————————

    @classmethod
    def load(cls, path: str, recover: bool = False) -> "GridStore":
        """Restore the store from ``path``.

        A missing snapshot gives an empty store. An unreadable or inconsistent
        one raises PersistenceError, or with ``recover`` logs the problem and
        starts empty.
        """
        store = cls(path)
        if not os.path.exists(path):
            logger.info("No snapshot at %s, starting with an empty canvas", path)
            return store
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            store._restore(data)
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            if not recover:
                raise PersistenceError(f"cannot load snapshot {path}: {e}") from e
            logger.error("Discarding unreadable snapshot %s: %s", path, e)
            return cls(path)
        logger.info(
            "Loaded %d claims from %s", store.claimed_count(), path
        )
        return store

    def save(self):
        """Write grid and claims together; the old snapshot is replaced atomically."""
        if self.path is None:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        # held through the rename so snapshots land on disk in claim order
        with self.lock:
            payload = json.dumps(self.snapshot())
            tmp_path = None
            try:
                fd, tmp_path = tempfile.mkstemp(
                    prefix=".pixelframe-", suffix=".tmp", dir=directory
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except OSError as e:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise PersistenceError(f"cannot write snapshot {self.path}: {e}") from e

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "version": SNAPSHOT_VERSION,
                "grid_size": GRID_SIZE,
                "token_size": TOKEN_SIZE,
                "grid": [list(row) for row in self._cells],
                "user_pixels": {
                    owner: [{"x": x, "y": y} for x, y in coords]
                    for owner, coords in self._claims.items()
                },
            }

    def _restore(self, data: dict):
        if data.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {data.get('version')!r}")
        if data["grid_size"] != GRID_SIZE or data["token_size"] != TOKEN_SIZE:
            raise ValueError(
                f"snapshot is for a {data['grid_size']}/{data['token_size']} grid"
            )
        grid = data["grid"]
        if len(grid) != LATTICE_SIZE or any(len(row) != LATTICE_SIZE for row in grid):
            raise ValueError("grid has the wrong shape")

        cells: List[List[Optional[str]]] = []
        claimed = 0
        for row in grid:
            for owner in row:
                if owner is not None and not isinstance(owner, str):
                    raise ValueError(f"bad cell value {owner!r}")
                claimed += owner is not None
            cells.append(list(row))

        claims: Dict[str, List[Coord]] = {}
        indexed = 0
        for owner, pixels in data["user_pixels"].items():
            coords = []
            for p in pixels:
                x, y = int(p["x"]), int(p["y"])
                row, col = lattice_index(x, y)
                if cells[row][col] != owner:
                    raise ValueError(f"claim ({x}, {y}) by {owner} is not on the grid")
                coords.append((x, y))
            indexed += len(coords)
            claims[owner] = coords
        if indexed != claimed or len(
            {c for coords in claims.values() for c in coords}
        ) != indexed:
            raise ValueError("grid and claim index disagree")

        with self.lock:
            self._cells = cells
            self._claims = claims
            self._cursor = 0

    # —————————————————————————————————————————————————
    # Reads
    # —————————————————————————————————————————————————

    def owner_at(self, x: int, y: int) -> Optional[str]:
        row, col = lattice_index(x, y)
        with self.lock:
            return self._cells[row][col]

    def is_claimed(self, x: int, y: int) -> bool:
        return self.owner_at(x, y) is not None

    def claims_for(self, owner_id) -> List[Coord]:
        with self.lock:
            return list(self._claims.get(str(owner_id), []))

    def claimed_count(self) -> int:
        with self.lock:
            return sum(len(coords) for coords in self._claims.values())

    def claimed_tiles(self) -> List[Tuple[int, int, str]]:
        """Consistent row-major list of (x, y, owner) for every claimed tile."""
        with self.lock:
            return [
                (col * TOKEN_SIZE, row * TOKEN_SIZE, owner)
                for row, cells in enumerate(self._cells)
                for col, owner in enumerate(cells)
                if owner is not None
            ]

    # —————————————————————————————————————————————————
    # Mutation
    # —————————————————————————————————————————————————

    def first_free(self) -> Optional[Coord]:
        """First unclaimed anchor in row-major order, or None when full."""
        with self.lock:
            i = self._cursor
            while i < self.capacity:
                row, col = divmod(i, LATTICE_SIZE)
                if self._cells[row][col] is None:
                    self._cursor = i
                    return col * TOKEN_SIZE, row * TOKEN_SIZE
                i += 1
            self._cursor = i
            return None

    def mark(self, x: int, y: int, owner_id: str):
        row, col = lattice_index(x, y)
        with self.lock:
            if self._cells[row][col] is not None:
                raise ValueError(f"({x}, {y}) is already claimed")
            self._cells[row][col] = owner_id
            self._claims.setdefault(owner_id, []).append((x, y))

    def unmark(self, x: int, y: int, owner_id: str):
        """Undo the most recent mark() of (x, y) by owner_id."""
        row, col = lattice_index(x, y)
        with self.lock:
            if self._cells[row][col] != owner_id:
                raise ValueError(f"({x}, {y}) is not claimed by {owner_id}")
            self._cells[row][col] = None
            coords = self._claims[owner_id]
            coords.remove((x, y))
            if not coords:
                del self._claims[owner_id]
            self._cursor = min(self._cursor, row * LATTICE_SIZE + col)
