# view_history.py: per-sample-point record of committed view directions
# Array-of-structs by point id: (n, capacity, 3) directions, fill counts and the
# accumulated pairwise reconstructability of each point.

import numpy as np


class ViewHistory:
    def __init__(self, n_points: int, capacity: int):
        if capacity <= 0:
            raise ValueError(f"ViewHistory capacity must be positive, got {capacity}")
        self.dirs = np.zeros((int(n_points), int(capacity), 3), dtype=float)
        self.counts = np.zeros(int(n_points), dtype=int)
        self.recon = np.zeros(int(n_points), dtype=float)

    @property
    def n_points(self) -> int:
        return self.dirs.shape[0]

    @property
    def capacity(self) -> int:
        return self.dirs.shape[1]

    def directions(self, i: int) -> np.ndarray:
        return self.dirs[i, :self.counts[i]]

    def window(self, ids: np.ndarray) -> np.ndarray:
        """(m, k, 3) histories of `ids`, k = longest among them; unused slots are zero."""
        ids = np.asarray(ids, dtype=int)
        k = int(self.counts[ids].max()) if ids.size else 0
        return self.dirs[ids, :k]

    def append(self, ids: np.ndarray, dirs: np.ndarray, gains: np.ndarray = None) -> None:
        ids = np.asarray(ids, dtype=int)
        if ids.size == 0:
            return
        if np.unique(ids).size != ids.size:
            raise ValueError("ViewHistory.append got duplicate point ids.")
        slots = self.counts[ids]
        if np.any(slots >= self.capacity):
            full = ids[slots >= self.capacity]
            raise ValueError(f"ViewHistory full for {full.size} point(s) (capacity {self.capacity}).")
        self.dirs[ids, slots] = np.asarray(dirs, dtype=float).reshape(-1, 3)
        if gains is not None:
            self.recon[ids] += np.asarray(gains, dtype=float)
        self.counts[ids] += 1
