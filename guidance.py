# guidance.py: guidance volume + waypoint extraction along a serpentine column scan
# Volume file (.npz): samples (W,H,D,S) with NaN = absent, transform (4,4) voxel index -> world.

from __future__ import annotations
from typing import List, Tuple
import argparse
import os
import numpy as np

from plan_utils import LoadError, load_cfg, ensure_dir_for


class GuidanceVolume:
    def __init__(self, samples: np.ndarray, transform: np.ndarray | None = None):
        samples = np.asarray(samples, dtype=float)
        if samples.ndim == 3:
            samples = samples[..., None]
        if samples.ndim != 4:
            raise ValueError(f"Guidance samples must be (W,H,D[,S]), got shape {samples.shape}")
        self.samples = samples
        self.transform = np.eye(4) if transform is None else np.asarray(transform, dtype=float)
        if self.transform.shape != (4, 4):
            raise ValueError(f"Guidance transform must be 4x4, got {self.transform.shape}")

    @property
    def shape(self) -> Tuple[int, int, int]:
        W, H, D, _ = self.samples.shape
        return W, H, D

    def voxel_scores(self) -> np.ndarray:
        """Max of the present samples per voxel; -inf for empty voxels."""
        s = self.samples
        if s.shape[-1] == 0:
            return np.full(s.shape[:3], -np.inf)
        return np.max(np.where(np.isnan(s), -np.inf, s), axis=-1)

    def to_world(self, idx: np.ndarray) -> np.ndarray:
        idx = np.asarray(idx, dtype=float).reshape(-1, 3)
        h = np.hstack([idx, np.ones((len(idx), 1))])
        return (h @ self.transform.T)[:, :3]


def load_guidance_volume(path: str) -> GuidanceVolume:
    if not os.path.isfile(path):
        raise LoadError(f"Guidance volume not found: {path}")
    try:
        with np.load(path) as data:
            samples = data["samples"]
            transform = data["transform"] if "transform" in data.files else None
    except (OSError, ValueError, KeyError) as e:
        raise LoadError(f"Malformed guidance volume: {path}") from e
    try:
        return GuidanceVolume(samples, transform)
    except ValueError as e:
        raise LoadError(f"Malformed guidance volume {path}: {e}") from e

def save_guidance_volume(vol: GuidanceVolume, path: str) -> None:
    ensure_dir_for(path)
    np.savez(path, samples=vol.samples, transform=vol.transform)

# -------------------- traversal --------------------

def serpentine_columns(width: int, height: int, pitch: int = 3) -> List[Tuple[int, int]]:
    """
    Boustrophedon over the ground grid, skipping a one-cell border.
    Rows are `pitch` apart; after each row (except the last) the two columns
    between it and the next row are visited at the turning x, so the path
    never jumps diagonally across the grid.
    """
    cols: List[Tuple[int, int]] = []
    if width < 3 or height < 3:
        return cols
    rows = list(range(1, height - 1, pitch))
    for r, y in enumerate(rows):
        xs = range(1, width - 1) if r % 2 == 0 else range(width - 2, 0, -1)
        cols.extend((x, y) for x in xs)
        if r + 1 < len(rows):
            x_end = xs[-1]
            cols.extend((x_end, y + dy) for dy in range(1, pitch))
    return cols

def best_slice(col_scores: np.ndarray) -> int:
    """First z with the largest score; topmost slice when the column has no data."""
    if not np.isfinite(col_scores).any():
        return len(col_scores) - 1
    return int(np.argmax(col_scores))

def extract_waypoints(vol: GuidanceVolume, verbose: bool = False) -> np.ndarray:
    W, H, D = vol.shape
    if D == 0:
        return np.zeros((0, 3))
    scores = vol.voxel_scores()
    idx = [(x, y, best_slice(scores[x, y])) for x, y in serpentine_columns(W, H)]
    if not idx:
        return np.zeros((0, 3))
    pts = vol.to_world(np.array(idx))
    if verbose:
        print(f"[guidance] volume {W}x{H}x{D} -> {len(pts)} waypoints")
    return pts


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Print the waypoints extracted from a guidance volume.")
    ap.add_argument("--cfg", required=True, help="experiments/configs/flat_square.yaml")
    args = ap.parse_args()

    cfg = load_cfg(args.cfg)
    vol = load_guidance_volume(cfg["guidance_volume_path"])
    for i, p in enumerate(extract_waypoints(vol, verbose=True)):
        print(f"{i:04d}  {p[0]:10.3f} {p[1]:10.3f} {p[2]:10.3f}")
