# seed_path.py: cubic spline seed trajectory through guidance waypoints
# The curve interpolates every waypoint at a uniform parameter; poses come out nadir-facing.

from __future__ import annotations
from typing import List
import numpy as np
from scipy.interpolate import BSpline, make_interp_spline

from plan_utils import CameraPose, InsufficientWaypoints, NADIR_ROTATION

DEGREE = 3


def waypoint_params(n_waypoints: int) -> np.ndarray:
    """Waypoint j sits at t = j / (m - 1)."""
    return np.linspace(0.0, 1.0, n_waypoints)

def fit_seed_spline(waypoints: np.ndarray, degree: int = DEGREE) -> BSpline:
    W = np.asarray(waypoints, dtype=float).reshape(-1, 3)
    if len(W) < degree + 1:
        raise InsufficientWaypoints(
            f"Seed spline of degree {degree} needs at least {degree + 1} waypoints, got {len(W)}.")
    return make_interp_spline(waypoint_params(len(W)), W, k=degree)

def sample_positions(spline: BSpline, n_views: int) -> np.ndarray:
    """n_views positions at t = i / n_views, i.e. evenly over [0, 1)."""
    if n_views <= 0:
        raise ValueError(f"n_views must be positive, got {n_views}")
    t = np.arange(n_views) / float(n_views)
    return np.asarray(spline(t), dtype=float)

def nadir_poses(positions: np.ndarray, focal: float) -> List[CameraPose]:
    return [CameraPose(np.asarray(p, dtype=float).copy(), NADIR_ROTATION.copy(), float(focal))
            for p in np.asarray(positions, dtype=float).reshape(-1, 3)]

def seed_trajectory(waypoints: np.ndarray, n_views: int, focal: float,
                    verbose: bool = False) -> List[CameraPose]:
    spline = fit_seed_spline(waypoints)
    positions = sample_positions(spline, n_views)
    if verbose:
        span = positions.max(axis=0) - positions.min(axis=0)
        print(f"[seed] {len(waypoints)} waypoints -> {n_views} poses, span {np.round(span, 3)}")
    return nadir_poses(positions, focal)
