# orientation.py: histogram bin -> view direction -> right-handed camera basis
# Basis rows are (right, up, forward); near-vertical views swap in a horizontal up vector.

from __future__ import annotations
from typing import Optional, Tuple
import numpy as np

from plan_utils import CameraPose, DegenerateOrientation, _normalize

REFERENCE_UP = np.array([0.0, 0.0, -1.0])
DEGENERATE_DOT = 0.99


def histogram_angles(n_theta: int = 256, n_phi: int = 90) -> Tuple[np.ndarray, np.ndarray]:
    """Azimuths over [0, 2pi) and elevations over the downward half [pi/2, pi]."""
    thetas = 2.0 * np.pi * np.arange(n_theta) / n_theta
    if n_phi == 1:
        phis = np.array([np.pi])
    else:
        phis = 0.5 * np.pi + 0.5 * np.pi * np.arange(n_phi) / (n_phi - 1)
    return thetas, phis

def bin_direction(theta, phi) -> np.ndarray:
    theta = np.asarray(theta, dtype=float)
    phi = np.asarray(phi, dtype=float)
    return np.stack([np.cos(theta) * np.sin(phi),
                     np.sin(theta) * np.sin(phi),
                     np.cos(phi) * np.ones_like(theta)], axis=-1)

def camera_basis(direction: np.ndarray, phi=None) -> np.ndarray:
    """
    Rotation(s) with rows (right, up, forward=direction), broadcasting over
    leading axes. `phi` defaults to the polar angle of `direction`; it only
    matters when the direction is within acos(0.99) of vertical, where the
    up vector becomes (cos phi, sin phi, 0).
    """
    d = _normalize(direction)
    if phi is None:
        phi = np.arccos(np.clip(d[..., 2], -1.0, 1.0))
    phi = np.asarray(phi, dtype=float) * np.ones(d.shape[:-1])

    up = np.broadcast_to(REFERENCE_UP, d.shape)
    fallback = np.stack([np.cos(phi), np.sin(phi), np.zeros_like(phi)], axis=-1)
    degenerate = np.abs(np.sum(d * up, axis=-1)) >= DEGENERATE_DOT
    up = np.where(degenerate[..., None], fallback, up)

    right = _normalize(np.cross(up, d))
    up = _normalize(np.cross(d, right))
    return np.stack([right, up, d], axis=-2)

def select_bin(hist: np.ndarray, waypoint_index: Optional[int] = None) -> Tuple[int, int]:
    """First bin in raster order holding the strict maximum."""
    if hist.size == 0 or not np.any(hist > 0):
        raise DegenerateOrientation(waypoint_index)
    i, j = np.unravel_index(int(np.argmax(hist)), hist.shape)
    return int(i), int(j)

def orient_pose(position: np.ndarray, hist: np.ndarray, thetas: np.ndarray, phis: np.ndarray,
                focal: float, waypoint_index: Optional[int] = None) -> Tuple[CameraPose, Tuple[int, int]]:
    i, j = select_bin(hist, waypoint_index)
    d = bin_direction(thetas[i], phis[j])
    R = camera_basis(d, phis[j])
    return CameraPose(np.asarray(position, dtype=float).copy(), R, float(focal)), (i, j)
