# reconstructability.py: spherical reconstructability histogram at a fixed camera position
#
# Two data-parallel passes per waypoint:
#   sweep      - per visible sample point, a contribution from its view history,
#                dropped into the bucket of the nearest candidate direction
#   projection - per azimuth row, sum the buckets that fall inside the image of
#                the camera pointed at each (theta, phi) bin
# A contribution rewards views that form a useful baseline with the directions
# a point has already been seen from, and shrinks as the point's accumulated
# reconstructability grows.

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import numpy as np
import open3d as o3d
from scipy.ndimage import maximum_filter
from scipy.spatial import cKDTree

from plan_utils import _normalize, in_frame, unoccluded
from orientation import bin_direction, camera_basis, histogram_angles
from runners import ParallelRunner, SequentialRunner, chunk_bounds
from view_history import ViewHistory

# -------------------- scoring weights --------------------


@dataclass
class ScoringParams:
    unseen_weight: float = 1.0
    k1: float = 32.0
    alpha1: float = np.pi / 16   # below this, baselines are too short to triangulate
    k3: float = 8.0
    alpha3: float = np.pi / 4    # above this, correspondences get unreliable

    @classmethod
    def from_cfg(cls, cfg: Optional[Dict]) -> "ScoringParams":
        s = (cfg or {}).get("scoring") or {}
        return cls(unseen_weight=float(s.get("unseen_weight", 1.0)),
                   k1=float(s.get("k1", 32.0)),
                   alpha1=np.radians(float(s.get("alpha1_deg", 11.25))),
                   k3=float(s.get("k3", 8.0)),
                   alpha3=np.radians(float(s.get("alpha3_deg", 45.0))))


def pair_quality(alpha, params: ScoringParams) -> np.ndarray:
    alpha = np.asarray(alpha, dtype=float)
    w1 = 1.0 / (1.0 + np.exp(-params.k1 * (alpha - params.alpha1)))
    w3 = 1.0 - 1.0 / (1.0 + np.exp(-params.k3 * (alpha - params.alpha3)))
    return w1 * w3

def distance_weight(dist, max_distance: float) -> np.ndarray:
    return 1.0 - np.minimum(np.asarray(dist, dtype=float) / max_distance, 1.0)

def history_gain(history: ViewHistory, ids: np.ndarray, v: np.ndarray,
                 params: ScoringParams) -> np.ndarray:
    """Sum of pair qualities between each point's history and its new direction v."""
    ids = np.asarray(ids, dtype=int)
    H = history.window(ids)
    if H.shape[1] == 0:
        return np.zeros(len(ids))
    cos = np.clip(np.einsum("mkc,mc->mk", H, v), -1.0, 1.0)
    q = pair_quality(np.arccos(cos), params)
    filled = np.arange(H.shape[1])[None, :] < history.counts[ids][:, None]
    return np.sum(np.where(filled, q, 0.0), axis=1)

def point_contributions(history: ViewHistory, ids: np.ndarray, v: np.ndarray, dist: np.ndarray,
                        max_distance: float, params: ScoringParams) -> np.ndarray:
    ids = np.asarray(ids, dtype=int)
    seen = history.counts[ids] > 0
    gain = history_gain(history, ids, v, params) / (1.0 + history.recon[ids])
    c = np.where(seen, gain, params.unseen_weight)
    return c * distance_weight(dist, max_distance)

# -------------------- candidate directions --------------------

def tessellated_hemisphere(subdivisions: int = 4) -> np.ndarray:
    """Unit vertices of a subdivided icosahedron with z <= 0 (horizon included)."""
    mesh = o3d.geometry.TriangleMesh.create_icosahedron(radius=1.0)
    if subdivisions > 0:
        mesh = mesh.subdivide_midpoint(number_of_iterations=int(subdivisions))
    V = _normalize(np.asarray(mesh.vertices))
    return V[V[:, 2] <= 1e-6]


class CandidateDirections:
    def __init__(self, dirs: np.ndarray):
        self.dirs = np.asarray(dirs, dtype=float)
        self.tree = cKDTree(self.dirs)

    @classmethod
    def hemisphere(cls, subdivisions: int = 4) -> "CandidateDirections":
        return cls(tessellated_hemisphere(subdivisions))

    def __len__(self):
        return len(self.dirs)

    def nearest(self, v: np.ndarray) -> np.ndarray:
        _, idx = self.tree.query(v, k=1)
        return np.asarray(idx, dtype=int)

# -------------------- spike suppression --------------------

def suppress_spikes(hist: np.ndarray) -> np.ndarray:
    """Clamp every bin to the max of its 8 neighbours; azimuth wraps, elevation does not."""
    fp = np.ones((3, 3), dtype=bool)
    fp[1, 1] = False
    neigh = maximum_filter(hist, footprint=fp, mode=("wrap", "constant"), cval=-np.inf)
    return np.minimum(hist, neigh)

# -------------------- evaluator --------------------


class ReconstructabilityEvaluator:
    def __init__(self, scene, samples: np.ndarray, history: ViewHistory, intr: Dict[str, float],
                 max_distance: float,
                 params: Optional[ScoringParams] = None,
                 directions: Optional[CandidateDirections] = None,
                 n_theta: int = 256, n_phi: int = 90,
                 spike_suppression: bool = False,
                 runner: Optional[ParallelRunner] = None,
                 chunk: int = 4096):
        if max_distance <= 0:
            raise ValueError(f"max_distance must be positive, got {max_distance}")
        self.scene = scene
        self.samples = np.asarray(samples, dtype=float)
        if history.n_points != len(self.samples):
            raise ValueError("ViewHistory and sample cloud disagree on point count.")
        self.history = history
        self.intr = intr
        self.max_distance = float(max_distance)
        self.params = params or ScoringParams()
        self.directions = directions or CandidateDirections.hemisphere()
        self.thetas, self.phis = histogram_angles(n_theta, n_phi)
        self.spike_suppression = spike_suppression
        self.runner = runner or SequentialRunner()
        self.chunk = chunk
        self.sample_tree = cKDTree(self.samples)
        self._row_masks = self._build_row_masks()

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.thetas), len(self.phis)

    def _build_row_masks(self) -> np.ndarray:
        # (n_theta, n_phi, n_dirs): which candidate directions land in frame per bin.
        # Depends only on the bin angles and intrinsics, so it is shared by all waypoints.
        n_t, n_p = self.shape
        masks = np.zeros((n_t, n_p, len(self.directions)), dtype=bool)
        D = self.directions.dirs

        def row(i):
            R = camera_basis(bin_direction(self.thetas[i], self.phis), self.phis)
            cam = np.einsum("pab,db->pda", R, D)
            masks[i] = in_frame(cam, self.intr)

        self.runner.run(n_t, row)
        return masks

    def sweep(self, position: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Bucket scores per candidate direction and the ids of visible samples."""
        position = np.asarray(position, dtype=float)
        buckets = np.zeros(len(self.directions))
        near = self.sample_tree.query_ball_point(position, r=self.max_distance)
        ids = np.array(sorted(near), dtype=int)
        if ids.size == 0:
            return buckets, ids

        visible = np.zeros(ids.size, dtype=bool)
        nearest = np.zeros(ids.size, dtype=int)
        contrib = np.zeros(ids.size)
        bounds = chunk_bounds(ids.size, self.chunk)

        def work(c):
            a, b = bounds[c]
            sub = ids[a:b]
            P = self.samples[sub]
            vec = P - position[None, :]
            dist = np.linalg.norm(vec, axis=1)
            v = _normalize(vec)
            visible[a:b] = unoccluded(self.scene, position, P)
            nearest[a:b] = self.directions.nearest(v)
            contrib[a:b] = point_contributions(self.history, sub, v, dist,
                                               self.max_distance, self.params)

        self.runner.run(len(bounds), work)
        np.add.at(buckets, nearest[visible], contrib[visible])
        return buckets, ids[visible]

    def project(self, buckets: np.ndarray) -> np.ndarray:
        hist = np.zeros(self.shape)

        def row(i):
            hist[i] = self._row_masks[i].astype(float) @ buckets

        self.runner.run(self.shape[0], row)
        if self.spike_suppression:
            hist = suppress_spikes(hist)
        return hist

    def evaluate(self, position: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        buckets, visible_ids = self.sweep(position)
        return self.project(buckets), visible_ids
