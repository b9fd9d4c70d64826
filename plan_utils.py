# plan_utils.py: shared helpers for the reconstructability view planner
# CV camera convention: rows of R are (right, up, forward), camera looks along +Z.
# Holds config / input loading, the pose record, ray-casting visibility and trajectory CSV I/O.

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Tuple, Optional, List
import csv
import os
import numpy as np
import open3d as o3d
import yaml

# -------------------------
# Errors
# -------------------------


class LoadError(ValueError):
    """Missing or malformed mesh, point cloud, volume or trajectory file."""


class InsufficientWaypoints(ValueError):
    """Seed spline needs at least degree + 1 control points."""


class DegenerateOrientation(RuntimeError):
    """No visible surface sample to orient a waypoint toward."""

    def __init__(self, waypoint_index: Optional[int] = None, message: str = ""):
        self.waypoint_index = waypoint_index
        if not message:
            where = f" at waypoint {waypoint_index}" if waypoint_index is not None else ""
            message = f"All-zero reconstructability histogram{where}: no visible sample points."
        super().__init__(message)


class AcceleratorFailure(RuntimeError):
    """A parallel work item did not complete."""

# -------------------------
# Config / I/O
# -------------------------


def load_cfg(path: str) -> Dict:
    if not os.path.isfile(path):
        raise LoadError(f"Config not found: {path}")
    with open(path, "r") as f:
        cfg = yaml.safe_load(f)
    if not isinstance(cfg, dict):
        raise LoadError(f"Config is not a mapping: {path}")
    return cfg

def load_mesh(path: str) -> Tuple[o3d.geometry.TriangleMesh, np.ndarray, np.ndarray]:
    if not os.path.isfile(path):
        raise LoadError(f"Proxy mesh not found: {path}")
    mesh = o3d.io.read_triangle_mesh(path)
    if mesh.is_empty() or len(mesh.triangles) == 0:
        raise LoadError(f"Failed to load mesh: {path}")
    mesh.compute_vertex_normals()

    aabb = mesh.get_axis_aligned_bounding_box()
    center = np.asarray(aabb.get_center())
    extent = np.asarray(aabb.get_extent())
    return mesh, center, extent

def load_sample_points(path: str) -> np.ndarray:
    """Surface samples as an (n, 3) float64 array; order is the point id."""
    if not os.path.isfile(path):
        raise LoadError(f"Sample point cloud not found: {path}")
    if path.lower().endswith(".npy"):
        try:
            P = np.load(path)
        except (OSError, ValueError) as e:
            raise LoadError(f"Failed to read sample points: {path}") from e
    else:
        pcd = o3d.io.read_point_cloud(path)
        P = np.asarray(pcd.points)
    P = np.asarray(P, dtype=np.float64)
    if P.ndim != 2 or P.shape[1] != 3 or len(P) == 0:
        raise LoadError(f"Sample point cloud is empty or not (n,3): {path}")
    return P

# -------------------------
# Math helpers
# -------------------------

def _normalize(v: np.ndarray) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / (n + 1e-12)

# -------------------------
# Camera intrinsics / pose
# -------------------------

def pinhole_intrinsics(width: int = 640, height: int = 480, fov_deg: float = 60.0,
                       focal: Optional[float] = None) -> Dict[str, float]:
    """Square-pixel pinhole; an explicit focal (px) wins over the horizontal FOV."""
    if focal is None:
        focal = 0.5 * width / np.tan(np.radians(fov_deg / 2))
    fx = fy = float(focal)
    return dict(width=width, height=height, fx=fx, fy=fy, cx=width / 2, cy=height / 2)

def default_intr_from_cfg(cfg: Dict, focal: Optional[float] = None) -> Dict[str, float]:
    i = cfg["intrinsics"]
    if focal is None:
        focal = i.get("focal")
    return pinhole_intrinsics(int(i["width"]), int(i["height"]),
                              float(i.get("fov_deg", 60.0)), focal)

# camera looking straight down with the image "up" flipped
NADIR_ROTATION = np.array([[1.0, 0.0, 0.0],
                           [0.0, -1.0, 0.0],
                           [0.0, 0.0, -1.0]])


@dataclass
class CameraPose:
    position: np.ndarray   # (3,) world
    rotation: np.ndarray   # (3,3) world -> camera, rows = right, up, forward
    focal: float

    @property
    def translation(self) -> np.ndarray:
        return -self.rotation @ self.position

    @property
    def forward(self) -> np.ndarray:
        return self.rotation[2]

    def cam_T_world(self) -> np.ndarray:
        """4x4 camera-to-world transform (columns = camera axes in world)."""
        T = np.eye(4, dtype=float)
        T[:3, :3] = self.rotation.T
        T[:3, 3] = self.position
        return T


def in_frame(cam_pts: np.ndarray, intr: Dict[str, float]) -> np.ndarray:
    """Mask of camera-space points (or directions) that land inside the image."""
    z = cam_pts[..., 2]
    front = z > 1e-9
    zs = np.where(front, z, 1.0)
    u = intr["fx"] * cam_pts[..., 0] / zs + intr["cx"]
    v = intr["fy"] * cam_pts[..., 1] / zs + intr["cy"]
    return front & (u >= 0) & (u < intr["width"]) & (v >= 0) & (v < intr["height"])

def project_in_frame(pose: CameraPose, intr: Dict[str, float], P: np.ndarray) -> np.ndarray:
    cam = (P - pose.position[None, :]) @ pose.rotation.T
    return in_frame(cam, intr)

# -------------------------
# Raycasting (intersection index)
# -------------------------

def build_clean_tensor_scene(mesh_legacy: o3d.geometry.TriangleMesh) -> o3d.t.geometry.RaycastingScene:
    V = np.asarray(mesh_legacy.vertices)
    F = np.asarray(mesh_legacy.triangles)
    if V.size == 0 or F.size == 0:
        raise LoadError("Empty proxy mesh geometry.")
    tmesh = o3d.t.geometry.TriangleMesh(
        vertex_positions=o3d.core.Tensor(V.astype(np.float32)),
        triangle_indices=o3d.core.Tensor(F.astype(np.int32))
    )
    scene = o3d.t.geometry.RaycastingScene()
    _ = scene.add_triangles(tmesh)
    # first query builds the BVH; do it here, before any worker threads share the scene
    scene.cast_rays(o3d.core.Tensor(np.array([[0, 0, 0, 0, 0, 1]], dtype=np.float32)))
    return scene

def unoccluded(scene, origin: np.ndarray, P: np.ndarray,
               rel_tol: float = 1e-3, abs_tol: float = 1e-4) -> np.ndarray:
    """
    Line-of-sight test from one origin to many points.
    A point is visible when the first proxy hit along origin->point is not
    closer than the point itself (within tolerance). Misses count as visible.
    """
    if len(P) == 0:
        return np.zeros(0, dtype=bool)
    vec = P - origin[None, :]
    dist = np.linalg.norm(vec, axis=1)
    dirw = _normalize(vec)
    origins = np.broadcast_to(origin, P.shape)
    rays = np.concatenate([origins, dirw], axis=1).astype(np.float32)
    t_hit = scene.cast_rays(o3d.core.Tensor(rays))["t_hit"].numpy()

    tol = np.maximum(abs_tol, rel_tol * dist)
    clear = ~np.isfinite(t_hit) | (t_hit >= dist - tol)
    return clear & (dist > abs_tol)

# -------------------------
# Trajectory CSV
# -------------------------

ROT_COLS = [f"r{i}{j}" for i in range(3) for j in range(3)]

def save_trajectory(poses: List[CameraPose], path: str) -> None:
    ensure_dir_for(path)
    with open(path, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["idx", "x", "y", "z"] + ROT_COLS + ["focal"])
        for i, p in enumerate(poses):
            w.writerow([i, *map(float, p.position), *map(float, p.rotation.reshape(-1)), float(p.focal)])

def _read_rows(path: str) -> List[Dict[str, str]]:
    if not os.path.isfile(path):
        raise LoadError(f"Trajectory not found: {path}")
    with open(path, "r", newline="") as f:
        r = csv.DictReader(f)
        cols = [c.strip().lower() for c in (r.fieldnames or [])]
        if not {"idx", "x", "y", "z"}.issubset(cols):
            raise LoadError(f"{path} must have header idx,x,y,z")
        rows = [{k.strip().lower(): v for k, v in row.items()} for row in r]
    if not rows:
        raise LoadError(f"No cameras found in {path}")
    return rows

def read_trajectory_positions(path: str) -> np.ndarray:
    rows = _read_rows(path)
    try:
        return np.array([[float(row["x"]), float(row["y"]), float(row["z"])] for row in rows])
    except (TypeError, ValueError) as e:
        raise LoadError(f"Bad coordinate in {path}") from e

def read_trajectory(path: str, focal: float = 0.0) -> List[CameraPose]:
    """Full poses; files without rotation columns come back nadir-facing."""
    rows = _read_rows(path)
    poses = []
    try:
        for row in rows:
            pos = np.array([float(row["x"]), float(row["y"]), float(row["z"])])
            if all(c in row for c in ROT_COLS):
                R = np.array([float(row[c]) for c in ROT_COLS]).reshape(3, 3)
            else:
                R = NADIR_ROTATION.copy()
            f = float(row["focal"]) if row.get("focal") else focal
            poses.append(CameraPose(pos, R, f))
    except (TypeError, ValueError) as e:
        raise LoadError(f"Bad value in {path}") from e
    return poses

def ensure_dir_for(path):
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)

# -------------------------
# Exported names
# -------------------------

__all__ = [
    # errors
    "LoadError", "InsufficientWaypoints", "DegenerateOrientation", "AcceleratorFailure",
    # config / io
    "load_cfg", "load_mesh", "load_sample_points",
    # camera
    "pinhole_intrinsics", "default_intr_from_cfg", "NADIR_ROTATION", "CameraPose",
    "in_frame", "project_in_frame",
    # math
    "_normalize",
    # raycasting
    "build_clean_tensor_scene", "unoccluded",
    # trajectory csv
    "ROT_COLS", "save_trajectory", "read_trajectory_positions", "read_trajectory", "ensure_dir_for",
]
