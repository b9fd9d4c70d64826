# view_trajectory.py
# Visualize a planned trajectory (camera centres, path, frustums) over the proxy mesh in Open3D.
# Usage:
#   python view_trajectory.py --cfg experiments/configs/flat_square.yaml \
#                             --traj experiments/results/trajectory.csv --frustum-stride 4

import argparse
import numpy as np
import open3d as o3d

from plan_utils import load_cfg, load_mesh, default_intr_from_cfg, read_trajectory

PATH_COLOR = (0.10, 0.45, 0.95)
FRUSTUM_COLOR = (0.10, 0.80, 0.20)

def camera_markers(points, radius=0.5, color=PATH_COLOR):
    """One merged sphere mesh for all camera centres."""
    merged = o3d.geometry.TriangleMesh()
    for c in np.asarray(points, dtype=float):
        merged += o3d.geometry.TriangleMesh.create_sphere(radius=radius).translate(c)
    merged.paint_uniform_color(color)
    return merged

def make_polyline(points, color=PATH_COLOR):
    P = np.asarray(points, dtype=float)
    idx = np.column_stack([np.arange(len(P) - 1), np.arange(1, len(P))]).astype(np.int32)
    path = o3d.geometry.LineSet(o3d.utility.Vector3dVector(P), o3d.utility.Vector2iVector(idx))
    path.paint_uniform_color(color)
    return path

# near rectangle 0-3, far rectangle 4-7, optical centre 8
FRUSTUM_EDGES = np.array([[0, 1], [1, 2], [2, 3], [3, 0],
                          [4, 5], [5, 6], [6, 7], [7, 4],
                          [0, 4], [1, 5], [2, 6], [3, 7],
                          [8, 0], [8, 1], [8, 2], [8, 3]], dtype=np.int32)

def frustum_points(intr, pose, near=0.5, far=5.0):
    """World-space frustum vertices of `pose`, in FRUSTUM_EDGES order."""
    u = np.array([0.0, intr["width"], intr["width"], 0.0])
    v = np.array([0.0, 0.0, intr["height"], intr["height"]])
    rays = np.column_stack([(u - intr["cx"]) / intr["fx"], (v - intr["cy"]) / intr["fy"], np.ones(4)])
    cam = np.vstack([near * rays, far * rays, np.zeros((1, 3))])
    return cam @ pose.rotation + pose.position[None, :]

def make_frustum(intr, pose, near=0.5, far=5.0, color=FRUSTUM_COLOR):
    fr = o3d.geometry.LineSet(o3d.utility.Vector3dVector(frustum_points(intr, pose, near, far)),
                              o3d.utility.Vector2iVector(FRUSTUM_EDGES))
    fr.paint_uniform_color(color)
    return fr

def trajectory_geoms(poses, intr, frustum_stride=1, far=None, radius=None):
    pts = np.array([p.position for p in poses])
    span = float(np.max(np.ptp(pts, axis=0))) if len(pts) > 1 else 1.0
    far = far or max(1.0, 0.08 * span)
    radius = radius or max(0.05, 0.01 * span)

    geoms = [camera_markers(pts, radius=radius)]
    if len(pts) > 1:
        geoms.append(make_polyline(pts))
    geoms += [make_frustum(intr, p, near=0.1 * far, far=far) for p in poses[::max(1, frustum_stride)]]
    return geoms

def main(cfg_path, traj_path, frustum_stride=1):
    cfg = load_cfg(cfg_path)
    intr = default_intr_from_cfg(cfg)
    mesh, center, _ = load_mesh(cfg["proxy_mesh_path"])
    poses = read_trajectory(traj_path, focal=intr["fx"])
    box = mesh.get_axis_aligned_bounding_box()
    box.color = (1.0, 0.2, 0.2)

    print(f"Showing {len(poses)} poses from {traj_path}")
    o3d.visualization.draw_geometries(
        [mesh, box] + trajectory_geoms(poses, intr, frustum_stride=frustum_stride),
        window_name=f"Planned trajectory: {len(poses)} views",
        width=1280, height=800,
        lookat=center.tolist(), front=[0, -1, 1], up=[0, 0, 1], zoom=0.7,
    )

if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Show a planned trajectory over the proxy mesh.")
    ap.add_argument("--cfg", required=True, help="experiments/configs/flat_square.yaml")
    ap.add_argument("--traj", default="experiments/results/trajectory.csv")
    ap.add_argument("--frustum-stride", type=int, default=1, help="draw every Nth camera frustum")
    args = ap.parse_args()
    main(args.cfg, args.traj, frustum_stride=max(1, args.frustum_stride))
