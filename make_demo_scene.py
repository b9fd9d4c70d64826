# make_demo_scene.py: synthetic flat-square scene (proxy mesh, surface samples, guidance volume)
# Writes <out-dir>/{proxy.ply, samples.ply, guidance.npz} and a matching YAML config.

import argparse
import os
import numpy as np
import open3d as o3d
import yaml

from guidance import GuidanceVolume, save_guidance_volume


def flat_square_mesh(side=40.0, z=0.0) -> o3d.geometry.TriangleMesh:
    h = 0.5 * side
    V = np.array([[-h, -h, z], [h, -h, z], [h, h, z], [-h, h, z]], dtype=float)
    F = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int32)
    mesh = o3d.geometry.TriangleMesh(o3d.utility.Vector3dVector(V), o3d.utility.Vector3iVector(F))
    mesh.compute_vertex_normals()
    return mesh

def scatter_on_square(n=100, side=40.0, z=0.0, seed=0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    h = 0.5 * side
    xy = rng.uniform(-h, h, size=(n, 2))
    return np.column_stack([xy, np.full(n, z)])

def height_guidance(side=40.0, cells=10, depth=10, z_step=5.0, best_height=30.0,
                    samples_per_voxel=2) -> GuidanceVolume:
    """Every column scores highest at `best_height`; cells tile the square."""
    pitch = side / cells
    T = np.diag([pitch, pitch, z_step, 1.0])
    T[:3, 3] = [-0.5 * side + 0.5 * pitch, -0.5 * side + 0.5 * pitch, 0.0]
    z = z_step * np.arange(depth)
    score = -np.abs(z - best_height)
    S = np.broadcast_to(score[None, None, :, None], (cells, cells, depth, samples_per_voxel)).copy()
    S[..., 1:] -= 1.0   # secondary samples never win
    return GuidanceVolume(S, T)

def write_scene(out_dir, side=40.0, n_samples=100, height=30.0, seed=0,
                n_views=4, max_distance=80.0):
    os.makedirs(out_dir, exist_ok=True)
    mesh_path = os.path.join(out_dir, "proxy.ply")
    pts_path = os.path.join(out_dir, "samples.ply")
    vol_path = os.path.join(out_dir, "guidance.npz")
    cfg_path = os.path.join(out_dir, "config.yaml")

    o3d.io.write_triangle_mesh(mesh_path, flat_square_mesh(side))
    pcd = o3d.geometry.PointCloud(o3d.utility.Vector3dVector(scatter_on_square(n_samples, side, seed=seed)))
    o3d.io.write_point_cloud(pts_path, pcd)
    save_guidance_volume(height_guidance(side, best_height=height), vol_path)

    cfg = {
        "proxy_mesh_path": mesh_path,
        "sample_points_path": pts_path,
        "guidance_volume_path": vol_path,
        "trajectory_in": "",
        "trajectory_out": os.path.join(out_dir, "trajectory.csv"),
        "intrinsics": {"width": 640, "height": 480, "fov_deg": 90.0},
        "planner": {"n_views": int(n_views), "max_distance": float(max_distance),
                    "sphere_subdivisions": 4, "n_theta": 256, "n_phi": 90,
                    "suppress_spikes": False},
        "runner": {"workers": 0},
        "debug": {"dump_dir": "", "every": 0},
    }
    with open(cfg_path, "w") as f:
        yaml.safe_dump(cfg, f, sort_keys=False)
    print(f"Wrote demo scene to {out_dir} (config: {cfg_path})")
    return cfg_path

if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--out-dir", default="experiments/data/flat_square")
    ap.add_argument("--side", type=float, default=40.0)
    ap.add_argument("--samples", type=int, default=100)
    ap.add_argument("--height", type=float, default=30.0)
    ap.add_argument("--views", type=int, default=4)
    ap.add_argument("--max-distance", type=float, default=80.0)
    ap.add_argument("--seed", type=int, default=0)
    args = ap.parse_args()

    write_scene(args.out_dir, side=args.side, n_samples=args.samples, height=args.height,
                seed=args.seed, n_views=args.views, max_distance=args.max_distance)
