# plan_views.py: reconstructability-driven camera trajectory planning
# guidance volume -> waypoints -> cubic seed path -> per-waypoint orientation
# (histogram -> best bin -> commit observations) -> trajectory CSV.
# A fixed trajectory (--trajectory-in) keeps its positions and only gets re-oriented.

import argparse
from typing import Callable, Dict, List, Optional
import numpy as np

from plan_utils import (
    load_cfg, load_mesh, load_sample_points, default_intr_from_cfg,
    build_clean_tensor_scene, read_trajectory_positions, save_trajectory,
    CameraPose,
)
from guidance import load_guidance_volume, extract_waypoints
from seed_path import seed_trajectory, nadir_poses
from reconstructability import ReconstructabilityEvaluator, CandidateDirections, ScoringParams
from orientation import orient_pose
from observe import commit_observations
from runners import ParallelRunner, SequentialRunner, make_runner
from view_history import ViewHistory

# observer(index, pose, histogram, visible_ids)
Observer = Callable[[int, CameraPose, np.ndarray, np.ndarray], None]

# -------------------- trajectory assembly --------------------

def plan_trajectory(seed_poses: List[CameraPose],
                    scene,
                    samples: np.ndarray,
                    intr: Dict[str, float],
                    max_distance: float,
                    params: Optional[ScoringParams] = None,
                    history: Optional[ViewHistory] = None,
                    directions: Optional[CandidateDirections] = None,
                    n_theta: int = 256,
                    n_phi: int = 90,
                    spike_suppression: bool = False,
                    runner: Optional[ParallelRunner] = None,
                    observer: Optional[Observer] = None,
                    verbose: bool = True):
    """
    Orient every seed pose in path order. Each waypoint is scored against the
    view histories committed by the waypoints before it, so order matters.
    Returns (poses, history). Any failure aborts the whole plan.
    """
    params = params or ScoringParams()
    runner = runner or SequentialRunner()
    samples = np.asarray(samples, dtype=float)
    if history is None:
        history = ViewHistory(len(samples), max(1, len(seed_poses)))

    evaluator = ReconstructabilityEvaluator(
        scene, samples, history, intr, max_distance,
        params=params, directions=directions,
        n_theta=n_theta, n_phi=n_phi,
        spike_suppression=spike_suppression, runner=runner,
    )
    if verbose:
        print(f"[plan] {len(seed_poses)} waypoints | {len(samples)} samples | "
              f"{len(evaluator.directions)} candidate dirs | histogram {evaluator.shape}")

    poses = []
    for k, seed in enumerate(seed_poses):
        hist, swept = evaluator.evaluate(seed.position)
        pose, (i, j) = orient_pose(seed.position, hist, evaluator.thetas, evaluator.phis,
                                   seed.focal, waypoint_index=k)
        seen = commit_observations(scene, samples, history, pose, intr,
                                   params=params, runner=runner)
        poses.append(pose)
        if verbose:
            print(f"[plan] [{k+1:03d}/{len(seed_poses)}] bin=({i:3d},{j:2d}) "
                  f"theta={np.degrees(evaluator.thetas[i]):6.1f} phi={np.degrees(evaluator.phis[j]):6.1f} "
                  f"score={hist[i, j]:.3f} swept={len(swept)} committed={len(seen)}")
        if observer is not None:
            observer(k, pose, hist, seen)
    return poses, history

def coverage_summary(history: ViewHistory) -> Dict[str, float]:
    n = max(1, history.n_points)
    return dict(seen_once=float((history.counts >= 1).sum()) / n,
                seen_twice=float((history.counts >= 2).sum()) / n,
                mean_recon=float(history.recon.mean()) if history.n_points else 0.0)

# -------------------- main --------------------

def main(cfg_path,
         n_views=None,
         max_distance=None,
         focal=None,
         trajectory_in=None,
         out_csv=None,
         workers=None,
         spike_suppression=None,
         dump_dir=None,
         dump_every=None,
         verbose=True):

    cfg = load_cfg(cfg_path)
    pl = cfg.get("planner", {})
    n_views = int(n_views if n_views is not None else pl.get("n_views", 400))
    max_distance = float(max_distance if max_distance is not None else pl.get("max_distance", 80.0))
    if spike_suppression is None:
        spike_suppression = bool(pl.get("suppress_spikes", False))
    trajectory_in = trajectory_in if trajectory_in is not None else cfg.get("trajectory_in", "")
    out_csv = out_csv or cfg.get("trajectory_out", "experiments/results/trajectory.csv")
    workers = int(workers if workers is not None else (cfg.get("runner") or {}).get("workers", 0))
    dbg = cfg.get("debug") or {}
    dump_dir = dump_dir if dump_dir is not None else dbg.get("dump_dir", "")
    dump_every = int(dump_every if dump_every is not None else dbg.get("every", 0))

    # 1) Inputs
    mesh, center, extent = load_mesh(cfg["proxy_mesh_path"])
    scene = build_clean_tensor_scene(mesh)
    samples = load_sample_points(cfg["sample_points_path"])
    intr = default_intr_from_cfg(cfg, focal=focal)
    if verbose:
        print(f"Intrinsics: {intr}")
        print(f"Proxy center {np.round(center, 3)} extent {np.round(extent, 3)} | samples: {len(samples)}")

    # 2) Seed path (or frozen positions)
    if trajectory_in:
        positions = read_trajectory_positions(trajectory_in)
        seeds = nadir_poses(positions, intr["fx"])
        if verbose:
            print(f"Using fixed trajectory {trajectory_in}: {len(seeds)} positions (orientation only).")
    else:
        vol = load_guidance_volume(cfg["guidance_volume_path"])
        waypoints = extract_waypoints(vol, verbose=verbose)
        seeds = seed_trajectory(waypoints, n_views, intr["fx"], verbose=verbose)

    observer = None
    if dump_dir and dump_every > 0:
        from debug_dumps import HistogramDumper
        observer = HistogramDumper(dump_dir, every=dump_every)

    # 3) Orientation optimization
    with make_runner(workers) as runner:
        poses, history = plan_trajectory(
            seeds, scene, samples, intr, max_distance,
            params=ScoringParams.from_cfg(cfg),
            directions=CandidateDirections.hemisphere(int(pl.get("sphere_subdivisions", 4))),
            n_theta=int(pl.get("n_theta", 256)), n_phi=int(pl.get("n_phi", 90)),
            spike_suppression=spike_suppression, runner=runner,
            observer=observer, verbose=verbose,
        )

    # 4) Save
    save_trajectory(poses, out_csv)
    cov = coverage_summary(history)
    if verbose:
        print(f"Saved trajectory: {out_csv} ({len(poses)} poses)")
        print(f"Coverage: >=1 view {cov['seen_once']:.1%} | >=2 views {cov['seen_twice']:.1%} | "
              f"mean reconstructability {cov['mean_recon']:.3f}")
    return poses, history

if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--cfg", required=True, help="experiments/configs/flat_square.yaml")
    ap.add_argument("--views", type=int, default=None, help="Number of poses on the seed path.")
    ap.add_argument("--max-distance", type=float, default=None)
    ap.add_argument("--focal", type=float, default=None, help="Focal length in pixels (overrides fov_deg).")
    ap.add_argument("--trajectory-in", type=str, default=None,
                    help="CSV (idx,x,y,z) of fixed positions; only orientations are optimized.")
    ap.add_argument("--out", type=str, default=None)
    ap.add_argument("--workers", type=int, default=None, help="0/1 = sequential, >1 = thread pool.")
    ap.add_argument("--suppress-spikes", action="store_true", default=None,
                    help="Clamp isolated histogram spikes before picking the best bin.")
    ap.add_argument("--dump-dir", type=str, default=None)
    ap.add_argument("--dump-every", type=int, default=None)
    ap.add_argument("--quiet", action="store_true")
    args = ap.parse_args()

    main(args.cfg,
         n_views=args.views,
         max_distance=args.max_distance,
         focal=args.focal,
         trajectory_in=args.trajectory_in,
         out_csv=args.out,
         workers=args.workers,
         spike_suppression=args.suppress_spikes,
         dump_dir=args.dump_dir,
         dump_every=args.dump_every,
         verbose=not args.quiet)
