import os
import numpy as np
import pytest
import yaml

from guidance import extract_waypoints
from make_demo_scene import write_scene
from plan_utils import DegenerateOrientation, read_trajectory, save_trajectory
from plan_views import plan_trajectory, coverage_summary, main
from runners import ThreadedRunner
from seed_path import seed_trajectory, fit_seed_spline, sample_positions, nadir_poses
from conftest import assert_orthonormal

SMALL = dict(n_theta=64, n_phi=24)


def plan_square(volume, scene, samples, intr, dirs, n_views=4, **kw):
    seeds = seed_trajectory(extract_waypoints(volume), n_views, intr["fx"])
    return plan_trajectory(seeds, scene, samples, intr, 80.0, directions=dirs,
                           verbose=False, **SMALL, **kw)


def test_four_views_over_flat_square(square_volume, square_scene, square_samples, intr, coarse_dirs):
    calls = []
    poses, history = plan_square(square_volume, square_scene, square_samples, intr, coarse_dirs,
                                 observer=lambda k, pose, hist, seen: calls.append((k, seen.size)))
    assert len(poses) == 4
    expected = sample_positions(fit_seed_spline(extract_waypoints(square_volume)), 4)
    for pose, pos in zip(poses, expected):
        assert np.allclose(pose.position, pos)
        assert pose.position[2] == pytest.approx(30.0)
        assert np.all(np.abs(pose.position[:2]) <= 20.0)
        assert_orthonormal(pose.rotation)
        assert pose.forward @ np.array([0.0, 0.0, 1.0]) <= -0.5

    assert [k for k, _ in calls] == [0, 1, 2, 3]
    assert all(n > 0 for _, n in calls)
    assert history.counts.max() <= 4
    for i in np.flatnonzero(history.counts):
        assert np.allclose(np.linalg.norm(history.directions(i), axis=1), 1.0)


def test_planning_is_deterministic(square_volume, square_scene, square_samples, intr, coarse_dirs):
    a, ha = plan_square(square_volume, square_scene, square_samples, intr, coarse_dirs)
    with ThreadedRunner(3) as runner:
        b, hb = plan_square(square_volume, square_scene, square_samples, intr, coarse_dirs,
                            runner=runner)
    for p, q in zip(a, b):
        assert np.array_equal(p.rotation, q.rotation)
    assert np.array_equal(ha.counts, hb.counts)
    assert np.allclose(ha.recon, hb.recon)


def test_nothing_in_range_is_degenerate(square_scene, square_samples, intr, coarse_dirs):
    seeds = nadir_poses(np.array([[0.0, 0.0, 1000.0]]), intr["fx"])
    with pytest.raises(DegenerateOrientation) as err:
        plan_trajectory(seeds, square_scene, square_samples, intr, 80.0,
                        directions=coarse_dirs, verbose=False, **SMALL)
    assert err.value.waypoint_index == 0


def test_coverage_summary(square_volume, square_scene, square_samples, intr, coarse_dirs):
    _, history = plan_square(square_volume, square_scene, square_samples, intr, coarse_dirs)
    cov = coverage_summary(history)
    assert 0.0 < cov["seen_once"] <= 1.0
    assert cov["seen_twice"] <= cov["seen_once"]
    assert cov["mean_recon"] > 0.0


def _small_scene(tmp_path):
    cfg_path = write_scene(str(tmp_path / "scene"))
    with open(cfg_path) as f:
        cfg = yaml.safe_load(f)
    cfg["planner"].update(sphere_subdivisions=3, **SMALL)
    with open(cfg_path, "w") as f:
        yaml.safe_dump(cfg, f)
    return cfg_path, cfg


def test_main_writes_trajectory(tmp_path):
    cfg_path, cfg = _small_scene(tmp_path)
    poses, history = main(cfg_path, verbose=False)
    assert len(poses) == 4
    back = read_trajectory(cfg["trajectory_out"])
    assert len(back) == 4
    for p, q in zip(poses, back):
        assert np.allclose(p.position, q.position)
        assert np.allclose(p.rotation, q.rotation)
        assert q.focal == pytest.approx(320.0)


def test_main_fixed_trajectory_keeps_positions(tmp_path):
    cfg_path, _ = _small_scene(tmp_path)
    fixed = nadir_poses(np.array([[-8.0, 3.0, 25.0], [0.0, 0.0, 35.0], [6.0, -6.0, 30.0]]), 320.0)
    traj_in = str(tmp_path / "fixed.csv")
    save_trajectory(fixed, traj_in)
    out = str(tmp_path / "reoriented.csv")
    poses, _ = main(cfg_path, trajectory_in=traj_in, out_csv=out, verbose=False)
    assert len(poses) == 3
    for p, q in zip(fixed, poses):
        assert np.array_equal(p.position, q.position)
    assert len(read_trajectory(out)) == 3


def test_main_histogram_dumps(tmp_path):
    cfg_path, _ = _small_scene(tmp_path)
    dump = tmp_path / "dumps"
    main(cfg_path, dump_dir=str(dump), dump_every=2, verbose=False)
    pngs = sorted(f for f in os.listdir(dump) if f.endswith(".png"))
    assert pngs == ["hist_0000.png", "hist_0002.png"]
    with open(dump / "poses_snapshot.csv") as f:
        assert len(f.read().strip().splitlines()) == 1 + 4


def test_main_quiet_prints_nothing(tmp_path, capsys):
    cfg_path, _ = _small_scene(tmp_path)
    capsys.readouterr()
    main(cfg_path, verbose=False)
    assert capsys.readouterr().out == ""
    main(cfg_path, verbose=True)
    out = capsys.readouterr().out
    assert "Saved trajectory" in out and "Coverage:" in out
