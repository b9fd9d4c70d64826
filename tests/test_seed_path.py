import numpy as np
import pytest
from scipy.spatial import cKDTree

from guidance import extract_waypoints
from plan_utils import InsufficientWaypoints, NADIR_ROTATION
from seed_path import (waypoint_params, fit_seed_spline, sample_positions,
                       seed_trajectory, nadir_poses)
from conftest import assert_orthonormal


def test_waypoint_params():
    assert np.allclose(waypoint_params(5), [0.0, 0.25, 0.5, 0.75, 1.0])


def test_needs_four_waypoints():
    with pytest.raises(InsufficientWaypoints):
        fit_seed_spline(np.zeros((3, 3)))
    with pytest.raises(InsufficientWaypoints):
        seed_trajectory(np.zeros((0, 3)), 10, 500.0)
    fit_seed_spline(np.arange(12.0).reshape(4, 3))


def test_400_views(square_volume):
    wps = extract_waypoints(square_volume)
    poses = seed_trajectory(wps, 400, 320.0)
    assert len(poses) == 400
    for p in poses[::37]:
        assert np.array_equal(p.rotation, NADIR_ROTATION)
        assert p.focal == 320.0
        assert_orthonormal(p.rotation)


def test_spline_interpolates_waypoints():
    rng = np.random.default_rng(3)
    wps = rng.uniform(-10, 10, size=(12, 3))
    spline = fit_seed_spline(wps)
    assert np.allclose(spline(waypoint_params(len(wps))), wps)
    assert np.allclose(sample_positions(spline, 50)[0], wps[0])


def test_dense_path_reaches_every_serpentine_waypoint(square_volume):
    # the turns of the serpentine are where a smoothing curve would cut corners
    wps = extract_waypoints(square_volume)
    pts = sample_positions(fit_seed_spline(wps), 20000)
    gap, _ = cKDTree(pts).query(wps)
    assert gap.max() < 0.1
    assert np.max(np.linalg.norm(np.diff(pts, axis=0), axis=1)) < 0.1
    assert np.allclose(pts[:, 2], 30.0)


def test_collinear_waypoints_stay_on_line():
    wps = np.column_stack([np.arange(6.0), 2 * np.arange(6.0), np.full(6, 5.0)])
    pts = sample_positions(fit_seed_spline(wps), 17)
    assert np.allclose(pts[:, 1], 2 * pts[:, 0])
    assert np.allclose(pts[:, 2], 5.0)


def test_nadir_poses_copy_positions():
    pos = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    poses = nadir_poses(pos, 100.0)
    pos[0, 0] = 99.0
    assert poses[0].position[0] == 1.0
    assert np.allclose(poses[1].forward, [0, 0, -1])
