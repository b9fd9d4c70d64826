import numpy as np
import pytest

from plan_utils import (LoadError, load_cfg, load_mesh, load_sample_points, pinhole_intrinsics,
                        default_intr_from_cfg, in_frame, unoccluded, CameraPose, NADIR_ROTATION,
                        save_trajectory, read_trajectory, read_trajectory_positions)


def test_missing_inputs_raise_load_error(tmp_path):
    with pytest.raises(LoadError):
        load_cfg(str(tmp_path / "nope.yaml"))
    with pytest.raises(LoadError):
        load_mesh(str(tmp_path / "nope.ply"))
    with pytest.raises(LoadError):
        load_sample_points(str(tmp_path / "nope.ply"))


def test_config_must_be_mapping(tmp_path):
    p = tmp_path / "list.yaml"
    p.write_text("- a\n- b\n")
    with pytest.raises(LoadError):
        load_cfg(str(p))


def test_sample_points_from_npy(tmp_path):
    good = tmp_path / "pts.npy"
    P = np.arange(12, dtype=np.float32).reshape(4, 3)
    np.save(good, P)
    out = load_sample_points(str(good))
    assert out.dtype == np.float64
    assert np.array_equal(out, P)

    bad = tmp_path / "bad.npy"
    np.save(bad, np.zeros((4, 2)))
    with pytest.raises(LoadError):
        load_sample_points(str(bad))


def test_intrinsics():
    K = pinhole_intrinsics(640, 480, fov_deg=90.0)
    assert K["fx"] == pytest.approx(320.0) and K["fy"] == K["fx"]
    assert (K["cx"], K["cy"]) == (320.0, 240.0)
    assert pinhole_intrinsics(640, 480, fov_deg=90.0, focal=500.0)["fx"] == 500.0

    cfg = {"intrinsics": {"width": 100, "height": 50, "fov_deg": 90.0, "focal": 42.0}}
    assert default_intr_from_cfg(cfg)["fx"] == 42.0
    assert default_intr_from_cfg(cfg, focal=7.0)["fx"] == 7.0


def test_in_frame(intr):
    cam = np.array([[0.0, 0.0, 10.0],     # principal point
                    [0.0, 0.0, -10.0],    # behind
                    [100.0, 0.0, 10.0],   # far right
                    [-9.9, -7.4, 10.0]])  # near top-left corner
    assert in_frame(cam, intr).tolist() == [True, False, False, True]


def test_unoccluded_against_square(square_scene):
    P = np.array([[5.0, 5.0, 0.0], [5.0, 5.0, -3.0], [30.0, 30.0, -3.0]])
    vis = unoccluded(square_scene, np.array([0.0, 0.0, 30.0]), P)
    # on the surface, under the square, beside it (ray misses)
    assert vis.tolist() == [True, False, True]
    assert unoccluded(square_scene, np.zeros(3), np.zeros((0, 3))).size == 0


def test_pose_transforms():
    P = np.array([1.0, 2.0, 3.0])
    pose = CameraPose(P, NADIR_ROTATION.copy(), 300.0)
    assert np.allclose(pose.forward, [0, 0, -1])
    assert np.allclose(pose.rotation @ P + pose.translation, 0.0)
    T = pose.cam_T_world()
    assert np.allclose(T[:3, 3], P)
    assert np.allclose(T[:3, :3] @ pose.rotation, np.eye(3))


def test_trajectory_roundtrip(tmp_path):
    th = 0.3
    R = np.array([[np.cos(th), np.sin(th), 0.0],
                  [np.sin(th), -np.cos(th), 0.0],
                  [0.0, 0.0, -1.0]])
    poses = [CameraPose(np.array([1.0, 2.0, 30.0]), R, 320.0),
             CameraPose(np.array([-4.0, 0.5, 28.0]), NADIR_ROTATION.copy(), 320.0)]
    path = str(tmp_path / "out" / "traj.csv")
    save_trajectory(poses, path)
    back = read_trajectory(path)
    assert len(back) == 2
    for a, b in zip(poses, back):
        assert np.allclose(a.position, b.position)
        assert np.allclose(a.rotation, b.rotation)
        assert b.focal == 320.0
    assert np.allclose(read_trajectory_positions(path), [p.position for p in poses])


def test_positions_only_trajectory_reads_nadir(tmp_path):
    path = tmp_path / "pos.csv"
    path.write_text("idx,x,y,z\n0,1,2,3\n1,4,5,6\n")
    poses = read_trajectory(str(path), focal=100.0)
    assert np.allclose(poses[1].position, [4, 5, 6])
    assert np.array_equal(poses[0].rotation, NADIR_ROTATION)
    assert poses[0].focal == 100.0


def test_bad_trajectories(tmp_path):
    with pytest.raises(LoadError):
        read_trajectory(str(tmp_path / "missing.csv"))
    no_cols = tmp_path / "cols.csv"
    no_cols.write_text("a,b\n1,2\n")
    with pytest.raises(LoadError):
        read_trajectory_positions(str(no_cols))
    empty = tmp_path / "empty.csv"
    empty.write_text("idx,x,y,z\n")
    with pytest.raises(LoadError):
        read_trajectory(str(empty))
    junk = tmp_path / "junk.csv"
    junk.write_text("idx,x,y,z\n0,a,b,c\n")
    with pytest.raises(LoadError):
        read_trajectory_positions(str(junk))
