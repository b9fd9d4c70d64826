import numpy as np
import pytest

from make_demo_scene import flat_square_mesh, scatter_on_square, height_guidance
from plan_utils import build_clean_tensor_scene, pinhole_intrinsics
from reconstructability import CandidateDirections

SIDE = 40.0
HEIGHT = 30.0


@pytest.fixture(scope="session")
def square_mesh():
    return flat_square_mesh(SIDE)


@pytest.fixture(scope="session")
def square_scene(square_mesh):
    return build_clean_tensor_scene(square_mesh)


@pytest.fixture
def square_samples():
    return scatter_on_square(100, SIDE, seed=0)


@pytest.fixture
def hidden_samples(square_samples):
    # one extra sample under the square, never visible from above
    return np.vstack([square_samples, [[0.0, 0.0, -5.0]]])


@pytest.fixture
def intr():
    return pinhole_intrinsics(640, 480, fov_deg=90.0)


@pytest.fixture(scope="session")
def coarse_dirs():
    return CandidateDirections.hemisphere(3)


@pytest.fixture
def square_volume():
    return height_guidance(SIDE, best_height=HEIGHT)


def assert_orthonormal(R, tol=1e-5):
    assert np.all(np.isfinite(R))
    assert np.allclose(R @ R.T, np.eye(3), atol=tol)
    assert np.linalg.det(R) == pytest.approx(1.0, abs=tol)
