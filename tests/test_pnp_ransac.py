import math

import numpy as np
import pytest

from slamgeom.pnp_ransac import Correspondence, PnPSolver

FX = FY = 500.0
CX, CY = 320.0, 240.0


def _rotation(ax, ay, az):
    cx, sx = math.cos(ax), math.sin(ax)
    cy, sy = math.cos(ay), math.sin(ay)
    cz, sz = math.cos(az), math.sin(az)
    rx = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]])
    ry = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]])
    rz = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]])
    return rz @ ry @ rx


R_TRUE = _rotation(0.1, -0.05, 0.2)
T_TRUE = np.array([0.1, -0.2, 0.3])


def _scene(n, seed=1):
    rng = np.random.default_rng(seed)
    pw = rng.uniform([-1.0, -1.0, 4.0], [1.0, 1.0, 8.0], size=(n, 3))
    pc = pw @ R_TRUE.T + T_TRUE
    u = FX * pc[:, 0] / pc[:, 2] + CX
    v = FY * pc[:, 1] / pc[:, 2] + CY
    return pw, np.column_stack([u, v])


def _correspondences(pw, us, indices=None, sigma2=1.0):
    if indices is None:
        indices = range(len(pw))
    return [
        Correspondence(i, tuple(p), tuple(q), sigma2)
        for i, p, q in zip(indices, pw, us)
    ]


def _true_pose():
    T = np.eye(4)
    T[:3, :3] = R_TRUE
    T[:3, 3] = T_TRUE
    return T


def test_recovers_pose_from_exact_matches():
    pw, us = _scene(20)
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 20, np.random.default_rng(0))
    result = solver.find()
    assert result.pose is not None
    assert result.pose.dtype == np.float32
    np.testing.assert_allclose(result.pose, _true_pose(), atol=1e-4)
    assert result.n_inliers == 20
    assert result.inliers == [True] * 20
    assert result.no_more is False


def test_outliers_are_rejected():
    pw, us = _scene(30, seed=3)
    us = us.copy()
    outliers = [2, 7, 11, 18, 25, 29]
    us[outliers] += 40.0
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 30, np.random.default_rng(5))
    result = solver.find()
    assert result.pose is not None
    np.testing.assert_allclose(result.pose, _true_pose(), atol=1e-4)
    expected = [i not in outliers for i in range(30)]
    assert result.inliers == expected
    assert result.n_inliers == 30 - len(outliers)


def test_inlier_flags_follow_frame_indices():
    pw, us = _scene(15, seed=4)
    indices = [3 * i + 1 for i in range(15)]
    n_matches = 3 * 15 + 2
    solver = PnPSolver(
        _correspondences(pw, us, indices), FX, FY, CX, CY, n_matches, np.random.default_rng(2)
    )
    result = solver.find()
    assert len(result.inliers) == n_matches
    assert [i for i, flag in enumerate(result.inliers) if flag] == indices


def test_too_few_matches_gives_no_pose():
    pw, us = _scene(5)
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 5, np.random.default_rng(0))
    result = solver.iterate(5)
    assert result.pose is None
    assert result.inliers == []
    assert result.n_inliers == 0
    assert result.no_more is True


def test_all_matches_required_means_single_iteration():
    pw, us = _scene(8)
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 8, np.random.default_rng(0))
    assert solver.min_inliers == 8
    assert solver.max_iterations == 1


def test_parameters_are_adapted_to_match_count():
    pw, us = _scene(60)
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 60, np.random.default_rng(0))
    solver.set_ransac_parameters(0.99, 10, 300, 4, 0.5, 5.991)
    assert solver.min_inliers >= 10
    assert solver.min_inliers >= int(60 * 0.5)
    assert solver.epsilon >= solver.min_inliers / 60
    assert 1 <= solver.max_iterations <= 300


def test_random_image_points_give_no_pose():
    pw, _ = _scene(20)
    rng = np.random.default_rng(9)
    us = rng.uniform([0.0, 0.0], [640.0, 480.0], size=(20, 2))
    solver = PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 20, np.random.default_rng(1))
    result = solver.find()
    assert result.pose is None
    assert result.inliers == []
    assert result.no_more is True


@pytest.mark.parametrize("sigma2, accepted", [(1.0, False), (4.0, True)])
def test_error_threshold_scales_with_sigma(sigma2, accepted):
    pw, us = _scene(20, seed=6)
    us = us.copy()
    us[0, 0] += 3.0
    solver = PnPSolver(
        _correspondences(pw, us, sigma2=sigma2), FX, FY, CX, CY, 20, np.random.default_rng(4)
    )
    result = solver.find()
    assert result.pose is not None
    assert result.inliers[0] is accepted
    assert all(result.inliers[1:])


def test_index_outside_match_list_is_rejected():
    pw, us = _scene(10)
    with pytest.raises(ValueError):
        PnPSolver(_correspondences(pw, us), FX, FY, CX, CY, 9, np.random.default_rng(0))