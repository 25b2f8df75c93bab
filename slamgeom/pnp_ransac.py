"""RANSAC camera pose estimation from 3D-2D matches using EPnP.

Each RANSAC hypothesis comes from a minimal random sample of correspondences.
A hypothesis with enough inliers is refined with EPnP over all the inliers of
the best hypothesis so far.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .epnp import EPnP, SingularMatrixError

__all__ = ["Correspondence", "RansacResult", "PnPSolver"]


@dataclass(frozen=True)
class Correspondence:
    """A match between a keypoint of a frame and a 3D map point.

    ``index`` is the keypoint's position in the frame's match list,
    ``sigma2`` the squared scale uncertainty of the keypoint's pyramid level.
    """

    index: int
    point_world: tuple[float, float, float]
    point_image: tuple[float, float]
    sigma2: float = 1.0


@dataclass(frozen=True)
class RansacResult:
    """Outcome of a RANSAC run.

    ``pose`` is a 4x4 float32 world-to-camera transform, or ``None`` when no
    pose was found. ``inliers`` has one flag per entry of the frame's match
    list and is empty when no pose was found. ``no_more`` tells that the
    iteration budget is spent.
    """

    pose: np.ndarray | None
    inliers: list[bool]
    n_inliers: int
    no_more: bool


def _pose_matrix(R, t):
    T = np.eye(4, dtype=np.float32)
    T[:3, :3] = R
    T[:3, 3] = t
    return T


class PnPSolver:
    """RANSAC PnP solver over a fixed set of correspondences."""

    def __init__(self, correspondences, fx, fy, cx, cy, n_matches, rng=None):
        items = list(correspondences)
        for item in items:
            if not 0 <= item.index < n_matches:
                raise ValueError(
                    f"correspondence index {item.index} outside 0..{n_matches - 1}"
                )
        self._n_matches = int(n_matches)
        self._indices = [item.index for item in items]
        self._pws = np.array([item.point_world for item in items], dtype=float).reshape(-1, 3)
        self._us = np.array([item.point_image for item in items], dtype=float).reshape(-1, 2)
        self._sigma2 = np.array([item.sigma2 for item in items], dtype=float)
        self._fx, self._fy, self._cx, self._cy = float(fx), float(fy), float(cx), float(cy)
        self._epnp = EPnP(fx, fy, cx, cy)
        self._rng = rng if rng is not None else np.random.default_rng()

        self._iterations = 0
        self._best_inliers = np.zeros(len(items), dtype=bool)
        self._best_count = 0
        self._best_pose = None

        self.set_ransac_parameters()

    def set_ransac_parameters(
        self,
        probability=0.99,
        min_inliers=8,
        max_iterations=300,
        min_set=4,
        epsilon=0.4,
        th2=5.991,
    ):
        """Set the RANSAC parameters, adapting them to the number of matches."""
        n = len(self._indices)
        self.probability = probability
        self.min_set = min_set

        adjusted = int(n * epsilon)
        adjusted = max(adjusted, min_inliers, min_set)
        self.min_inliers = adjusted

        if n > 0 and epsilon < adjusted / n:
            epsilon = adjusted / n
        self.epsilon = epsilon

        if adjusted >= n:
            n_iterations = 1
        else:
            n_iterations = math.ceil(
                math.log(1 - probability) / math.log(1 - epsilon**3)
            )
        self.max_iterations = max(1, min(n_iterations, max_iterations))

        self._max_error = self._sigma2 * th2

    def find(self):
        """Run RANSAC up to the full iteration budget."""
        return self.iterate(self.max_iterations)

    def iterate(self, n_iterations):
        """Run at least ``n_iterations`` more RANSAC iterations."""
        n = len(self._indices)
        if n < self.min_inliers:
            return RansacResult(None, [], 0, True)

        current = 0
        while self._iterations < self.max_iterations or current < n_iterations:
            current += 1
            self._iterations += 1

            available = list(range(n))
            sample = []
            for _ in range(self.min_set):
                k = int(self._rng.integers(len(available)))
                sample.append(available[k])
                available[k] = available[-1]
                available.pop()

            estimate = self._estimate(sample)
            if estimate is None:
                continue
            R, t, mask = estimate
            count = int(mask.sum())

            if count >= self.min_inliers:
                if count > self._best_count:
                    self._best_inliers = mask
                    self._best_count = count
                    self._best_pose = _pose_matrix(R, t)

                refined = self._refine()
                if refined is not None:
                    pose, refined_mask, refined_count = refined
                    return RansacResult(pose, self._expand(refined_mask), refined_count, False)

        if self._iterations >= self.max_iterations:
            if self._best_count >= self.min_inliers:
                return RansacResult(
                    self._best_pose.copy(),
                    self._expand(self._best_inliers),
                    self._best_count,
                    True,
                )
            return RansacResult(None, [], 0, True)

        return RansacResult(None, [], 0, False)

    # -- internals ---------------------------------------------------------

    def _estimate(self, selection):
        try:
            R, t, _ = self._epnp.compute_pose(self._pws[selection], self._us[selection])
        except (SingularMatrixError, np.linalg.LinAlgError):
            return None
        return R, t, self._check_inliers(R, t)

    def _refine(self):
        selection = np.flatnonzero(self._best_inliers)
        if selection.size == 0:
            return None
        estimate = self._estimate(selection)
        if estimate is None:
            return None
        R, t, mask = estimate
        count = int(mask.sum())
        if count > self.min_inliers:
            return _pose_matrix(R, t), mask, count
        return None

    def _check_inliers(self, R, t):
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            pc = self._pws @ np.asarray(R).T + np.asarray(t).reshape(3)
            inv_z = 1.0 / pc[:, 2]
            ue = self._cx + self._fx * pc[:, 0] * inv_z
            ve = self._cy + self._fy * pc[:, 1] * inv_z
            error2 = (self._us[:, 0] - ue) ** 2 + (self._us[:, 1] - ve) ** 2
            return error2 < self._max_error

    def _expand(self, mask):
        flags = [False] * self._n_matches
        for index, inlier in zip(self._indices, mask):
            if inlier:
                flags[index] = True
        return flags