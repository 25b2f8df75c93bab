"""Efficient Perspective-n-Point (EPnP) camera pose estimation.

The pose is expressed as a rotation ``R`` and translation ``t`` mapping world
points into the camera frame: ``X_c = R @ X_w + t``.
"""

from __future__ import annotations

import math

import numpy as np

__all__ = [
    "SingularMatrixError",
    "EPnP",
    "qr_solve",
    "mat_to_quat",
    "relative_error",
]

_GAUSS_NEWTON_ITERATIONS = 5

# Pairs of control points, in the order used for the rho vector and L matrix.
_CONTROL_PAIRS = ((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3))


class SingularMatrixError(ArithmeticError):
    """Raised when the QR solver meets a matrix with an all-zero column."""


def qr_solve(A, b):
    """Solve ``A x = b`` in the least-squares sense by Householder QR.

    ``A`` has at least as many rows as columns. The inputs are not modified.
    """
    A = np.array(A, dtype=float, copy=True)
    b = np.array(b, dtype=float, copy=True).reshape(-1)
    nr, nc = A.shape
    if b.shape[0] != nr:
        raise ValueError("b must have one entry per row of A")

    a1 = np.zeros(nc)
    a2 = np.zeros(nc)

    for k in range(nc):
        column = A[k:, k]
        eta = float(np.max(np.abs(column)))
        if eta == 0.0:
            raise SingularMatrixError("matrix is singular")
        column /= eta
        sigma = math.sqrt(float(column @ column))
        if A[k, k] < 0:
            sigma = -sigma
        A[k, k] += sigma
        a1[k] = sigma * A[k, k]
        a2[k] = -eta * sigma
        if k + 1 < nc:
            tau = (A[k:, k] @ A[k:, k + 1:]) / a1[k]
            A[k:, k + 1:] -= np.outer(A[k:, k], tau)

    # b <- Q^T b
    for j in range(nc):
        tau = (A[j:, j] @ b[j:]) / a1[j]
        b[j:] -= tau * A[j:, j]

    # x = R^-1 b
    x = np.zeros(nc)
    x[nc - 1] = b[nc - 1] / a2[nc - 1]
    for i in range(nc - 2, -1, -1):
        x[i] = (b[i] - A[i, i + 1:] @ x[i + 1:]) / a2[i]
    return x


def mat_to_quat(R):
    """Convert a 3x3 rotation matrix to a quaternion ``[q0, q1, q2, q3]``.

    The last component is the scalar part.
    """
    R = np.asarray(R, dtype=float)
    tr = R[0, 0] + R[1, 1] + R[2, 2]

    if tr > 0.0:
        q = [R[1, 2] - R[2, 1], R[2, 0] - R[0, 2], R[0, 1] - R[1, 0], tr + 1.0]
        n4 = q[3]
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        q = [
            1.0 + R[0, 0] - R[1, 1] - R[2, 2],
            R[1, 0] + R[0, 1],
            R[2, 0] + R[0, 2],
            R[1, 2] - R[2, 1],
        ]
        n4 = q[0]
    elif R[1, 1] > R[2, 2]:
        q = [
            R[1, 0] + R[0, 1],
            1.0 + R[1, 1] - R[0, 0] - R[2, 2],
            R[2, 1] + R[1, 2],
            R[2, 0] - R[0, 2],
        ]
        n4 = q[1]
    else:
        q = [
            R[2, 0] + R[0, 2],
            R[2, 1] + R[1, 2],
            1.0 + R[2, 2] - R[0, 0] - R[1, 1],
            R[0, 1] - R[1, 0],
        ]
        n4 = q[2]

    scale = 0.5 / math.sqrt(n4)
    return np.array(q) * scale


def relative_error(R_true, t_true, R_est, t_est):
    """Return ``(rotation_error, translation_error)`` of an estimate.

    Rotation error is the relative quaternion distance, taking the closer of
    the two signs; translation error is relative to the true translation norm.
    """
    q_true = mat_to_quat(R_true)
    q_est = mat_to_quat(R_est)
    q_norm = float(np.linalg.norm(q_true))
    rot_err = min(
        float(np.linalg.norm(q_true - q_est)),
        float(np.linalg.norm(q_true + q_est)),
    ) / q_norm

    t_true = np.asarray(t_true, dtype=float).reshape(3)
    t_est = np.asarray(t_est, dtype=float).reshape(3)
    transl_err = float(np.linalg.norm(t_true - t_est)) / float(np.linalg.norm(t_true))
    return rot_err, transl_err


def _lstsq(A, b):
    return np.linalg.lstsq(A, b, rcond=None)[0]


class EPnP:
    """EPnP pose solver for a pinhole camera with focal lengths and centre."""

    def __init__(self, fu, fv, uc, vc):
        self.fu = float(fu)
        self.fv = float(fv)
        self.uc = float(uc)
        self.vc = float(vc)

    def compute_pose(self, points_world, points_image):
        """Estimate the camera pose from 3D-2D correspondences.

        Returns ``(R, t, error)`` where ``error`` is the mean reprojection
        error in pixels of the chosen solution.
        """
        pws, us = self._validate(points_world, points_image)

        with np.errstate(divide="ignore", invalid="ignore"):
            cws = self._choose_control_points(pws)
            alphas = self._barycentric_coordinates(pws, cws)

            M = self._build_m(alphas, us)
            _, _, vt = np.linalg.svd(M.T @ M)
            ut = vt  # rows are right singular vectors, descending singular values

            L = self._compute_l_6x10(ut)
            rho = np.array([np.sum((cws[a] - cws[b]) ** 2) for a, b in _CONTROL_PAIRS])

            solutions = []
            for approx in (self._betas_approx_1, self._betas_approx_2, self._betas_approx_3):
                betas = approx(L, rho)
                betas = self._gauss_newton(L, rho, betas)
                solutions.append(self._compute_r_and_t(ut, betas, alphas, pws, us))

        best = 0
        if solutions[1][2] < solutions[0][2]:
            best = 1
        if solutions[2][2] < solutions[best][2]:
            best = 2
        return solutions[best]

    def reprojection_error(self, R, t, points_world, points_image):
        """Mean Euclidean reprojection error of a pose over the points."""
        pws, us = self._validate(points_world, points_image)
        return self._reprojection_error(np.asarray(R, float), np.asarray(t, float).reshape(3), pws, us)

    # -- internals ---------------------------------------------------------

    @staticmethod
    def _validate(points_world, points_image):
        pws = np.asarray(points_world, dtype=float)
        us = np.asarray(points_image, dtype=float)
        if pws.ndim != 2 or pws.shape[1] != 3:
            raise ValueError("points_world must have shape (n, 3)")
        if us.ndim != 2 or us.shape[1] != 2:
            raise ValueError("points_image must have shape (n, 2)")
        if pws.shape[0] != us.shape[0]:
            raise ValueError("points_world and points_image differ in length")
        if pws.shape[0] == 0:
            raise ValueError("at least one correspondence is required")
        return pws, us

    @staticmethod
    def _choose_control_points(pws):
        n = pws.shape[0]
        centroid = pws.mean(axis=0)
        centred = pws - centroid
        u, dc, _ = np.linalg.svd(centred.T @ centred)
        cws = np.empty((4, 3))
        cws[0] = centroid
        for i in range(1, 4):
            k = math.sqrt(dc[i - 1] / n)
            cws[i] = centroid + k * u[:, i - 1]
        return cws

    @staticmethod
    def _barycentric_coordinates(pws, cws):
        cc = (cws[1:] - cws[0]).T
        cc_inv = np.linalg.pinv(cc)
        alphas = np.empty((pws.shape[0], 4))
        alphas[:, 1:] = (pws - cws[0]) @ cc_inv.T
        alphas[:, 0] = 1.0 - alphas[:, 1:].sum(axis=1)
        return alphas

    def _build_m(self, alphas, us):
        n = alphas.shape[0]
        M = np.zeros((2 * n, 12))
        M[0::2, 0::3] = alphas * self.fu
        M[0::2, 2::3] = alphas * (self.uc - us[:, 0:1])
        M[1::2, 1::3] = alphas * self.fv
        M[1::2, 2::3] = alphas * (self.vc - us[:, 1:2])
        return M

    @staticmethod
    def _compute_l_6x10(ut):
        v = [ut[11 - i].reshape(4, 3) for i in range(4)]
        dv = [np.array([vi[a] - vi[b] for a, b in _CONTROL_PAIRS]) for vi in v]
        L = np.empty((6, 10))
        for i in range(6):
            d0, d1, d2, d3 = dv[0][i], dv[1][i], dv[2][i], dv[3][i]
            L[i] = [
                d0 @ d0,
                2.0 * (d0 @ d1),
                d1 @ d1,
                2.0 * (d0 @ d2),
                2.0 * (d1 @ d2),
                d2 @ d2,
                2.0 * (d0 @ d3),
                2.0 * (d1 @ d3),
                2.0 * (d2 @ d3),
                d3 @ d3,
            ]
        return L

    @staticmethod
    def _betas_approx_1(L, rho):
        b4 = _lstsq(L[:, [0, 1, 3, 6]], rho)
        if b4[0] < 0:
            b0 = math.sqrt(-b4[0])
            return np.array([b0, -b4[1] / b0, -b4[2] / b0, -b4[3] / b0])
        b0 = math.sqrt(b4[0])
        return np.array([b0, b4[1] / b0, b4[2] / b0, b4[3] / b0])

    @staticmethod
    def _betas_approx_2(L, rho):
        b3 = _lstsq(L[:, :3], rho)
        if b3[0] < 0:
            b0 = math.sqrt(-b3[0])
            b1 = math.sqrt(-b3[2]) if b3[2] < 0 else 0.0
        else:
            b0 = math.sqrt(b3[0])
            b1 = math.sqrt(b3[2]) if b3[2] > 0 else 0.0
        if b3[1] < 0:
            b0 = -b0
        return np.array([b0, b1, 0.0, 0.0])

    @staticmethod
    def _betas_approx_3(L, rho):
        b5 = _lstsq(L[:, :5], rho)
        if b5[0] < 0:
            b0 = math.sqrt(-b5[0])
            b1 = math.sqrt(-b5[2]) if b5[2] < 0 else 0.0
        else:
            b0 = math.sqrt(b5[0])
            b1 = math.sqrt(b5[2]) if b5[2] > 0 else 0.0
        if b5[1] < 0:
            b0 = -b0
        b2 = np.float64(b5[3]) / np.float64(b0)
        return np.array([b0, b1, b2, 0.0])

    @staticmethod
    def _gauss_newton(L, rho, betas):
        betas = np.array(betas, dtype=float)
        for _ in range(_GAUSS_NEWTON_ITERATIONS):
            b0, b1, b2, b3 = betas
            A = np.empty((6, 4))
            A[:, 0] = 2 * L[:, 0] * b0 + L[:, 1] * b1 + L[:, 3] * b2 + L[:, 6] * b3
            A[:, 1] = L[:, 1] * b0 + 2 * L[:, 2] * b1 + L[:, 4] * b2 + L[:, 7] * b3
            A[:, 2] = L[:, 3] * b0 + L[:, 4] * b1 + 2 * L[:, 5] * b2 + L[:, 8] * b3
            A[:, 3] = L[:, 6] * b0 + L[:, 7] * b1 + L[:, 8] * b2 + 2 * L[:, 9] * b3
            products = np.array(
                [b0 * b0, b0 * b1, b1 * b1, b0 * b2, b1 * b2,
                 b2 * b2, b0 * b3, b1 * b3, b2 * b3, b3 * b3]
            )
            b = rho - L @ products
            betas += qr_solve(A, b)
        return betas

    def _compute_r_and_t(self, ut, betas, alphas, pws, us):
        ccs = sum(betas[i] * ut[11 - i].reshape(4, 3) for i in range(4))
        pcs = alphas @ ccs
        if pcs[0, 2] < 0.0:
            ccs = -ccs
            pcs = -pcs
        R, t = self._estimate_r_and_t(pcs, pws)
        return R, t, self._reprojection_error(R, t, pws, us)

    @staticmethod
    def _estimate_r_and_t(pcs, pws):
        pc0 = pcs.mean(axis=0)
        pw0 = pws.mean(axis=0)
        abt = (pcs - pc0).T @ (pws - pw0)
        u, _, vt = np.linalg.svd(abt)
        R = u @ vt
        if np.linalg.det(R) < 0:
            R[2] = -R[2]
        t = pc0 - R @ pw0
        return R, t

    def _reprojection_error(self, R, t, pws, us):
        pc = pws @ R.T + t
        inv_z = 1.0 / pc[:, 2]
        ue = self.uc + self.fu * pc[:, 0] * inv_z
        ve = self.vc + self.fv * pc[:, 1] * inv_z
        dist = np.sqrt((us[:, 0] - ue) ** 2 + (us[:, 1] - ve) ** 2)
        return float(dist.sum() / pws.shape[0])