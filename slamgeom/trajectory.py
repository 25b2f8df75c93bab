"""Camera and keyframe trajectories and their TUM and KITTI text formats."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .settings import Sensor

__all__ = [
    "KeyFramePose",
    "TrackedFrame",
    "MonocularTrajectoryError",
    "rotation_to_quaternion",
    "frame_trajectory",
    "save_trajectory_tum",
    "save_trajectory_kitti",
    "save_keyframe_trajectory_tum",
]


class MonocularTrajectoryError(ValueError):
    """Raised when a frame trajectory is requested for monocular input."""


@dataclass(frozen=True)
class KeyFramePose:
    """A keyframe's world-to-camera pose.

    A culled (``bad``) keyframe keeps its pose relative to its spanning-tree
    ``parent``: ``pose = pose_to_parent @ parent.pose``.
    """

    id: int
    timestamp: float
    pose: np.ndarray
    bad: bool = False
    parent: int | None = None
    pose_to_parent: np.ndarray | None = None


@dataclass(frozen=True)
class TrackedFrame:
    """A frame's pose relative to its reference keyframe."""

    relative_pose: np.ndarray
    reference_keyframe: int
    timestamp: float
    lost: bool = False


def rotation_to_quaternion(R):
    """Return the unit quaternion ``(qx, qy, qz, qw)`` of a rotation matrix."""
    R = np.asarray(R, dtype=float)
    trace = R[0, 0] + R[1, 1] + R[2, 2]
    q = [0.0, 0.0, 0.0]
    if trace > 0:
        t = math.sqrt(trace + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        q = [(R[2, 1] - R[1, 2]) * t, (R[0, 2] - R[2, 0]) * t, (R[1, 0] - R[0, 1]) * t]
    else:
        i = 0
        if R[1, 1] > R[0, 0]:
            i = 1
        if R[2, 2] > R[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = math.sqrt(R[i, i] - R[j, j] - R[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        w = (R[k, j] - R[j, k]) * t
        q[j] = (R[j, i] + R[i, j]) * t
        q[k] = (R[k, i] + R[i, k]) * t
    return (float(q[0]), float(q[1]), float(q[2]), float(w))


def _inverse(T):
    R = T[:3, :3]
    t = T[:3, 3]
    inv = np.eye(4)
    inv[:3, :3] = R.T
    inv[:3, 3] = -R.T @ t
    return inv


def _sorted_keyframes(keyframes):
    ordered = sorted(keyframes, key=lambda kf: kf.id)
    if not ordered:
        raise ValueError("at least one keyframe is required")
    return ordered


def _resolve(keyframe, by_id):
    """Walk up the spanning tree from a culled keyframe; return (Trw, keyframe)."""
    Trw = np.eye(4)
    visited = set()
    while keyframe.bad:
        if keyframe.id in visited:
            raise ValueError(f"cycle in spanning tree at keyframe {keyframe.id}")
        visited.add(keyframe.id)
        if keyframe.parent is None or keyframe.pose_to_parent is None:
            raise ValueError(f"culled keyframe {keyframe.id} has no parent pose")
        try:
            parent = by_id[keyframe.parent]
        except KeyError:
            raise ValueError(f"unknown parent keyframe {keyframe.parent}") from None
        Trw = Trw @ np.asarray(keyframe.pose_to_parent, dtype=float)
        keyframe = parent
    return Trw, keyframe


def frame_trajectory(tracked_frames, keyframes):
    """Return ``(frame, Twc)`` for each tracked frame, lost ones included.

    Poses are expressed so that the first keyframe (lowest id) is the origin.
    """
    ordered = _sorted_keyframes(keyframes)
    by_id = {kf.id: kf for kf in ordered}
    Two = _inverse(np.asarray(ordered[0].pose, dtype=float))

    trajectory = []
    for frame in tracked_frames:
        try:
            reference = by_id[frame.reference_keyframe]
        except KeyError:
            raise ValueError(f"unknown reference keyframe {frame.reference_keyframe}") from None
        Trw, reference = _resolve(reference, by_id)
        Trw = Trw @ np.asarray(reference.pose, dtype=float) @ Two
        Tcw = np.asarray(frame.relative_pose, dtype=float) @ Trw
        trajectory.append((frame, _inverse(Tcw)))
    return trajectory


def _reject_monocular(sensor, name):
    if Sensor(sensor) is Sensor.MONOCULAR:
        raise MonocularTrajectoryError(f"{name} cannot be used for monocular input")


def save_trajectory_tum(path, tracked_frames, keyframes, sensor):
    """Write ``time tx ty tz qx qy qz qw`` per localized frame."""
    _reject_monocular(sensor, "save_trajectory_tum")
    trajectory = frame_trajectory(tracked_frames, keyframes)
    with open(path, "w", encoding="ascii") as out:
        for frame, Twc in trajectory:
            if frame.lost:
                continue
            values = list(Twc[:3, 3]) + list(rotation_to_quaternion(Twc[:3, :3]))
            out.write(f"{frame.timestamp:.6f} " + " ".join(f"{v:.9f}" for v in values) + "\n")


def save_trajectory_kitti(path, tracked_frames, keyframes, sensor):
    """Write the 3x4 camera-to-world matrix of every frame, row by row."""
    _reject_monocular(sensor, "save_trajectory_kitti")
    trajectory = frame_trajectory(tracked_frames, keyframes)
    with open(path, "w", encoding="ascii") as out:
        for _, Twc in trajectory:
            out.write(" ".join(f"{v:.9f}" for v in Twc[:3, :].reshape(-1)) + "\n")


def save_keyframe_trajectory_tum(path, keyframes):
    """Write ``time tx ty tz qx qy qz qw`` per keyframe that is not culled."""
    ordered = sorted(keyframes, key=lambda kf: kf.id)
    with open(path, "w", encoding="ascii") as out:
        for kf in ordered:
            if kf.bad:
                continue
            pose = np.asarray(kf.pose, dtype=float)
            Rwc = pose[:3, :3].T
            center = -Rwc @ pose[:3, 3]
            values = list(center) + list(rotation_to_quaternion(Rwc))
            out.write(f"{kf.timestamp:.6f} " + " ".join(f"{v:.7f}" for v in values) + "\n")