"""Tracking state transitions, the per-frame trajectory record and a state monitor."""

from __future__ import annotations

import dataclasses
import enum
import threading
from dataclasses import dataclass

import numpy as np

from .trajectory import TrackedFrame

__all__ = [
    "TrackingState",
    "TrackingSnapshot",
    "TrajectoryRecorder",
    "StateMonitor",
    "advance_state",
    "should_reset_after_loss",
]

# A track lost while the map holds this many keyframes or fewer resets the system.
_MAX_KEYFRAMES_FOR_RESET = 5


class TrackingState(enum.Enum):
    """State of the tracker."""

    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def advance_state(state, tracking_ok):
    """Return the tracker state after processing one frame.

    Before initialization ``tracking_ok`` tells whether the map was
    initialized with this frame; afterwards, whether the frame was tracked.
    """
    state = TrackingState(state)
    if state is TrackingState.NO_IMAGES_YET:
        state = TrackingState.NOT_INITIALIZED
    if state is TrackingState.NOT_INITIALIZED:
        return TrackingState.OK if tracking_ok else TrackingState.NOT_INITIALIZED
    return TrackingState.OK if tracking_ok else TrackingState.LOST


def should_reset_after_loss(state, keyframes_in_map):
    """Whether a lost track happened so soon after initialization that the system resets."""
    return (
        TrackingState(state) is TrackingState.LOST
        and keyframes_in_map <= _MAX_KEYFRAMES_FOR_RESET
    )


class TrajectoryRecorder:
    """Per-frame poses relative to reference keyframes, in tracking order."""

    def __init__(self):
        self._frames: list[TrackedFrame] = []

    def __len__(self):
        return len(self._frames)

    def __iter__(self):
        return iter(list(self._frames))

    @property
    def frames(self):
        """The recorded frames, oldest first."""
        return tuple(self._frames)

    def record(self, relative_pose, reference_keyframe, timestamp, lost):
        """Record a frame and return the stored entry.

        When the frame has no pose (``relative_pose`` is ``None``) the last
        entry is repeated with only its ``lost`` flag updated; the reference
        keyframe and timestamp given are then not used.
        """
        if relative_pose is None:
            if not self._frames:
                raise LookupError("no previous frame to repeat for a frame without pose")
            entry = dataclasses.replace(self._frames[-1], lost=bool(lost))
        else:
            entry = TrackedFrame(
                relative_pose=np.array(relative_pose, dtype=float),
                reference_keyframe=reference_keyframe,
                timestamp=float(timestamp),
                lost=bool(lost),
            )
        self._frames.append(entry)
        return entry

    def last_relative_pose(self):
        """Pose of the most recent frame relative to its reference keyframe."""
        if not self._frames:
            raise LookupError("no frame has been recorded")
        return self._frames[-1].relative_pose.copy()

    def clear(self):
        self._frames.clear()


@dataclass(frozen=True)
class TrackingSnapshot:
    """Tracking state with the map points and undistorted keypoints of the last frame."""

    state: TrackingState
    map_points: tuple
    keypoints: tuple


class StateMonitor:
    """Thread-safe copy of the tracker's latest state for other threads to read."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = TrackingSnapshot(TrackingState.NO_IMAGES_YET, (), ())

    def update(self, state, map_points, keypoints):
        snapshot = TrackingSnapshot(TrackingState(state), tuple(map_points), tuple(keypoints))
        with self._lock:
            self._snapshot = snapshot

    def snapshot(self):
        with self._lock:
            return self._snapshot