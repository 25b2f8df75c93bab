# slamgeom

Geometry and control pieces of a feature-based visual SLAM pipeline, built on
NumPy.

## What is inside

- `slamgeom.epnp`: the EPnP closed-form camera pose solver (`EPnP`), a
  Householder least-squares solver (`qr_solve`, raising
  `SingularMatrixError` on an all-zero column), rotation-to-quaternion
  conversion (`mat_to_quat`) and pose comparison (`relative_error`).
- `slamgeom.pnp_ransac`: `PnPSolver`, which wraps EPnP in a RANSAC loop over
  3D–2D `Correspondence` objects, refines the best hypothesis over its inliers
  and reports a `RansacResult` (`pose`, `inliers`, `n_inliers`, `no_more`).
- `slamgeom.settings`: `Sensor` (monocular, stereo, RGB-D) and
  `CameraSettings`, read from a mapping keyed as in a settings file
  (`Camera.fx`, `Camera.fps`, `ORBextractor.nFeatures`, `ThDepth`,
  `DepthMapFactor`, ...), with `camera_matrix()` and `distortion()`.
- `slamgeom.trajectory`: `KeyFramePose` and `TrackedFrame` records,
  `frame_trajectory`, and writers for TUM (`save_trajectory_tum`,
  `save_keyframe_trajectory_tum`) and KITTI (`save_trajectory_kitti`) text
  files. Frame trajectories are refused for monocular input with
  `MonocularTrajectoryError`.
- `slamgeom.tracking_state`: `TrackingState`, `advance_state`,
  `should_reset_after_loss`, a `TrajectoryRecorder` of per-frame relative
  poses and a thread-safe `StateMonitor`.
- `slamgeom.system_control`: `check_sensor` (raises `SensorMismatchError`),
  thread-safe localization-mode and reset requests (`ModeControl`,
  `ModeRequests`) and `MapChangeWatcher`.
- `slamgeom.viewer_control`: `ViewerSettings` and `RunControl`, the
  thread-safe run/stop/finish handshake for a viewer loop.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Example: camera pose from correspondences

```python
import numpy as np
from slamgeom.epnp import EPnP

solver = EPnP(fu=500.0, fv=500.0, uc=320.0, vc=240.0)
points_world = np.random.default_rng(0).uniform(-1, 1, (20, 3)) + [0, 0, 5]
points_image = points_world[:, :2] / points_world[:, 2:] * 500.0 + [320.0, 240.0]

R, t, error = solver.compute_pose(points_world, points_image)
```

Here the camera sits at the world origin, so `R` is close to the identity,
`t` close to zero and `error` (mean reprojection error in pixels) close to 0.

## Example: robust pose with RANSAC

```python
from slamgeom.pnp_ransac import Correspondence, PnPSolver

correspondences = [
    Correspondence(index=i, point_world=tuple(pw), point_image=tuple(uv))
    for i, (pw, uv) in enumerate(zip(points_world, points_image))
]
solver = PnPSolver(correspondences, fx=500.0, fy=500.0, cx=320.0, cy=240.0,
                   n_matches=len(correspondences), rng=np.random.default_rng(1))
result = solver.find()
if result.pose is not None:
    print(result.n_inliers, result.pose)
```

`find` runs up to the configured number of RANSAC iterations; `iterate(n)`
runs a given number and can be called again to continue until `no_more` is
set. `set_ransac_parameters` changes probability, minimum inliers, maximum
iterations, minimal set size, expected inlier ratio and the error threshold.

## Example: camera settings

```python
from slamgeom.settings import CameraSettings, Sensor

settings = CameraSettings.from_mapping(
    {"Camera.fx": 500.0, "Camera.fy": 500.0, "Camera.cx": 320.0,
     "Camera.cy": 240.0, "Camera.bf": 40.0, "ThDepth": 35.0},
    Sensor.STEREO,
)
K = settings.camera_matrix()
```

Missing keys read as 0; a frame rate of 0 becomes 30.

## Example: saving a trajectory

```python
import numpy as np
from slamgeom.trajectory import KeyFramePose, save_keyframe_trajectory_tum

keyframes = [KeyFramePose(id=0, timestamp=0.0, pose=np.eye(4))]
save_keyframe_trajectory_tum("keyframes.txt", keyframes)
```

Each line holds a timestamp, the camera centre and the orientation as a
quaternion `qx qy qz qw`. Culled keyframes are skipped.

## What the package does not do

It has no feature extraction or matching, no map, keyframe database or
bundle adjustment, no similarity alignment for loop closing, no keyframe
insertion policy and no drawing or window: the viewer and system modules only
hold the settings and thread-safe flags such loops would coordinate with.
There is no command-line program.