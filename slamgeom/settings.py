"""Camera and feature-extractor settings read from a settings mapping."""

from __future__ import annotations

import enum
from dataclasses import dataclass

import numpy as np

__all__ = ["Sensor", "CameraSettings"]

_DEFAULT_FPS = 30.0
_DEPTH_FACTOR_EPS = 1e-5


class Sensor(enum.Enum):
    """Kind of input the system is fed with."""

    MONOCULAR = 0
    STEREO = 1
    RGBD = 2


@dataclass(frozen=True)
class CameraSettings:
    """Calibration, frame rate and ORB extractor parameters.

    ``th_depth`` separates close from far points and is only meaningful for
    stereo and RGB-D input (0 otherwise). ``depth_map_factor`` scales raw
    depth values to metres; it is 1 unless the input is RGB-D.
    """

    sensor: Sensor
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float
    k2: float
    p1: float
    p2: float
    k3: float
    bf: float
    fps: float
    rgb: bool
    n_features: int
    scale_factor: float
    n_levels: int
    ini_th_fast: int
    min_th_fast: int
    min_frames: int
    max_frames: int
    th_depth: float = 0.0
    depth_map_factor: float = 1.0

    @classmethod
    def from_mapping(cls, settings, sensor):
        """Read settings keyed as in the settings file; missing keys read as 0."""
        sensor = Sensor(sensor)

        def value(key):
            return float(settings.get(key, 0.0))

        fx = value("Camera.fx")
        bf = value("Camera.bf")

        fps = value("Camera.fps")
        if fps == 0:
            fps = _DEFAULT_FPS

        th_depth = 0.0
        if sensor in (Sensor.STEREO, Sensor.RGBD):
            if fx == 0:
                raise ValueError("Camera.fx must be non-zero to compute the depth threshold")
            th_depth = bf * value("ThDepth") / fx

        depth_map_factor = 1.0
        if sensor is Sensor.RGBD:
            raw = value("DepthMapFactor")
            if abs(raw) >= _DEPTH_FACTOR_EPS:
                depth_map_factor = 1.0 / raw

        return cls(
            sensor=sensor,
            fx=fx,
            fy=value("Camera.fy"),
            cx=value("Camera.cx"),
            cy=value("Camera.cy"),
            k1=value("Camera.k1"),
            k2=value("Camera.k2"),
            p1=value("Camera.p1"),
            p2=value("Camera.p2"),
            k3=value("Camera.k3"),
            bf=bf,
            fps=fps,
            rgb=bool(int(value("Camera.RGB"))),
            n_features=int(value("ORBextractor.nFeatures")),
            scale_factor=value("ORBextractor.scaleFactor"),
            n_levels=int(value("ORBextractor.nLevels")),
            ini_th_fast=int(value("ORBextractor.iniThFAST")),
            min_th_fast=int(value("ORBextractor.minThFAST")),
            min_frames=0,
            max_frames=int(fps),
            th_depth=th_depth,
            depth_map_factor=depth_map_factor,
        )

    def camera_matrix(self):
        """The 3x3 float32 intrinsic matrix."""
        K = np.eye(3, dtype=np.float32)
        K[0, 0] = self.fx
        K[1, 1] = self.fy
        K[0, 2] = self.cx
        K[1, 2] = self.cy
        return K

    def distortion(self):
        """Distortion coefficients ``[k1, k2, p1, p2]``, plus ``k3`` if non-zero."""
        coefficients = [self.k1, self.k2, self.p1, self.p2]
        if self.k3 != 0:
            coefficients.append(self.k3)
        return np.array(coefficients, dtype=np.float32)