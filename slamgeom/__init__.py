"""Geometry and control building blocks for feature-based visual SLAM."""

__version__ = "0.1.0"

__all__ = [
    "epnp",
    "pnp_ransac",
    "viewer_control",
    "settings",
    "system_control",
    "trajectory",
    "tracking_state",
]