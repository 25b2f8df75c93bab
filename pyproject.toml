[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slamgeom"
version = "0.1.0"
description = "Geometry and control building blocks for visual SLAM: EPnP with RANSAC, camera settings, tracking state and trajectory export."
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["slam", "pnp", "epnp", "ransac", "computer-vision", "trajectory", "tum", "kitti"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["slamgeom"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
