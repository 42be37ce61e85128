[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "surfelmap"
version = "0.1.0"
description = "Deformation graph optimisation, sparse Jacobians and surfel mapping utilities for dense RGB-D reconstruction"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "scipy",
]
keywords = [
    "slam",
    "rgbd",
    "surfel",
    "deformation-graph",
    "reconstruction",
    "odometry",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["surfelmap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
