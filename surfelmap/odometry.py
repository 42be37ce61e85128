"""Rotation-vector and rigid-transform helpers for odometry updates."""

from __future__ import annotations

import sys

import numpy as np


def rodrigues(src) -> np.ndarray:
    """Rotation matrix of the rotation vector ``src`` (axis times angle)."""
    r = np.asarray(src, dtype=np.float64).reshape(3)
    theta = float(np.linalg.norm(r))
    if theta < sys.float_info.epsilon:
        return np.eye(3)

    axis = r / theta
    c = np.cos(theta)
    s = np.sin(theta)
    rx, ry, rz = axis
    cross = np.array([[0.0, -rz, ry], [rz, 0.0, -rx], [-ry, rx, 0.0]])
    return c * np.eye(3) + (1.0 - c) * np.outer(axis, axis) + s * cross


def compute_update_se3(result_rt, result) -> tuple[np.ndarray, np.ndarray]:
    """Apply a 6-vector update (translation, rotation vector) to a 4x4 transform.

    Returns the updated transform and the same transform as a float32 isometry.
    """
    step = np.asarray(result, dtype=np.float64).reshape(6)
    increment = np.eye(4)
    increment[:3, :3] = rodrigues(step[3:])
    increment[:3, 3] = step[:3]

    updated = increment @ np.asarray(result_rt, dtype=np.float64).reshape(4, 4)

    odom = np.eye(4, dtype=np.float32)
    odom[:3, :3] = updated[:3, :3]
    odom[:3, 3] = updated[:3, 3]
    return updated, odom