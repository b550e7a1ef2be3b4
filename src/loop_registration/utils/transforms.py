"""
Rigid transform helpers.

All transforms are 4x4 homogeneous float64 matrices. Composition follows
matrix multiplication: ``compose(later, earlier) == later @ earlier``.
"""

from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation


def identity() -> np.ndarray:
    return np.eye(4)


def compose(later: np.ndarray, earlier: np.ndarray) -> np.ndarray:
    """Return the transform that applies ``earlier`` first, then ``later``."""
    return later @ earlier


def rigid_from_rt(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = t
    return T


def invert(transform: np.ndarray) -> np.ndarray:
    """Invert a rigid transform without a general matrix inverse."""
    R = transform[:3, :3]
    t = transform[:3, 3]
    return rigid_from_rt(R.T, -R.T @ t)


def apply_transform(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """
    Apply a transformation matrix to a set of points.

    Args:
        points: Point cloud (N x 3).
        transform: Transformation matrix (4 x 4).

    Returns:
        Transformed point cloud (N x 3).
    """
    if points.size == 0:
        return points.copy()
    R = transform[:3, :3]
    t = transform[:3, 3]
    return points @ R.T + t


def estimate_rigid_transform(source_points: np.ndarray, target_points: np.ndarray) -> np.ndarray:
    """
    Least-squares rigid transform mapping source onto target (Kabsch / SVD).

    Args:
        source_points: Source points (N x 3).
        target_points: Corresponding target points (N x 3).

    Returns:
        Transformation matrix (4 x 4).
    """
    source_centroid = np.mean(source_points, axis=0)
    target_centroid = np.mean(target_points, axis=0)

    H = (source_points - source_centroid).T @ (target_points - target_centroid)
    U, _, Vt = np.linalg.svd(H)
    R = Vt.T @ U.T

    # Reflection case
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    t = target_centroid - R @ source_centroid
    return rigid_from_rt(R, t)


def interpolate_transform(transform: np.ndarray, weight: float) -> np.ndarray:
    """
    Scale a rigid transform by ``weight`` in [0, 1].

    Rotation is scaled along its rotation vector, translation linearly, so
    ``weight=0`` gives identity and ``weight=1`` gives the input transform.
    """
    if weight <= 0.0:
        return np.eye(4)
    if weight >= 1.0:
        return transform.copy()
    rotvec = Rotation.from_matrix(transform[:3, :3]).as_rotvec()
    R = Rotation.from_rotvec(rotvec * weight).as_matrix()
    return rigid_from_rt(R, transform[:3, 3] * weight)


def transform_magnitude(transform: np.ndarray) -> tuple[float, float]:
    """Return (translation norm, rotation angle in radians) of a transform."""
    trans_step = float(np.linalg.norm(transform[:3, 3]))
    # Clamp argument to arccos to valid range to avoid NaNs
    cos_theta = max(min((float(np.trace(transform[:3, :3])) - 1.0) * 0.5, 1.0), -1.0)
    return trans_step, float(np.arccos(cos_theta))


def validate_transforms(transforms: Sequence[np.ndarray]) -> None:
    for i, T in enumerate(transforms):
        if np.shape(T) != (4, 4):
            raise ValueError(f"Transform {i} must be a 4x4 matrix, got {np.shape(T)}")
