"""
Keypoints

Keypoints are a voxel-centroid subsample of a frame together with the
correspondences found against the previous frame of the same aligned
sequence. They travel with the frames from one stage to the next.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..frames.filters import voxel_downsample
from ..utils.transforms import apply_transform


def _no_correspondences() -> np.ndarray:
    return np.empty((0, 2), dtype=np.int64)


@dataclass(frozen=True, eq=False)
class Keypoints:
    """
    Salient points of one frame.

    Attributes:
        points: (K, 3) keypoint positions, in the same coordinates as the
            frame they accompany.
        correspondences: (M, 2) index pairs. Column 0 indexes ``points``,
            column 1 indexes the previous frame's keypoints.
    """

    points: np.ndarray
    correspondences: np.ndarray = field(default_factory=_no_correspondences)

    def __post_init__(self):
        points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        corr = np.asarray(self.correspondences, dtype=np.int64).reshape(-1, 2)
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "correspondences", corr)

    def __len__(self) -> int:
        return len(self.points)

    def transformed(self, transform: np.ndarray) -> "Keypoints":
        # Rigid motion keeps correspondence indices valid
        return Keypoints(apply_transform(self.points, transform), self.correspondences)


def extract_keypoints(
    points: np.ndarray,
    voxel_size: float,
    max_keypoints: Optional[int] = None,
    seed: int = 0,
) -> np.ndarray:
    """
    Pick keypoints as voxel centroids, optionally capped to ``max_keypoints``.

    Args:
        points: Nx3 array
        voxel_size: Voxel edge length
        max_keypoints: Upper bound on the number of keypoints
        seed: Seed for the subsampling RNG

    Returns:
        Kx3 array of keypoints
    """
    keypoints = voxel_downsample(points, voxel_size)
    if max_keypoints is not None and len(keypoints) > max_keypoints:
        rng = np.random.default_rng(seed)
        idx = np.sort(rng.choice(len(keypoints), max_keypoints, replace=False))
        keypoints = keypoints[idx]
    return keypoints


def match_keypoints(
    source: np.ndarray,
    target: np.ndarray,
    max_distance: float,
    *,
    mutual: bool = True,
) -> np.ndarray:
    """
    Nearest-neighbor correspondences between two keypoint sets.

    Args:
        source: (K, 3) keypoints
        target: (L, 3) keypoints in the same coordinates
        max_distance: Pairs farther apart are discarded
        mutual: Keep only pairs that are each other's nearest neighbor

    Returns:
        (M, 2) array of (source index, target index) pairs
    """
    if len(source) == 0 or len(target) == 0:
        return _no_correspondences()

    nn_target = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)
    distances, indices = nn_target.kneighbors(source)
    distances = distances.ravel()
    indices = indices.ravel()

    src_idx = np.arange(len(source))
    valid = distances < max_distance

    if mutual:
        nn_source = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(source)
        _, back = nn_source.kneighbors(target[indices])
        valid &= back.ravel() == src_idx

    return np.column_stack([src_idx[valid], indices[valid]]).astype(np.int64)
