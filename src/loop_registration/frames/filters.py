"""
Frame Filtering Utilities

Shared point filtering helpers plus the FrameFilter applied to every batch
of frames before registration. Filtering is in place: the list keeps its
length and order, only the points inside each frame change.
"""

from __future__ import annotations

from typing import List, MutableSequence, Optional

import numpy as np

from .frame import Frame
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def create_classification_mask(
    classification: np.ndarray,
    ground_only: bool = True,
    classification_filter: Optional[List[int]] = None,
) -> np.ndarray:
    """Create a boolean mask for point classification filtering.

    Args:
        classification: Array of classification codes for each point
        ground_only: If True, only accept ground points (class 2).
            Ignored if classification_filter is provided.
        classification_filter: List of classification codes to accept.
            If provided, overrides ground_only behavior.

    Returns:
        Boolean array indicating which points pass the filter (True = accept)

    Examples:
        >>> classes = np.array([1, 2, 2, 3])
        >>> create_classification_mask(classes, ground_only=True)
        array([False,  True,  True, False])
    """
    if classification_filter is not None:
        return np.isin(classification, np.array(classification_filter))
    if ground_only:
        return classification == 2
    return np.ones(len(classification), dtype=bool)


def get_filter_statistics(
    total_points: int,
    filtered_points: int,
    ground_only: bool = True,
    classification_filter: Optional[List[int]] = None,
) -> dict:
    """Summarize a classification filtering step for logging."""
    percentage = (filtered_points / total_points * 100.0) if total_points > 0 else 0.0

    if classification_filter is not None:
        filter_desc = f"classification filter: {classification_filter}"
    elif ground_only:
        filter_desc = "ground only (class 2)"
    else:
        filter_desc = "no filter"

    return {
        "total_points": total_points,
        "filtered_points": filtered_points,
        "percentage": percentage,
        "filter_description": filter_desc,
    }


def voxel_downsample(points: np.ndarray, voxel_size: float) -> np.ndarray:
    """Replace all points falling in the same voxel by their centroid.

    Output order follows the sorted voxel keys, so it is deterministic.
    """
    if points.size == 0 or voxel_size <= 0:
        return points.copy()
    keys = np.floor(points / voxel_size).astype(np.int64)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    sums = np.zeros((len(counts), 3), dtype=np.float64)
    np.add.at(sums, inverse, points)
    return sums / counts[:, None]


class FrameFilter:
    """
    Generic per-frame filter run before every alignment stage.

    Steps, in order: classification mask, range crop around the sensor
    origin (frames are in sensor coordinates), voxel downsampling and a
    seeded random cap on the number of points.
    """

    def __init__(
        self,
        *,
        ground_only: bool = False,
        classification_filter: Optional[List[int]] = None,
        min_range: Optional[float] = None,
        max_range: Optional[float] = None,
        voxel_size: Optional[float] = None,
        max_points: Optional[int] = None,
        seed: int = 0,
    ):
        if min_range is not None and max_range is not None and min_range >= max_range:
            raise ValueError(f"min_range ({min_range}) must be smaller than max_range ({max_range})")
        self.ground_only = ground_only
        self.classification_filter = classification_filter
        self.min_range = min_range
        self.max_range = max_range
        self.voxel_size = voxel_size
        self.max_points = max_points
        self.seed = seed

    def filter(self, frames: MutableSequence[Frame]) -> None:
        """Filter every frame of the sequence in place."""
        for i, frame in enumerate(frames):
            filtered = self.filter_frame(frame)
            if len(filtered) == 0:
                logger.warning(f"Frame {frame.index} has no points left after filtering")
            frames[i] = filtered

    def filter_frame(self, frame: Frame) -> Frame:
        n_before = len(frame)

        if frame.classification is not None and (self.ground_only or self.classification_filter is not None):
            mask = create_classification_mask(frame.classification, self.ground_only, self.classification_filter)
            frame = frame.subset(mask)

        if self.min_range is not None or self.max_range is not None:
            ranges = np.linalg.norm(frame.points, axis=1)
            mask = np.ones(len(ranges), dtype=bool)
            if self.min_range is not None:
                mask &= ranges >= self.min_range
            if self.max_range is not None:
                mask &= ranges <= self.max_range
            frame = frame.subset(mask)

        if self.voxel_size:
            # Voxel centroids no longer map to single classified points
            frame = Frame(index=frame.index, points=voxel_downsample(frame.points, self.voxel_size))

        if self.max_points is not None and len(frame) > self.max_points:
            rng = np.random.default_rng(self.seed + frame.index)
            idx = np.sort(rng.choice(len(frame), self.max_points, replace=False))
            frame = frame.subset(idx)

        logger.debug(f"Frame {frame.index}: {n_before} -> {len(frame)} points after filtering")
        return frame
