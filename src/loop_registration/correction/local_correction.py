"""
Local loop-closure correction.

Relaxes the chain of frames with Gauss-Seidel sweeps: every frame except
the first is moved to the rigid pose that best fits its keypoint
correspondences with both neighbors. The last frame's forward neighbor is
the loop's anchor: the starting edge keypoints placed with the first
(pinned) transform, matched by nearest neighbor. Sweeps stop after
``max_iterations`` or once the largest step falls below ``tolerance``.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from .base import CorrectionResult, check_inputs
from ..alignment.keypoints import Keypoints, match_keypoints
from ..frames.frame import Frame
from ..utils.logging import setup_logger
from ..utils.transforms import (
    apply_transform,
    compose,
    estimate_rigid_transform,
    identity,
    transform_magnitude,
)

logger = setup_logger(__name__)


class LocalLoopCorrection:
    name = "local"

    def __init__(
        self,
        max_iterations: int = 10,
        tolerance: float = 1e-5,
        max_correspondence_distance: float = 1.0,
        min_correspondences: int = 3,
    ):
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_correspondence_distance = max_correspondence_distance
        self.min_correspondences = min_correspondences

    def correct(
        self,
        frames: Sequence[Frame],
        keypoints: Sequence[Keypoints],
        transforms: Sequence[np.ndarray],
        boundary_keypoints: Keypoints,
    ) -> CorrectionResult:
        n = check_inputs(self.name, frames, keypoints, transforms)
        corrections = [identity() for _ in range(n)]
        points = [kp.points.copy() for kp in keypoints]
        anchor = boundary_keypoints.transformed(transforms[0]).points if n else np.empty((0, 3))

        for sweep in range(self.max_iterations):
            largest_step = 0.0
            for i in range(1, n):
                src, tgt = self._neighbor_pairs(i, points, keypoints, anchor)
                if len(src) < self.min_correspondences:
                    continue
                step = estimate_rigid_transform(src, tgt)
                corrections[i] = compose(step, corrections[i])
                points[i] = apply_transform(points[i], step)
                trans, rot = transform_magnitude(step)
                largest_step = max(largest_step, trans, rot)

            logger.debug(f"Local correction sweep {sweep + 1}: largest step {largest_step:.3e}")
            if largest_step < self.tolerance:
                break

        corrected = [Keypoints(p, kp.correspondences) for p, kp in zip(points, keypoints)]
        return CorrectionResult(corrections, corrected)

    def _neighbor_pairs(
        self,
        i: int,
        points: List[np.ndarray],
        keypoints: Sequence[Keypoints],
        anchor: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        src_parts = [np.empty((0, 3))]
        tgt_parts = [np.empty((0, 3))]

        backward = keypoints[i].correspondences
        if len(backward):
            src_parts.append(points[i][backward[:, 0]])
            tgt_parts.append(points[i - 1][backward[:, 1]])

        if i + 1 < len(points):
            forward = keypoints[i + 1].correspondences
            if len(forward):
                src_parts.append(points[i][forward[:, 1]])
                tgt_parts.append(points[i + 1][forward[:, 0]])
        elif len(anchor):
            pairs = match_keypoints(points[i], anchor, self.max_correspondence_distance)
            if len(pairs):
                src_parts.append(points[i][pairs[:, 0]])
                tgt_parts.append(anchor[pairs[:, 1]])

        return np.vstack(src_parts), np.vstack(tgt_parts)
