"""
Global loop-closure correction.

Measures the loop-closure error as the rigid motion that snaps the loop's
last frame back onto its anchor, the starting edge keypoints placed with the
loop's first (pinned) transform. That error is then spread linearly along
the loop: frame ``i`` of ``n`` receives the fraction ``i / (n - 1)`` of it.
The first frame receives nothing.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .base import CorrectionResult, check_inputs
from ..alignment.fine_registration import ICPRegistration
from ..alignment.keypoints import Keypoints
from ..frames.frame import Frame
from ..utils.logging import setup_logger
from ..utils.transforms import identity, interpolate_transform, transform_magnitude

logger = setup_logger(__name__)


class GlobalLoopCorrection:
    name = "global"

    def __init__(
        self,
        icp: Optional[ICPRegistration] = None,
        max_correspondence_distance: float = 2.0,
        min_correspondences: int = 3,
    ):
        self.max_correspondence_distance = max_correspondence_distance
        self.min_correspondences = min_correspondences
        self.icp = icp or ICPRegistration(max_correspondence_distance=max_correspondence_distance)

    def correct(
        self,
        frames: Sequence[Frame],
        keypoints: Sequence[Keypoints],
        transforms: Sequence[np.ndarray],
        boundary_keypoints: Keypoints,
    ) -> CorrectionResult:
        n = check_inputs(self.name, frames, keypoints, transforms)
        corrections = [identity() for _ in range(n)]

        closure = None
        if n > 1:
            anchor = boundary_keypoints.transformed(transforms[0])
            closure = self.estimate_closure(keypoints[-1].points, anchor.points)
        if closure is None:
            return CorrectionResult(corrections, list(keypoints))

        trans, rot = transform_magnitude(closure)
        logger.info(
            f"Loop closure error over {n} frames: |t|={trans:.4f} m, theta={np.rad2deg(rot):.4f} deg"
        )
        for i in range(1, n):
            corrections[i] = interpolate_transform(closure, i / (n - 1))

        corrected = [kp.transformed(c) for kp, c in zip(keypoints, corrections)]
        return CorrectionResult(corrections, corrected)

    def estimate_closure(self, last_points: np.ndarray, anchor_points: np.ndarray) -> Optional[np.ndarray]:
        """Rigid motion taking the last frame's keypoints onto the anchor, or None."""
        if len(last_points) == 0 or len(anchor_points) == 0:
            logger.warning("Loop closure skipped: no keypoints at the loop end")
            return None

        _, distances = self.icp.find_correspondences(last_points, anchor_points)
        n_valid = int(np.sum(distances < self.max_correspondence_distance))
        if n_valid < self.min_correspondences:
            logger.warning(
                f"Loop closure skipped: {n_valid} correspondences with the anchor "
                f"(need {self.min_correspondences})"
            )
            return None

        _, closure, error = self.icp.align_point_clouds(last_points, anchor_points)
        logger.debug(f"Loop closure ICP RMSE: {error:.6f}")
        return closure
