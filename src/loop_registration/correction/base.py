"""
Shared contract for loop-closure correctors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence

import numpy as np

from ..alignment.keypoints import Keypoints
from ..errors import StageError
from ..frames.frame import Frame
from ..utils.transforms import compose


@dataclass
class CorrectionResult:
    """Per-frame corrective transforms and the keypoints moved by them."""

    transforms: List[np.ndarray]
    keypoints: List[Keypoints]

    def __len__(self) -> int:
        return len(self.transforms)


class Corrector(Protocol):
    def correct(
        self,
        frames: Sequence[Frame],
        keypoints: Sequence[Keypoints],
        transforms: Sequence[np.ndarray],
        boundary_keypoints: Keypoints,
    ) -> CorrectionResult:
        ...


def check_inputs(
    name: str,
    frames: Sequence[Frame],
    keypoints: Sequence[Keypoints],
    transforms: Sequence[np.ndarray],
) -> int:
    n = len(frames)
    if len(keypoints) != n or len(transforms) != n:
        raise StageError(
            f"{name} correction got {n} frames, {len(keypoints)} keypoint sets "
            f"and {len(transforms)} transforms"
        )
    return n


def apply_corrections(corrections: Sequence[np.ndarray], transforms: Sequence[np.ndarray]) -> List[np.ndarray]:
    """
    Left-multiply every correction onto its transform, except the first.

    The first frame is the loop's starting edge and stays pinned to its
    global edge transform.
    """
    if len(corrections) != len(transforms):
        raise StageError(
            f"Correction returned {len(corrections)} transforms for {len(transforms)} frames"
        )
    result = list(transforms)
    for i in range(1, len(result)):
        result[i] = compose(corrections[i], result[i])
    return result
