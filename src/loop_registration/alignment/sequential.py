"""
Sequential (chained) registration of an ordered list of frames.

Both alignment stages share this driver: the first frame is placed by the
initial transform, every following frame is registered onto the frame
placed just before it. Subclasses only provide the pairwise step.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple
import time

import numpy as np

from .keypoints import Keypoints, extract_keypoints, match_keypoints
from ..errors import StageError
from ..frames.frame import Frame
from ..utils.logging import setup_logger
from ..utils.transforms import apply_transform

logger = setup_logger(__name__)


@dataclass
class AlignmentResult:
    """Per-frame output of an aligner; all four lists have one entry per frame."""

    transforms: List[np.ndarray]
    fitness_scores: List[float]
    frames: List[Frame]
    keypoints: List[Keypoints]

    def __post_init__(self):
        n = len(self.transforms)
        if not (len(self.fitness_scores) == len(self.frames) == len(self.keypoints) == n):
            raise StageError(
                "AlignmentResult lists differ in length: "
                f"transforms={n}, fitness={len(self.fitness_scores)}, "
                f"frames={len(self.frames)}, keypoints={len(self.keypoints)}"
            )

    def __len__(self) -> int:
        return len(self.transforms)


class Aligner(Protocol):
    def align(
        self,
        frames: Sequence[Frame],
        initial: np.ndarray,
        keypoints: Optional[Sequence[Keypoints]] = None,
    ) -> AlignmentResult:
        ...


class SequentialAligner(ABC):
    """
    Chain pairwise registrations over an ordered frame sequence.

    Args:
        keypoint_voxel_size: Voxel size used to extract keypoints when no
            seed keypoints are given.
        max_keypoints: Cap on keypoints per frame.
        max_correspondence_distance: Distance bound for keypoint
            correspondences between consecutive frames.
    """

    name = "sequential"

    def __init__(
        self,
        keypoint_voxel_size: float = 0.5,
        max_keypoints: Optional[int] = 5000,
        max_correspondence_distance: float = 1.0,
    ):
        self.keypoint_voxel_size = keypoint_voxel_size
        self.max_keypoints = max_keypoints
        self.max_correspondence_distance = max_correspondence_distance

    def align(
        self,
        frames: Sequence[Frame],
        initial: np.ndarray,
        keypoints: Optional[Sequence[Keypoints]] = None,
    ) -> AlignmentResult:
        """
        Register every frame of the sequence.

        Args:
            frames: Ordered frames, in their own (input) coordinates.
            initial: 4x4 transform placing the first frame.
            keypoints: Optional seed keypoints, one per frame, in the same
                coordinates as ``frames``. Extracted from the frames if None.

        Returns:
            AlignmentResult with per-frame transforms, fitness scores and the
            frames/keypoints moved by those transforms.
        """
        n = len(frames)
        if n == 0:
            raise StageError(f"{self.name} aligner called with no frames")
        if keypoints is not None and len(keypoints) != n:
            raise StageError(f"{self.name} aligner got {len(keypoints)} keypoint sets for {n} frames")
        if np.shape(initial) != (4, 4):
            raise StageError(f"{self.name} aligner initial transform must be 4x4, got {np.shape(initial)}")

        logger.info(f"Starting {self.name} alignment of {n} frames")
        start = time.time()

        if keypoints is None:
            local_kp = [
                extract_keypoints(f.points, self.keypoint_voxel_size, self.max_keypoints, seed=f.index)
                for f in frames
            ]
        else:
            local_kp = [kp.points for kp in keypoints]

        transforms = [np.array(initial, dtype=np.float64)]
        fitness = [0.0]
        placed_frames = [frames[0].transformed(transforms[0])]
        placed_kp = [Keypoints(apply_transform(local_kp[0], transforms[0]))]

        for i in range(1, n):
            T_i, score = self._register_pair(
                source_keypoints=local_kp[i],
                target_points=placed_frames[i - 1].points,
                target_keypoints=placed_kp[i - 1].points,
                initial=transforms[i - 1],
            )
            transforms.append(T_i)
            fitness.append(float(score))
            placed_frames.append(frames[i].transformed(T_i))
            kp_points = apply_transform(local_kp[i], T_i)
            corr = match_keypoints(kp_points, placed_kp[i - 1].points, self.max_correspondence_distance)
            placed_kp.append(Keypoints(kp_points, corr))
            logger.debug(
                f"{self.name}: frame {frames[i].index} fitness={score:.6f}, "
                f"{len(corr)} keypoint correspondences"
            )

        logger.info(f"{self.name} alignment of {n} frames finished in {time.time() - start:.2f} s")
        return AlignmentResult(transforms, fitness, placed_frames, placed_kp)

    @abstractmethod
    def _register_pair(
        self,
        source_keypoints: np.ndarray,
        target_points: np.ndarray,
        target_keypoints: np.ndarray,
        initial: np.ndarray,
    ) -> Tuple[np.ndarray, float]:
        """
        Register one frame onto its already placed predecessor.

        Args:
            source_keypoints: Keypoints of the frame to place, input coordinates.
            target_points: Points of the placed previous frame.
            target_keypoints: Keypoints of the placed previous frame.
            initial: Transform of the previous frame, used as the starting guess.

        Returns:
            Tuple of (4x4 transform placing the frame, fitness score).
        """
