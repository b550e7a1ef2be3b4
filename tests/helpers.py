"""
Shared synthetic data and scripted stages for the test suite.

Scripted aligners and correctors return prescribed transforms so that the
orchestration code (edge alignment, loop processing, pipeline) can be
checked against exact expected matrices. They live at module level so
loop processors built from them can be sent to worker processes.
"""

from pathlib import Path
import sys
from typing import List, Optional, Sequence

import numpy as np

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from loop_registration.alignment.keypoints import Keypoints
from loop_registration.alignment.sequential import AlignmentResult
from loop_registration.correction.base import CorrectionResult
from loop_registration.frames.frame import Frame
from loop_registration.frames.source import InMemoryFrameSource


def make_random_cloud(n: int = 3000, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # Anisotropic spread to avoid degenerate covariance
    base = rng.normal(size=(n, 3)) * np.array([10.0, 5.0, 2.0])
    base += np.array([100.0, -50.0, 20.0])
    return base.astype(float)


def rot_z(deg: float) -> np.ndarray:
    th = np.deg2rad(deg)
    T = np.eye(4)
    T[:3, :3] = np.array(
        [
            [np.cos(th), -np.sin(th), 0.0],
            [np.sin(th), np.cos(th), 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    return T


def translation(x: float, y: float = 0.0, z: float = 0.0) -> np.ndarray:
    T = np.eye(4)
    T[:3, 3] = [x, y, z]
    return T


def make_source(n_frames: int, points_per_frame: int = 50, step: float = 1.0, seed: int = 0) -> InMemoryFrameSource:
    """Frames of a sensor moving along +x by ``step`` per frame."""
    rng = np.random.default_rng(seed)
    frames = []
    for i in range(n_frames):
        pts = rng.normal(size=(points_per_frame, 3)) + np.array([i * step, 0.0, 0.0])
        frames.append(Frame(index=i, points=pts))
    return InMemoryFrameSource(frames)


class ScriptedAligner:
    """
    Aligner placing frame ``i`` at ``step^i @ initial``.

    Records every call as ``(number of frames, initial transform)``.
    """

    def __init__(self, step: Optional[np.ndarray] = None, n_keypoints: int = 5):
        self.step = np.eye(4) if step is None else step
        self.n_keypoints = n_keypoints
        self.calls = []

    def align(self, frames: Sequence[Frame], initial: np.ndarray, keypoints=None) -> AlignmentResult:
        self.calls.append((len(frames), np.array(initial)))
        transforms = [np.array(initial, dtype=float)]
        for _ in range(1, len(frames)):
            transforms.append(self.step @ transforms[-1])
        placed = [f.transformed(T) for f, T in zip(frames, transforms)]
        kps = [Keypoints(p.points[: self.n_keypoints]) for p in placed]
        fitness = [0.0] + [0.1 * i for i in range(1, len(frames))]
        return AlignmentResult(transforms, fitness, placed, kps)


class ShortAligner(ScriptedAligner):
    """Aligner that drops the last frame from its transforms."""

    def align(self, frames, initial, keypoints=None):
        result = super().align(frames, initial, keypoints)
        result.transforms = result.transforms[:-1]
        return result


class ScriptedCorrector:
    """
    Corrector returning the same correction for every frame.

    The returned keypoints are the received ones moved by the correction.
    Every call records the keypoints and the anchor keypoints it received.
    """

    def __init__(self, correction: np.ndarray, drop_last: bool = False):
        self.correction = correction
        self.drop_last = drop_last
        self.received: List[List[Keypoints]] = []
        self.anchors: List[Keypoints] = []

    @property
    def calls(self) -> int:
        return len(self.received)

    def correct(self, frames, keypoints, transforms, boundary_keypoints) -> CorrectionResult:
        self.received.append(list(keypoints))
        self.anchors.append(boundary_keypoints)
        n = len(transforms) - 1 if self.drop_last else len(transforms)
        corrections: List[np.ndarray] = [self.correction.copy() for _ in range(n)]
        return CorrectionResult(corrections, [kp.transformed(self.correction) for kp in keypoints])
