"""
Frame value object: one captured point cloud plus its sequence index.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from ..utils.transforms import apply_transform


@dataclass(frozen=True, eq=False)
class Frame:
    index: int
    points: np.ndarray
    classification: Optional[np.ndarray] = None

    def __post_init__(self):
        points = np.asarray(self.points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Frame {self.index}: points must be (N, 3), got {points.shape}")
        if self.classification is not None and len(self.classification) != len(points):
            raise ValueError(
                f"Frame {self.index}: classification has {len(self.classification)} entries "
                f"for {len(points)} points"
            )
        object.__setattr__(self, "points", points)

    def __len__(self) -> int:
        return len(self.points)

    def transformed(self, transform: np.ndarray) -> "Frame":
        return replace(self, points=apply_transform(self.points, transform))

    def subset(self, mask: np.ndarray) -> "Frame":
        """Keep only the points selected by a boolean mask or index array."""
        classification = None if self.classification is None else self.classification[mask]
        return replace(self, points=self.points[mask], classification=classification)

    def centroid(self) -> np.ndarray:
        if len(self.points) == 0:
            return np.zeros(3)
        return self.points.mean(axis=0)
