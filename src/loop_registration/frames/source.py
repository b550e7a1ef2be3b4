"""
Frame Sources

A frame source yields Frames for an index range and stride. Streams are
half-open like ``range(start, stop, step)``, finite and restartable: every
call to ``stream`` starts a fresh pass over the data.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol

import laspy
import numpy as np

from .filters import create_classification_mask, get_filter_statistics
from .frame import Frame
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class FrameSource(Protocol):
    def stream(self, start: int, stop: int, step: int = 1) -> Iterator[Frame]:
        ...


def _check_stream_args(start: int, stop: int, step: int) -> None:
    if step <= 0:
        raise ValueError(f"Stream step must be positive, got {step}")
    if start < 0:
        raise ValueError(f"Stream start must be non-negative, got {start}")


class InMemoryFrameSource:
    """
    Frame source backed by frames already held in memory.

    Only indices that exist in the source are yielded, so a range reaching
    past the end of the sequence simply produces fewer frames.
    """

    def __init__(self, frames: Iterable[Frame]):
        self._frames = {frame.index: frame for frame in frames}

    @classmethod
    def from_arrays(cls, clouds: Iterable[np.ndarray]) -> "InMemoryFrameSource":
        return cls(Frame(index=i, points=points) for i, points in enumerate(clouds))

    def __len__(self) -> int:
        return len(self._frames)

    def stream(self, start: int, stop: int, step: int = 1) -> Iterator[Frame]:
        _check_stream_args(start, stop, step)
        for index in range(start, stop, step):
            frame = self._frames.get(index)
            if frame is not None:
                yield frame


class LasFrameSource:
    """
    Frame source reading one LAS/LAZ file per frame.

    Files in ``directory`` matching ``pattern`` are sorted by name; the
    position in that order is the frame index. Files are only read while
    being streamed, so long sequences never need to fit in memory.
    """

    def __init__(
        self,
        directory: str | Path,
        pattern: str = "*.la[sz]",
        *,
        ground_only: bool = False,
        classification_filter: Optional[List[int]] = None,
    ):
        """
        Args:
            directory: Directory holding the frame files
            pattern: Glob pattern selecting frame files
            ground_only: If True, keep only ground points (class 2)
            classification_filter: Classification codes to keep (overrides ground_only)
        """
        self.directory = Path(directory)
        if not self.directory.is_dir():
            raise FileNotFoundError(f"Frame directory not found: {self.directory}")
        self.files = sorted(p for p in self.directory.glob(pattern) if p.is_file())
        self.ground_only = ground_only
        self.classification_filter = classification_filter
        logger.info(f"Found {len(self.files)} frame files in {self.directory}")

    def __len__(self) -> int:
        return len(self.files)

    def stream(self, start: int, stop: int, step: int = 1) -> Iterator[Frame]:
        _check_stream_args(start, stop, step)
        for index in range(start, min(stop, len(self.files)), step):
            yield self.read_frame(index)

    def read_frame(self, index: int) -> Frame:
        path = self.files[index]
        las = laspy.read(path)
        total_points = len(las.points)

        classification = None
        if hasattr(las, "classification"):
            classification = np.asarray(las.classification)
            mask = create_classification_mask(classification, self.ground_only, self.classification_filter)
        else:
            if self.ground_only:
                logger.warning("Classification not available in %s; keeping all points.", path.name)
            mask = np.ones(total_points, dtype=bool)

        if total_points > 0:
            stats = get_filter_statistics(total_points, int(mask.sum()), self.ground_only, self.classification_filter)
            logger.debug(
                f"Frame {index} ({path.name}): {stats['filtered_points']} of {stats['total_points']} "
                f"points kept ({stats['filter_description']})"
            )

        points = np.column_stack([
            np.asarray(las.x, dtype=np.float64)[mask],
            np.asarray(las.y, dtype=np.float64)[mask],
            np.asarray(las.z, dtype=np.float64)[mask],
        ])
        return Frame(
            index=index,
            points=points,
            classification=None if classification is None else classification[mask],
        )
