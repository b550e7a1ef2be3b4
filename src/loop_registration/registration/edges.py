"""
Edge selection

Decides which frame indices bound loops, either as fixed-size segments or
as segments covering a similar travelled distance (edge balancing).
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional

import numpy as np

from .loop import LoopSet
from ..errors import ConsistencyError, InvalidConfigurationError
from ..frames.frame import Frame
from ..frames.source import FrameSource
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

DistanceMetric = Callable[[Frame, Frame], float]


def centroid_distance(previous: Frame, current: Frame) -> float:
    """Distance between frame centroids, a cheap proxy for sensor motion."""
    return float(np.linalg.norm(current.centroid() - previous.centroid()))


class EdgeBalancer:
    """
    Choose edge positions so that consecutive edges enclose roughly equal
    cumulative inter-frame distance.

    The stream is walked once and only two frames are held at a time.
    ``target_count`` is the number of edges returned: the first and last
    positions of the stream plus ``target_count - 2`` positions in between,
    placed where the metric says the travelled distance is evenly split.
    Returned values are positions within the strided stream, not frame
    indices.
    """

    def __init__(self, metric: Optional[DistanceMetric] = None):
        self.metric = metric or centroid_distance

    def balance(self, frames: Iterable[Frame], target_count: int) -> List[int]:
        if target_count < 2:
            raise InvalidConfigurationError(
                f"Edge balancing needs at least two edges, got target_count={target_count}"
            )

        cumulative = []
        previous: Optional[Frame] = None
        for frame in frames:
            if previous is None:
                cumulative.append(0.0)
            else:
                cumulative.append(cumulative[-1] + self.metric(previous, frame))
            previous = frame

        n_positions = len(cumulative)
        if n_positions < 2:
            raise InvalidConfigurationError(
                f"Edge balancing needs at least two frames, the stream produced {n_positions}"
            )

        n_edges = target_count
        if n_edges > n_positions:
            logger.warning(
                f"Requested {target_count} edges from {n_positions} frames; every frame becomes an edge"
            )
            n_edges = n_positions
        total = cumulative[-1]

        if total <= 0.0:
            logger.warning("Frames show no motion; falling back to evenly spaced edges")
            positions = np.round(np.linspace(0, n_positions - 1, n_edges)).astype(int)
        else:
            targets = total * np.arange(n_edges) / (n_edges - 1)
            positions = np.searchsorted(np.asarray(cumulative), targets, side="left")

        # Keep edges strictly increasing with room for the ones still to place
        edges = [0]
        for j in range(1, n_edges - 1):
            lowest = edges[-1] + 1
            highest = n_positions - n_edges + j
            edges.append(int(min(max(int(positions[j]), lowest), highest)))
        edges.append(n_positions - 1)

        logger.info(
            f"Balanced {n_positions} frames into {n_edges - 1} loops "
            f"(total distance {total:.3f}, target {total / (n_edges - 1):.3f} per loop)"
        )
        return edges


class EdgeSelector:
    """
    Partition ``read_from .. read_to`` (stride ``read_step``) into loops.

    Fixed mode places edges every ``loop_size * read_step`` frames and drops
    a trailing partial loop: ``0..95`` with loops of 10 ends at edge 90.
    Balanced mode asks an EdgeBalancer for ``loop_size`` edges over the
    strided stream.
    """

    def __init__(
        self,
        read_from: int,
        read_to: int,
        read_step: int,
        loop_size: int,
        *,
        edge_balancing: bool = False,
        balancer: Optional[EdgeBalancer] = None,
    ):
        if loop_size <= 0:
            raise InvalidConfigurationError(f"loop_size must be positive, got {loop_size}")
        if read_step <= 0:
            raise InvalidConfigurationError(f"read_step must be positive, got {read_step}")
        if read_from >= read_to:
            raise InvalidConfigurationError(f"read_from ({read_from}) must be smaller than read_to ({read_to})")
        self.read_from = read_from
        self.read_to = read_to
        self.read_step = read_step
        self.loop_size = loop_size
        self.edge_balancing = edge_balancing
        self.balancer = balancer or EdgeBalancer()

    @property
    def read_loop_size(self) -> int:
        return self.loop_size * self.read_step

    def select(self, source: Optional[FrameSource] = None) -> List[int]:
        """Return the ordered edge frame indices."""
        if not self.edge_balancing:
            edges = list(range(self.read_from, self.read_to + 1, self.read_loop_size))
            if len(edges) < 2:
                raise InvalidConfigurationError(
                    f"Range [{self.read_from}, {self.read_to}] is shorter than one loop "
                    f"({self.read_loop_size} frames)"
                )
            dropped = self.read_to - edges[-1]
            if dropped:
                logger.info(f"Fixed edges: last {dropped} frames do not fill a loop and are skipped")
            return edges

        if source is None:
            raise InvalidConfigurationError("Edge balancing needs a frame source")
        positions = self.balancer.balance(
            source.stream(self.read_from, self.read_to, self.read_step), self.loop_size
        )
        return [p * self.read_step + self.read_from for p in positions]

    def collect_edge_frames(self, source: FrameSource, edge_indices: List[int]) -> List[Frame]:
        """Read the frames at the edge indices."""
        if not self.edge_balancing:
            return list(source.stream(edge_indices[0], edge_indices[-1] + 1, self.read_loop_size))

        wanted = set(edge_indices)
        return [
            frame
            for frame in source.stream(self.read_from, self.read_to, self.read_step)
            if frame.index in wanted
        ]


def build_loop_set(edge_indices: List[int], edge_frames: List[Frame]) -> LoopSet:
    """
    Build the loops between consecutive edges.

    Raises:
        ConsistencyError: if the number of collected edge frames does not
            match the number of edges, i.e. the frame source and the edge
            selection disagree on the range.
    """
    if len(edge_frames) != len(edge_indices):
        raise ConsistencyError(
            f"Collected {len(edge_frames)} edge frames for {len(edge_indices)} edge indices"
        )
    loop_set = LoopSet.from_edge_indices(edge_indices)
    if len(loop_set) + 1 != len(edge_frames):
        raise ConsistencyError(
            f"{len(loop_set)} loops do not match {len(edge_frames)} edge frames"
        )
    return loop_set
