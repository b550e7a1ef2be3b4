"""
Global edge alignment

Registers all edge frames against each other (coarse, then refinement) and
hands every loop its two global boundary transforms.
"""

from __future__ import annotations

from typing import List, Optional

from .loop import LoopSet, LoopState
from ..alignment.sequential import Aligner
from ..errors import ConsistencyError, StageError
from ..frames.filters import FrameFilter
from ..frames.frame import Frame
from ..utils.logging import setup_logger
from ..utils.transforms import compose, identity, invert

logger = setup_logger(__name__)


class GlobalEdgeAligner:
    def __init__(self, coarse: Aligner, refine: Aligner, frame_filter: Optional[FrameFilter] = None):
        self.coarse = coarse
        self.refine = refine
        self.frame_filter = frame_filter

    def align(self, loop_set: LoopSet, edge_frames: List[Frame]) -> LoopSet:
        """
        Place every edge frame globally and return the loops with edges set.

        The composed transform ``refine_T[i] @ coarse_T[i]`` of edge ``i`` is
        computed once and used as the end of loop ``i - 1`` and the start of
        loop ``i``, so adjacent loops share the exact same seam transform.

        Loop ``i`` also keeps the keypoints the coarse stage selected on its
        starting edge, in that edge frame's own coordinates. Placed with the
        loop's starting transform they mark where the loop is anchored.

        Args:
            loop_set: Loops in the UNFILLED state.
            edge_frames: One frame per edge, in edge order.

        Returns:
            New LoopSet with every loop in the EDGES_SET state.
        """
        if len(edge_frames) != len(loop_set) + 1:
            raise ConsistencyError(
                f"{len(edge_frames)} edge frames for {len(loop_set)} loops"
            )
        if not loop_set.all_in(LoopState.UNFILLED):
            raise ConsistencyError("Global edge alignment expects loops without boundary data")

        frames = list(edge_frames)
        if self.frame_filter is not None:
            self.frame_filter.filter(frames)

        logger.info(f"=== Global edge alignment of {len(frames)} edge frames ===")
        coarse = self.coarse.align(frames, identity())
        _check_length("coarse edge alignment", len(coarse.transforms), len(frames))
        _check_length("coarse edge keypoints", len(coarse.keypoints), len(frames))

        refine = self.refine.align(coarse.frames, identity(), keypoints=coarse.keypoints)
        _check_length("refinement edge alignment", len(refine.transforms), len(frames))

        placed = [compose(r, c) for r, c in zip(refine.transforms, coarse.transforms)]

        loops = []
        for i, loop in enumerate(loop_set):
            anchor = coarse.keypoints[i]
            loops.append(
                loop.with_edges(
                    frames=(frames[i], frames[i + 1]),
                    transforms=(placed[i], placed[i + 1]),
                    keypoints=anchor.transformed(invert(coarse.transforms[i])),
                )
            )
            logger.debug(
                f"Loop [{loop.start_index}, {loop.end_index}): edge fitness {refine.fitness_scores[i + 1]:.6f}, "
                f"{len(anchor)} anchor keypoints"
            )
        return LoopSet(loops)


def _check_length(stage: str, got: int, expected: int) -> None:
    if got != expected:
        raise StageError(f"{stage} returned {got} results for {expected} frames")
