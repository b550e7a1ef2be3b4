"""
Loop processing

Registers the interior frames of one loop anchored at its starting edge
and optionally corrects drift by closing the loop back onto the keypoints
of its starting edge.
"""

from __future__ import annotations

from typing import Optional

from .loop import Loop, LoopState
from ..alignment.sequential import Aligner
from ..correction.base import Corrector, apply_corrections
from ..errors import ConsistencyError, InvalidConfigurationError, StageError
from ..frames.filters import FrameFilter
from ..frames.source import FrameSource
from ..utils.logging import setup_logger
from ..utils.transforms import compose, identity

logger = setup_logger(__name__)


class LoopProcessor:
    """
    Process one Loop: EDGES_SET -> PROCESSED.

    Steps:
        1. read ``[start_index, end_index)`` at ``read_step`` and filter
        2. coarse alignment seeded with the loop's starting edge transform,
           refinement seeded with identity and the coarse keypoints;
           ``result[i] = refine[i] @ coarse[i]``
        3. if loop closure is enabled: global then local correction, each
           left-multiplied onto ``result[i]`` for ``i >= 1``
        4. store the transforms and the refinement fitness scores

    The first interior frame is the starting edge itself and keeps the
    edge transform exactly.
    """

    def __init__(
        self,
        source: FrameSource,
        coarse: Aligner,
        refine: Aligner,
        *,
        read_step: int = 1,
        frame_filter: Optional[FrameFilter] = None,
        loop_closure: bool = True,
        global_corrector: Optional[Corrector] = None,
        local_corrector: Optional[Corrector] = None,
    ):
        if loop_closure and (global_corrector is None or local_corrector is None):
            raise InvalidConfigurationError("Loop closure needs both a global and a local corrector")
        self.source = source
        self.coarse = coarse
        self.refine = refine
        self.read_step = read_step
        self.frame_filter = frame_filter
        self.loop_closure = loop_closure
        self.global_corrector = global_corrector
        self.local_corrector = local_corrector

    def process(self, loop: Loop) -> Loop:
        if loop.state is not LoopState.EDGES_SET:
            raise ConsistencyError(f"{loop!r} must have its boundary data set before processing")

        frames = list(self.source.stream(loop.start_index, loop.end_index, self.read_step))
        if not frames:
            raise StageError(f"{loop!r}: frame source returned no interior frames")
        if self.frame_filter is not None:
            self.frame_filter.filter(frames)
        n = len(frames)
        logger.info(f"Processing loop [{loop.start_index}, {loop.end_index}) with {n} frames")

        coarse = self.coarse.align(frames, loop.boundary_transforms[0])
        self._check_length("coarse alignment", len(coarse.transforms), n)

        refine = self.refine.align(coarse.frames, identity(), keypoints=coarse.keypoints)
        self._check_length("refinement alignment", len(refine.transforms), n)
        self._check_length("refinement fitness", len(refine.fitness_scores), n)

        result_t = [compose(r, c) for r, c in zip(refine.transforms, coarse.transforms)]

        if self.loop_closure:
            first = self.global_corrector.correct(
                refine.frames, refine.keypoints, result_t, loop.boundary_keypoints
            )
            self._check_length("global correction", len(first.transforms), n)
            self._check_length("global correction keypoints", len(first.keypoints), n)
            result_t = apply_corrections(first.transforms, result_t)

            second = self.local_corrector.correct(
                refine.frames, first.keypoints, result_t, loop.boundary_keypoints
            )
            self._check_length("local correction", len(second.transforms), n)
            result_t = apply_corrections(second.transforms, result_t)

        return loop.with_interior(result_t, refine.fitness_scores, [f.index for f in frames])

    @staticmethod
    def _check_length(stage: str, got: int, expected: int) -> None:
        if got != expected:
            raise StageError(f"{stage} returned {got} results for {expected} frames")
