"""
Loop and LoopSet value objects.

A Loop is one segment ``[start_index, end_index)`` of the frame sequence.
It is filled in two phases, each producing a new immutable Loop:

    UNFILLED --with_edges()--> EDGES_SET --with_interior()--> PROCESSED

Edge data comes from the global edge alignment, interior data from the
loop processor. A LoopSet is the ordered, gap-free sequence of loops.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..alignment.keypoints import Keypoints
from ..errors import ConsistencyError, InvalidConfigurationError, StageError
from ..frames.frame import Frame
from ..utils.transforms import identity


class LoopState(str, Enum):
    UNFILLED = "unfilled"
    EDGES_SET = "edges_set"
    PROCESSED = "processed"


def _identity_pair() -> Tuple[np.ndarray, np.ndarray]:
    return (identity(), identity())


@dataclass(frozen=True, eq=False)
class Loop:
    start_index: int
    end_index: int
    boundary_frames: Optional[Tuple[Frame, Frame]] = None
    boundary_transforms: Tuple[np.ndarray, np.ndarray] = field(default_factory=_identity_pair)
    boundary_keypoints: Optional[Keypoints] = None
    interior_transforms: Tuple[np.ndarray, ...] = ()
    interior_fitness_scores: Tuple[float, ...] = ()
    interior_frame_indices: Tuple[int, ...] = ()

    def __post_init__(self):
        if self.end_index == self.start_index:
            raise InvalidConfigurationError(f"Loop [{self.start_index}, {self.end_index}) has zero length")
        if self.end_index < self.start_index:
            raise InvalidConfigurationError(
                f"Loop start {self.start_index} must be smaller than its end {self.end_index}"
            )
        if len(self.interior_transforms) != len(self.interior_fitness_scores):
            raise StageError(
                f"Loop [{self.start_index}, {self.end_index}): {len(self.interior_transforms)} interior "
                f"transforms for {len(self.interior_fitness_scores)} fitness scores"
            )

    def __repr__(self) -> str:
        return f"Loop([{self.start_index}, {self.end_index}), state={self.state.value})"

    @property
    def boundary_indices(self) -> Tuple[int, int]:
        return (self.start_index, self.end_index)

    @property
    def state(self) -> LoopState:
        if self.interior_transforms:
            return LoopState.PROCESSED
        if self.boundary_frames is not None:
            return LoopState.EDGES_SET
        return LoopState.UNFILLED

    def with_edges(
        self,
        frames: Tuple[Frame, Frame],
        transforms: Tuple[np.ndarray, np.ndarray],
        keypoints: Keypoints,
    ) -> "Loop":
        """Return this loop with its boundary data set (UNFILLED -> EDGES_SET)."""
        if self.state is not LoopState.UNFILLED:
            raise ConsistencyError(f"{self!r}: boundary data can only be set once")
        return replace(
            self,
            boundary_frames=tuple(frames),
            boundary_transforms=tuple(transforms),
            boundary_keypoints=keypoints,
        )

    def with_interior(
        self,
        transforms: Sequence[np.ndarray],
        fitness_scores: Sequence[float],
        frame_indices: Optional[Sequence[int]] = None,
    ) -> "Loop":
        """Return this loop with its interior results set (EDGES_SET -> PROCESSED)."""
        if self.state is not LoopState.EDGES_SET:
            raise ConsistencyError(f"{self!r}: interior data needs boundary data and can only be set once")
        if len(transforms) == 0:
            raise StageError(f"{self!r}: no interior transforms")
        if frame_indices is not None and len(frame_indices) != len(transforms):
            raise StageError(
                f"{self!r}: {len(frame_indices)} frame indices for {len(transforms)} interior transforms"
            )
        return replace(
            self,
            interior_transforms=tuple(transforms),
            interior_fitness_scores=tuple(float(s) for s in fitness_scores),
            interior_frame_indices=() if frame_indices is None else tuple(int(i) for i in frame_indices),
        )


class LoopSet:
    """
    Ordered loops covering the read range without gaps:
    ``loops[i].end_index == loops[i + 1].start_index``.
    """

    def __init__(self, loops: Iterable[Loop]):
        self._loops: Tuple[Loop, ...] = tuple(loops)
        if not self._loops:
            raise ConsistencyError("LoopSet needs at least one loop")
        for prev, nxt in zip(self._loops, self._loops[1:]):
            if prev.end_index != nxt.start_index:
                raise ConsistencyError(
                    f"Loops are not contiguous: {prev!r} is followed by {nxt!r}"
                )

    @classmethod
    def from_edge_indices(cls, edge_indices: Sequence[int]) -> "LoopSet":
        return cls(Loop(a, b) for a, b in zip(edge_indices, edge_indices[1:]))

    def __len__(self) -> int:
        return len(self._loops)

    def __iter__(self) -> Iterator[Loop]:
        return iter(self._loops)

    def __getitem__(self, i: int) -> Loop:
        return self._loops[i]

    @property
    def loops(self) -> Tuple[Loop, ...]:
        return self._loops

    @property
    def edge_indices(self) -> List[int]:
        return [loop.start_index for loop in self._loops] + [self._loops[-1].end_index]

    def all_in(self, state: LoopState) -> bool:
        return all(loop.state is state for loop in self._loops)

    def transform_chain(self) -> List[np.ndarray]:
        """Concatenate every loop's interior transforms in loop order."""
        if not self.all_in(LoopState.PROCESSED):
            pending = [repr(l) for l in self._loops if l.state is not LoopState.PROCESSED]
            raise ConsistencyError(f"Cannot assemble transform chain, unprocessed loops: {pending}")
        chain: List[np.ndarray] = []
        for loop in self._loops:
            chain.extend(loop.interior_transforms)
        return chain

    def fitness_scores(self) -> List[float]:
        scores: List[float] = []
        for loop in self._loops:
            scores.extend(loop.interior_fitness_scores)
        return scores

    def frame_indices(self) -> List[int]:
        """Frame index of every transform in ``transform_chain()``."""
        indices: List[int] = []
        for loop in self._loops:
            indices.extend(loop.interior_frame_indices)
        return indices
