"""
Registration Module

Loop-based registration: edge selection, global edge alignment, per-loop
registration with loop-closure correction, and the pipeline tying them
together.
"""

from .loop import Loop, LoopSet, LoopState
from .edges import EdgeBalancer, EdgeSelector, build_loop_set, centroid_distance
from .edge_alignment import GlobalEdgeAligner
from .loop_processor import LoopProcessor
from .parallel import LoopParallelExecutor
from .pipeline import LoopRegistrationPipeline, RegistrationResult

__all__ = [
    "Loop",
    "LoopSet",
    "LoopState",
    "EdgeBalancer",
    "EdgeSelector",
    "build_loop_set",
    "centroid_distance",
    "GlobalEdgeAligner",
    "LoopProcessor",
    "LoopParallelExecutor",
    "LoopRegistrationPipeline",
    "RegistrationResult",
]
