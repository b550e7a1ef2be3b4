"""
Loop Registration Package

Estimates the motion of a moving sensor over a long sequence of point-cloud
frames. The sequence is split into loops bounded by edge frames; edge frames
are registered globally, each loop's interior is registered against its
starting edge, and closing each loop back onto its starting edge keypoints
removes accumulated drift. The result is one 4x4 transform per frame for
surface reconstruction.
"""

__version__ = "0.1.0"

from .errors import (
    ConsistencyError,
    InvalidConfigurationError,
    LoopRegistrationError,
    StageError,
)
from .frames import Frame, FrameFilter, InMemoryFrameSource, LasFrameSource
from .alignment import CoarseAligner, Keypoints, RefinementAligner
from .correction import GlobalLoopCorrection, LocalLoopCorrection
from .registration import (
    EdgeSelector,
    GlobalEdgeAligner,
    Loop,
    LoopProcessor,
    LoopRegistrationPipeline,
    LoopSet,
    RegistrationResult,
)
from .utils import load_config

__all__ = [
    "ConsistencyError",
    "InvalidConfigurationError",
    "LoopRegistrationError",
    "StageError",
    "Frame",
    "FrameFilter",
    "InMemoryFrameSource",
    "LasFrameSource",
    "CoarseAligner",
    "Keypoints",
    "RefinementAligner",
    "GlobalLoopCorrection",
    "LocalLoopCorrection",
    "EdgeSelector",
    "GlobalEdgeAligner",
    "Loop",
    "LoopProcessor",
    "LoopRegistrationPipeline",
    "LoopSet",
    "RegistrationResult",
    "load_config",
]
