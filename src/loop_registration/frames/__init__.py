"""
Frames Module

Frame value objects, frame sources (in-memory and LAS/LAZ directories) and
the generic frame filter applied before registration.
"""

from .frame import Frame
from .filters import FrameFilter, create_classification_mask, voxel_downsample
from .source import FrameSource, InMemoryFrameSource, LasFrameSource

__all__ = [
    "Frame",
    "FrameFilter",
    "create_classification_mask",
    "voxel_downsample",
    "FrameSource",
    "InMemoryFrameSource",
    "LasFrameSource",
]
