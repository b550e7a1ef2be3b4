"""
Alignment Module

Two-stage pairwise registration of ordered frame sequences: a coarse stage
(centroid / PCA / Open3D FPFH) seeding an ICP refinement stage. Both stages
share the same `align(frames, initial, keypoints)` contract.
"""

from .keypoints import Keypoints, extract_keypoints, match_keypoints
from .sequential import Aligner, AlignmentResult, SequentialAligner
from .coarse_registration import CoarseAligner, CoarseRegistration
from .fine_registration import ICPRegistration, RefinementAligner

__all__ = [
    "Keypoints",
    "extract_keypoints",
    "match_keypoints",
    "Aligner",
    "AlignmentResult",
    "SequentialAligner",
    "CoarseAligner",
    "CoarseRegistration",
    "ICPRegistration",
    "RefinementAligner",
]
