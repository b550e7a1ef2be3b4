"""
Loop-Closure Correction Module

Two correctors run in sequence on every loop: a global one spreading the
loop-closure error along the loop, then a local relaxation over
neighboring frames.
"""

from .base import CorrectionResult, Corrector, apply_corrections
from .global_correction import GlobalLoopCorrection
from .local_correction import LocalLoopCorrection

__all__ = [
    "CorrectionResult",
    "Corrector",
    "apply_corrections",
    "GlobalLoopCorrection",
    "LocalLoopCorrection",
]
