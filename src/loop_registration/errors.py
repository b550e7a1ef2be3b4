"""
Error taxonomy for loop-based registration.

Every failure in the pipeline is fatal and propagates to the caller; there is
no retry at any stage.
"""


class LoopRegistrationError(Exception):
    """Base class for all pipeline errors."""


class InvalidConfigurationError(LoopRegistrationError, ValueError):
    """Raised when a loop or range cannot be built from the given parameters."""


class ConsistencyError(LoopRegistrationError, RuntimeError):
    """Raised when the edge selection and the frame source disagree on range semantics."""


class StageError(LoopRegistrationError, RuntimeError):
    """Raised when an aligner, corrector or frame read returns an unusable result."""
