"""
Utility Functions Module

This module provides common utility functions used across the project.
- Logging
- Configuration loading
- Rigid transform math
- Export of transform chains and registered frames
"""

from .logging import configure_package_logging, setup_logger
from .config import AppConfig, load_config
from .transforms import (
    apply_transform,
    compose,
    estimate_rigid_transform,
    identity,
    interpolate_transform,
    invert,
)
from .export import (
    save_transform_chain,
    load_transform_chain,
    export_registered_frames_to_laz,
)

__all__ = [
    "setup_logger",
    "configure_package_logging",
    "AppConfig",
    "load_config",
    "apply_transform",
    "compose",
    "estimate_rigid_transform",
    "identity",
    "interpolate_transform",
    "invert",
    "save_transform_chain",
    "load_transform_chain",
    "export_registered_frames_to_laz",
]
