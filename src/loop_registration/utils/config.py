"""
Configuration management for loop-registration.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError, model_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class PathsConfig(BaseModel):
    frames_dir: str = Field(default="data/frames", description="Directory with one LAS/LAZ file per frame")
    frame_pattern: str = Field(default="*.la[sz]", description="Glob pattern selecting frame files")
    output_dir: str = Field(default="output")


class ReadConfig(BaseModel):
    read_from: int = Field(default=0, ge=0, description="First frame index of the sequence")
    read_to: int = Field(default=100, description="Last frame index usable as an edge (exclusive for streaming)")
    read_step: int = Field(default=1, gt=0, description="Stride between consecutive frames")

    @model_validator(mode="after")
    def _check_range(self) -> "ReadConfig":
        if self.read_from >= self.read_to:
            raise ValueError(f"read_from ({self.read_from}) must be smaller than read_to ({self.read_to})")
        return self


class RegistrationConfig(BaseModel):
    loop_size: int = Field(default=10, gt=0, description="Frames per loop; number of edges when balancing")
    edge_balancing: bool = Field(
        default=False,
        description="Place loop edges so that every loop covers a similar travelled distance",
    )
    loop_closure: bool = Field(default=True, description="Run global + local loop-closure correction")
    balancing_metric: Literal["centroid"] = Field(default="centroid")


class FilterConfig(BaseModel):
    ground_only: bool = Field(default=False)
    classification_filter: Optional[List[int]] = Field(default=None)
    min_range: Optional[float] = Field(default=None, description="Drop points closer than this to the sensor")
    max_range: Optional[float] = Field(default=None, description="Drop points farther than this from the sensor")
    voxel_size: Optional[float] = Field(default=None, description="Voxel size for downsampling frames")
    max_points: Optional[int] = Field(default=50000, description="Random subsample cap per frame")
    seed: int = Field(default=0, description="Base seed for per-frame random subsampling")


class KeypointConfig(BaseModel):
    voxel_size: float = Field(default=0.5, gt=0, description="Voxel size used to pick keypoints")
    max_keypoints: Optional[int] = Field(default=5000)
    max_correspondence_distance: float = Field(default=1.0, gt=0)


class CoarseRegistrationConfig(BaseModel):
    method: Literal["centroid", "pca", "open3d_fpfh", "none"] = Field(default="pca")
    voxel_size: float = Field(default=0.5, description="Voxel size for FPFH downsampling")


class AlignmentICPConfig(BaseModel):
    max_iterations: int = Field(default=50)
    tolerance: float = Field(default=1e-6)
    max_correspondence_distance: float = Field(default=1.0)
    convergence_translation_epsilon: float = Field(
        default=1e-4,
        description="Minimum translation step (meters) to continue ICP iterations",
    )
    convergence_rotation_epsilon_deg: float = Field(
        default=0.1,
        description="Minimum rotation step (degrees) to continue ICP iterations",
    )
    coarse: CoarseRegistrationConfig = Field(default_factory=CoarseRegistrationConfig)


class CorrectionConfig(BaseModel):
    global_max_correspondence_distance: float = Field(default=2.0, gt=0)
    local_max_iterations: int = Field(default=10, gt=0)
    local_tolerance: float = Field(default=1e-5)
    local_max_correspondence_distance: float = Field(default=1.0, gt=0)


class OutputConfig(BaseModel):
    transforms_file: str = Field(default="transforms.txt")
    export_laz: bool = Field(default=False, description="Write all registered frames to one LAZ file")
    laz_file: str = Field(default="registered.laz")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class ParallelConfig(BaseModel):
    enabled: bool = Field(default=False, description="Process loops in worker processes")
    n_workers: Optional[int] = Field(default=None, description="Number of worker processes (None = cpu_count - 1)")


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    read: ReadConfig = Field(default_factory=ReadConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    keypoints: KeypointConfig = Field(default_factory=KeypointConfig)
    alignment: AlignmentICPConfig = Field(default_factory=AlignmentICPConfig)
    correction: CorrectionConfig = Field(default_factory=CorrectionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/loop_registration/utils/config.py
    parents sequence:
      0 -> .../src/loop_registration/utils
      1 -> .../src/loop_registration
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Relative paths that do not exist from the working directory are
    resolved against the repository root.

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)
        if not cfg_path.is_absolute() and not cfg_path.exists():
            cfg_path = _project_root() / cfg_path

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
