"""
Export utilities for registration results.

The transform chain is the hand-off to downstream reconstruction. It can be
written as text (one frame per row) and the registered frames can be merged
into a single LAZ/LAS file for inspection in CloudCompare or QGIS.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np

from .logging import setup_logger
from .transforms import apply_transform, validate_transforms

if TYPE_CHECKING:
    from ..frames.source import FrameSource

logger = setup_logger(__name__)

_CHAIN_HEADER = "frame_index followed by the row-major 4x4 transformation matrix"


def save_transform_chain(
    transforms: Sequence[np.ndarray],
    output_file: str,
    frame_indices: Optional[Sequence[int]] = None,
) -> str:
    """Save a per-frame transform chain to a text file.

    Args:
        transforms: One 4x4 matrix per frame
        output_file: Path to output file
        frame_indices: Frame index of each transform (defaults to 0..N-1)

    Returns:
        Path to the written file
    """
    validate_transforms(transforms)
    if frame_indices is None:
        frame_indices = range(len(transforms))
    if len(frame_indices) != len(transforms):
        raise ValueError(f"{len(frame_indices)} frame indices for {len(transforms)} transforms")

    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = np.zeros((len(transforms), 17), dtype=np.float64)
    for row, (index, T) in enumerate(zip(frame_indices, transforms)):
        rows[row, 0] = index
        rows[row, 1:] = np.asarray(T, dtype=np.float64).reshape(16)
    np.savetxt(output_path, rows, fmt=["%d"] + ["%.18e"] * 16, header=_CHAIN_HEADER)
    logger.info(f"Saved {len(transforms)} transforms to {output_path}")
    return str(output_path)


def load_transform_chain(input_file: str) -> Tuple[List[int], List[np.ndarray]]:
    """Load a transform chain written by save_transform_chain.

    Returns:
        Tuple of (frame indices, 4x4 transforms)
    """
    rows = np.loadtxt(input_file, ndmin=2)
    if rows.size and rows.shape[1] != 17:
        raise ValueError(f"Expected 17 columns per row, got {rows.shape[1]}")
    indices = [int(i) for i in rows[:, 0]] if rows.size else []
    transforms = [row[1:].reshape(4, 4) for row in rows] if rows.size else []
    logger.info(f"Loaded {len(transforms)} transforms from {input_file}")
    return indices, transforms


def export_registered_frames_to_laz(
    source: "FrameSource",
    transforms: Sequence[np.ndarray],
    frame_indices: Sequence[int],
    output_path: str,
    *,
    max_points_per_frame: Optional[int] = None,
    seed: int = 0,
) -> str:
    """
    Merge all frames, placed by their transforms, into one LAZ/LAS file.

    The frame index is stored as the extra dimension ``frame_index``.

    Args:
        source: Frame source the transforms were computed from
        transforms: One 4x4 matrix per frame
        frame_indices: Frame index of each transform
        output_path: Path for output file (extension determines format)
        max_points_per_frame: Optional random cap per frame
        seed: Seed for the subsampling RNG

    Returns:
        Path to created file
    """
    import laspy

    if len(frame_indices) != len(transforms):
        raise ValueError(f"{len(frame_indices)} frame indices for {len(transforms)} transforms")
    if not frame_indices:
        raise ValueError("No frames to export")

    by_index = dict(zip(frame_indices, transforms))
    rng = np.random.default_rng(seed)
    chunks = []
    labels = []

    start, stop = min(frame_indices), max(frame_indices) + 1
    for frame in source.stream(start, stop, 1):
        T = by_index.get(frame.index)
        if T is None:
            continue
        points = frame.points
        if max_points_per_frame is not None and len(points) > max_points_per_frame:
            points = points[rng.choice(len(points), max_points_per_frame, replace=False)]
        chunks.append(apply_transform(points, T))
        labels.append(np.full(len(points), frame.index, dtype=np.uint32))

    merged = np.vstack(chunks) if chunks else np.empty((0, 3))
    frame_labels = np.concatenate(labels) if labels else np.empty(0, dtype=np.uint32)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    header = laspy.LasHeader(point_format=6, version="1.4")
    header.add_extra_dim(laspy.ExtraBytesParams(name="frame_index", type=np.uint32))
    if len(merged):
        header.offsets = merged.min(axis=0)
    header.scales = np.array([0.001, 0.001, 0.001])

    las = laspy.LasData(header)
    las.x = merged[:, 0]
    las.y = merged[:, 1]
    las.z = merged[:, 2]
    las.frame_index = frame_labels
    las.write(str(output_path))

    logger.info(f"Exported {len(merged):,} points from {len(chunks)} frames to {output_path}")
    return str(output_path)
