"""
Generate a synthetic moving-sensor frame sequence (one LAZ file per frame).

- Builds a static scene: hilly terrain with a few box-shaped buildings so
  frames have enough 3D structure to register.
- Moves a virtual sensor along a gently curving path.
- Each frame keeps the scene points within the sensor range, expressed in
  the sensor's local coordinates, with per-point noise.
- Writes frames to data/synthetic_frames/frame_XXXXXX.laz and the
  ground-truth transform chain (frame -> frame 0 coordinates) to
  data/synthetic_frames/ground_truth.txt.

Requires laspy with a LAZ backend (lazrs or laszip).
"""
from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

import numpy as np
import laspy

sys.path.append(str(Path(__file__).parent.parent / "src"))

from loop_registration.utils.export import save_transform_chain
from loop_registration.utils.transforms import invert, rigid_from_rt


def ensure_laz_writing_possible():
    # laspy requires either lazrs or laszip to write .laz
    try:
        backends = laspy.LazBackend.detect_available()
        if not backends:
            raise RuntimeError
    except Exception:
        raise RuntimeError(
            "LAZ compression backend not found. Install one of: 'lazrs' (recommended) or 'laszip'."
        )


def make_scene(extent=300.0, spacing=0.5, seed=1):
    rng = np.random.default_rng(seed)
    x = np.arange(-extent / 2, extent / 2, spacing)
    X, Y = np.meshgrid(x, x)
    Z = 1.5 * np.sin(0.02 * X) * np.cos(0.03 * Y) + 0.4 * np.sin(0.07 * X + 0.3)
    ground = np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])
    keep = rng.random(len(ground)) < 0.35
    ground = ground[keep]

    # Box-shaped buildings scattered along the path
    walls = []
    for _ in range(40):
        cx, cy = rng.uniform(-extent / 2 + 10, extent / 2 - 10, size=2)
        w, d, h = rng.uniform(4.0, 12.0), rng.uniform(4.0, 12.0), rng.uniform(3.0, 10.0)
        n = int(60 * (w + d) * h / 10)
        u = rng.random(n)
        zs = rng.random(n) * h
        side = rng.integers(0, 4, size=n)
        xs = np.where(side < 2, cx - w / 2 + u * w, np.where(side == 2, cx - w / 2, cx + w / 2))
        ys = np.where(side >= 2, cy - d / 2 + u * d, np.where(side == 0, cy - d / 2, cy + d / 2))
        walls.append(np.column_stack([xs, ys, zs]))

    points = np.vstack([ground] + walls)
    classes = np.concatenate(
        [np.full(len(ground), 2, dtype=np.uint8)]
        + [np.full(len(w), 6, dtype=np.uint8) for w in walls]
    )
    return points, classes


def sensor_poses(n_frames: int, step: float = 2.0, curvature_deg: float = 0.8):
    """World poses of the sensor (4x4, sensor -> world)."""
    poses = []
    heading = 0.0
    position = np.array([-n_frames * step / 2.0, 0.0, 2.0])
    for _ in range(n_frames):
        R = np.array(
            [
                [math.cos(heading), -math.sin(heading), 0.0],
                [math.sin(heading), math.cos(heading), 0.0],
                [0.0, 0.0, 1.0],
            ]
        )
        poses.append(rigid_from_rt(R, position.copy()))
        position = position + step * np.array([math.cos(heading), math.sin(heading), 0.0])
        heading += math.radians(curvature_deg)
    return poses


def write_frame(path: Path, points: np.ndarray, classification: np.ndarray):
    ensure_laz_writing_possible()
    path.parent.mkdir(parents=True, exist_ok=True)
    hdr = laspy.LasHeader(point_format=6, version="1.4")
    hdr.offsets = points.min(axis=0)
    hdr.scales = np.array([0.001, 0.001, 0.001])
    las = laspy.LasData(hdr)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]
    las.classification = classification
    las.write(str(path))


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic frame sequence")
    parser.add_argument("--out-dir", type=str, default=None, help="Output directory")
    parser.add_argument("--frames", type=int, default=41, help="Number of frames")
    parser.add_argument("--range", dest="max_range", type=float, default=40.0, help="Sensor range (m)")
    parser.add_argument("--noise", type=float, default=0.02, help="Per-point noise sigma (m)")
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    out_dir = Path(args.out_dir) if args.out_dir else Path(__file__).parent.parent / "data" / "synthetic_frames"
    rng = np.random.default_rng(args.seed)

    scene, classes = make_scene(seed=args.seed)
    poses = sensor_poses(args.frames)
    anchor_inv = invert(poses[0])

    ground_truth = []
    for i, pose in enumerate(poses):
        dist = np.linalg.norm(scene[:, :2] - pose[:2, 3], axis=1)
        sel = dist <= args.max_range
        world = scene[sel]
        world_to_sensor = invert(pose)
        local = world @ world_to_sensor[:3, :3].T + world_to_sensor[:3, 3]
        local += rng.normal(scale=args.noise, size=local.shape)
        write_frame(out_dir / f"frame_{i:06d}.laz", local, classes[sel])
        ground_truth.append(anchor_inv @ pose)
        print(f"frame {i:3d}: {len(local):,} points")

    save_transform_chain(ground_truth, str(out_dir / "ground_truth.txt"))
    print(f"Wrote {len(poses)} frames to {out_dir}")


if __name__ == "__main__":
    main()
