"""
Loop registration workflow for a directory of LAS/LAZ frames.

Selects edge frames, aligns them globally, registers every loop with
loop-closure correction and writes the resulting transform chain (and
optionally all registered frames merged into one LAZ file).
"""

import sys
import argparse
import logging
import time
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from loop_registration.frames.source import LasFrameSource
from loop_registration.registration import LoopRegistrationPipeline
from loop_registration.utils.config import load_config, AppConfig
from loop_registration.utils.export import export_registered_frames_to_laz, save_transform_chain
from loop_registration.utils.logging import configure_package_logging, setup_logger


def main():
    """
    Main function to run the loop registration workflow.
    """
    parser = argparse.ArgumentParser(description="Loop-based point cloud registration")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--frames-dir", type=str, default=None, help="Directory with one LAS/LAZ file per frame")
    parser.add_argument("--read-from", type=int, default=None, help="First frame index")
    parser.add_argument("--read-to", type=int, default=None, help="Last frame index usable as an edge")
    parser.add_argument("--read-step", type=int, default=None, help="Stride between frames")
    parser.add_argument("--loop-size", type=int, default=None, help="Frames per loop (number of edges with --edge-balancing)")
    parser.add_argument(
        "--edge-balancing",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Place edges by accumulated motion instead of a fixed stride",
    )
    parser.add_argument(
        "--loop-closure",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run global and local loop-closure correction",
    )
    parser.add_argument("--output-dir", type=str, default=None, help="Directory for results")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed for per-frame subsampling to make runs reproducible.",
    )
    args = parser.parse_args()

    # Load configuration and apply CLI overrides
    cfg: AppConfig = load_config(args.config)
    if args.frames_dir:
        cfg.paths.frames_dir = args.frames_dir
    if args.output_dir:
        cfg.paths.output_dir = args.output_dir
    if args.read_from is not None:
        cfg.read.read_from = args.read_from
    if args.read_to is not None:
        cfg.read.read_to = args.read_to
    if args.read_step is not None:
        cfg.read.read_step = args.read_step
    if args.loop_size is not None:
        cfg.registration.loop_size = args.loop_size
    if args.edge_balancing is not None:
        cfg.registration.edge_balancing = args.edge_balancing
    if args.loop_closure is not None:
        cfg.registration.loop_closure = args.loop_closure
    if args.seed is not None:
        cfg.filters.seed = args.seed
    # Re-validate after overrides
    cfg = AppConfig.model_validate(cfg.model_dump())

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger(__name__, level=log_level, log_file=cfg.logging.file)
    configure_package_logging(log_level, cfg.logging.file)

    logger.info("Loop Registration Workflow")
    logger.info("==========================")
    logger.info(
        f"Frames {cfg.read.read_from}..{cfg.read.read_to} step {cfg.read.read_step}, "
        f"loop size {cfg.registration.loop_size}, "
        f"balancing {'on' if cfg.registration.edge_balancing else 'off'}, "
        f"loop closure {'on' if cfg.registration.loop_closure else 'off'}"
    )

    frames_dir = Path(cfg.paths.frames_dir)
    if not frames_dir.exists():
        logger.error(f"Frame directory {frames_dir} does not exist.")
        return 1

    output_dir = Path(cfg.paths.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    source = LasFrameSource(frames_dir, cfg.paths.frame_pattern)
    pipeline = LoopRegistrationPipeline.from_config(cfg, source)

    start = time.time()
    result = pipeline.run()

    chain_path = save_transform_chain(
        result.transforms,
        str(output_dir / cfg.output.transforms_file),
        frame_indices=result.frame_indices,
    )
    logger.info(f"Transform chain: {chain_path}")

    if cfg.output.export_laz:
        laz_path = export_registered_frames_to_laz(
            source,
            result.transforms,
            result.frame_indices,
            str(output_dir / cfg.output.laz_file),
            max_points_per_frame=cfg.filters.max_points,
            seed=cfg.filters.seed,
        )
        logger.info(f"Registered frames: {laz_path}")

    logger.info(f"Workflow finished in {time.time() - start:.1f} s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
