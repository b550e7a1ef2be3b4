"""
Loop registration pipeline.

Sequences the stages and threads the LoopSet through them as an explicit
value:

    EdgeSelector -> edge frames -> LoopSet (UNFILLED)
    GlobalEdgeAligner           -> LoopSet (EDGES_SET)
    LoopProcessor per loop      -> LoopSet (PROCESSED)
    transform chain             -> reconstruction consumer

The pipeline does no numerical work itself and never retries: any error
raised by a stage aborts the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional
import time

import numpy as np

from .edge_alignment import GlobalEdgeAligner
from .edges import EdgeBalancer, EdgeSelector, build_loop_set, centroid_distance
from .loop import LoopSet
from .loop_processor import LoopProcessor
from .parallel import LoopParallelExecutor
from ..alignment.coarse_registration import CoarseAligner, CoarseRegistration
from ..alignment.fine_registration import ICPRegistration, RefinementAligner
from ..correction.global_correction import GlobalLoopCorrection
from ..correction.local_correction import LocalLoopCorrection
from ..frames.filters import FrameFilter
from ..frames.source import FrameSource
from ..utils.config import AppConfig
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

TransformConsumer = Callable[[List[np.ndarray]], None]

BALANCING_METRICS = {
    "centroid": centroid_distance,
}


@dataclass
class RegistrationResult:
    loop_set: LoopSet
    edge_indices: List[int]
    transforms: List[np.ndarray]
    fitness_scores: List[float]
    frame_indices: List[int]

    def __len__(self) -> int:
        return len(self.transforms)


class LoopRegistrationPipeline:
    def __init__(
        self,
        source: FrameSource,
        selector: EdgeSelector,
        edge_aligner: GlobalEdgeAligner,
        processor: LoopProcessor,
        *,
        executor: Optional[LoopParallelExecutor] = None,
        consumer: Optional[TransformConsumer] = None,
    ):
        self.source = source
        self.selector = selector
        self.edge_aligner = edge_aligner
        self.processor = processor
        self.executor = executor or LoopParallelExecutor(n_workers=1)
        self.consumer = consumer

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        source: FrameSource,
        consumer: Optional[TransformConsumer] = None,
    ) -> "LoopRegistrationPipeline":
        """Build every stage from a typed configuration."""
        filters = cfg.filters
        frame_filter = FrameFilter(
            ground_only=filters.ground_only,
            classification_filter=filters.classification_filter,
            min_range=filters.min_range,
            max_range=filters.max_range,
            voxel_size=filters.voxel_size,
            max_points=filters.max_points,
            seed=filters.seed,
        )

        kp = cfg.keypoints
        align = cfg.alignment
        coarse = CoarseAligner(
            CoarseRegistration(method=align.coarse.method, voxel_size=align.coarse.voxel_size),
            keypoint_voxel_size=kp.voxel_size,
            max_keypoints=kp.max_keypoints,
            max_correspondence_distance=kp.max_correspondence_distance,
        )
        refine = RefinementAligner(
            ICPRegistration(
                max_iterations=align.max_iterations,
                tolerance=align.tolerance,
                max_correspondence_distance=align.max_correspondence_distance,
                convergence_translation_epsilon=align.convergence_translation_epsilon,
                convergence_rotation_epsilon_deg=align.convergence_rotation_epsilon_deg,
            ),
            keypoint_voxel_size=kp.voxel_size,
            max_keypoints=kp.max_keypoints,
            max_correspondence_distance=kp.max_correspondence_distance,
        )

        corr = cfg.correction
        reg = cfg.registration
        processor = LoopProcessor(
            source,
            coarse,
            refine,
            read_step=cfg.read.read_step,
            frame_filter=frame_filter,
            loop_closure=reg.loop_closure,
            global_corrector=GlobalLoopCorrection(
                max_correspondence_distance=corr.global_max_correspondence_distance,
            ),
            local_corrector=LocalLoopCorrection(
                max_iterations=corr.local_max_iterations,
                tolerance=corr.local_tolerance,
                max_correspondence_distance=corr.local_max_correspondence_distance,
            ),
        )

        selector = EdgeSelector(
            cfg.read.read_from,
            cfg.read.read_to,
            cfg.read.read_step,
            reg.loop_size,
            edge_balancing=reg.edge_balancing,
            balancer=EdgeBalancer(BALANCING_METRICS[reg.balancing_metric]),
        )
        n_workers = cfg.parallel.n_workers if cfg.parallel.enabled else 1

        return cls(
            source,
            selector,
            GlobalEdgeAligner(coarse, refine, frame_filter),
            processor,
            executor=LoopParallelExecutor(n_workers=n_workers),
            consumer=consumer,
        )

    def run(self) -> RegistrationResult:
        start = time.time()

        logger.info("=== STEP 1: Edge selection ===")
        edge_indices = self.selector.select(self.source)
        edge_frames = self.selector.collect_edge_frames(self.source, edge_indices)
        loop_set = build_loop_set(edge_indices, edge_frames)
        logger.info(f"{len(edge_indices)} edges, {len(loop_set)} loops: {edge_indices}")

        logger.info("=== STEP 2: Global edge alignment ===")
        loop_set = self.edge_aligner.align(loop_set, edge_frames)

        logger.info("=== STEP 3: Loop processing ===")
        loop_set = LoopSet(self.executor.map_loops(loop_set.loops, self.processor.process))

        logger.info("=== STEP 4: Transform chain ===")
        transforms = loop_set.transform_chain()
        result = RegistrationResult(
            loop_set=loop_set,
            edge_indices=edge_indices,
            transforms=transforms,
            fitness_scores=loop_set.fitness_scores(),
            frame_indices=loop_set.frame_indices(),
        )
        logger.info(
            f"Registered {len(transforms)} frames in {len(loop_set)} loops "
            f"in {time.time() - start:.1f} s"
        )

        if self.consumer is not None:
            self.consumer(transforms)
        return result
