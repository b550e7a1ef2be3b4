"""
ICP Registration Implementation

This module implements the Iterative Closest Point (ICP) algorithm used
for the refinement stage, and RefinementAligner which chains it over a
frame sequence.
"""

from typing import Optional, Tuple
import time

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .sequential import SequentialAligner
from ..utils.logging import setup_logger
from ..utils.transforms import apply_transform, estimate_rigid_transform, transform_magnitude

logger = setup_logger(__name__)


class ICPRegistration:
    """
    Point-to-point ICP.

    The algorithm iteratively:
    1. Finds closest point correspondences
    2. Estimates optimal transformation (rotation + translation)
    3. Applies transformation to source points
    4. Repeats until convergence
    """

    def __init__(
        self,
        max_iterations: int = 50,
        tolerance: float = 1e-6,
        max_correspondence_distance: float = 1.0,
        convergence_translation_epsilon: float = 1e-4,
        convergence_rotation_epsilon_deg: float = 0.1,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            tolerance: Convergence tolerance on change in mean squared error.
            max_correspondence_distance: Maximum distance for point correspondences.
            convergence_translation_epsilon: Minimum translation step (meters) below
                which the algorithm is considered converged.
            convergence_rotation_epsilon_deg: Minimum rotation step (degrees) below
                which the algorithm is considered converged.
        """
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_correspondence_distance = max_correspondence_distance
        self.convergence_translation_epsilon = convergence_translation_epsilon
        self.convergence_rotation_epsilon_rad = np.deg2rad(convergence_rotation_epsilon_deg)

    def align_point_clouds(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_transform: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3).
            initial_transform: Initial transformation matrix (4 x 4) or None.

        Returns:
            Tuple of (aligned_source_points, transformation_matrix, final_error).
        """
        transform = np.eye(4) if initial_transform is None else np.array(initial_transform, dtype=float)

        if len(source) == 0 or len(target) == 0:
            logger.warning(
                "ICP called with empty source or target (source=%d, target=%d); "
                "returning initial transform and infinite error.",
                len(source),
                len(target),
            )
            return apply_transform(source, transform), transform, float("inf")

        logger.debug("Starting ICP with %d source and %d target points.", len(source), len(target))

        # The target does not move: build its KD-tree once
        nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        current_source = apply_transform(source, transform)
        previous_error = float("inf")
        icp_start = time.time()
        n_iterations = 0

        for iteration in range(self.max_iterations):
            correspondences, distances = self.find_correspondences(current_source, nbrs=nbrs)

            valid_mask = distances < self.max_correspondence_distance
            if np.sum(valid_mask) < 3:
                logger.warning("Not enough valid correspondences found. Stopping ICP.")
                break

            delta_transform = estimate_rigid_transform(
                current_source[valid_mask], target[correspondences[valid_mask]]
            )
            transform = delta_transform @ transform

            # Re-transform the original source to avoid compounding round-off
            current_source = apply_transform(source, transform)

            current_error = float(np.mean(distances[valid_mask] ** 2))
            trans_step, rot_step = transform_magnitude(delta_transform)
            n_iterations = iteration + 1

            logger.debug(
                "Iteration %d: MSE=%.6f, |dt|=%.6e m, dtheta=%.6e rad",
                n_iterations,
                current_error,
                trans_step,
                rot_step,
            )

            if abs(previous_error - current_error) < self.tolerance:
                break
            if (
                trans_step < self.convergence_translation_epsilon
                and rot_step < self.convergence_rotation_epsilon_rad
            ):
                break
            previous_error = current_error
        else:
            logger.debug("ICP did not converge after %d iterations.", self.max_iterations)

        final_error = self.compute_registration_error(current_source, target, nbrs)
        logger.debug(
            "ICP finished in %.4f s (%d iterations). Final RMSE: %.6f",
            time.time() - icp_start,
            n_iterations,
            final_error,
        )
        return current_source, transform, final_error

    def find_correspondences(
        self,
        source: np.ndarray,
        target: Optional[np.ndarray] = None,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find closest point correspondences between source and target.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3). Only used if `nbrs` is None.
            nbrs: Optional pre-built NearestNeighbors instance for the target.

        Returns:
            Tuple of (correspondence_indices, distances).
        """
        if nbrs is None:
            if target is None:
                raise ValueError("Either 'target' or a pre-built 'nbrs' must be provided.")
            nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        distances, indices = nbrs.kneighbors(source)
        return indices.ravel(), distances.ravel()

    def compute_registration_error(
        self,
        source: np.ndarray,
        target: np.ndarray,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> float:
        """
        Compute the registration error (RMSE) between aligned source and target point clouds.

        Only correspondences within ``max_correspondence_distance`` count.
        Returns inf when there are none.
        """
        if source.size == 0 or target.size == 0:
            return float("inf")
        _, distances = self.find_correspondences(source, target, nbrs)
        valid_mask = distances < self.max_correspondence_distance
        if np.sum(valid_mask) == 0:
            logger.warning("No valid correspondences found for error computation.")
            return float("inf")
        return float(np.sqrt(np.mean(distances[valid_mask] ** 2)))


class RefinementAligner(SequentialAligner):
    """
    Refinement stage: ICP of each frame's keypoints onto the full points of
    the placed predecessor, starting from the predecessor's transform.

    Seed keypoints (normally the coarse stage's output) are used as the ICP
    source; fitness is the final ICP RMSE.
    """

    name = "refinement"

    def __init__(
        self,
        icp: Optional[ICPRegistration] = None,
        keypoint_voxel_size: float = 0.5,
        max_keypoints: Optional[int] = 5000,
        max_correspondence_distance: float = 1.0,
    ):
        super().__init__(keypoint_voxel_size, max_keypoints, max_correspondence_distance)
        self.icp = icp or ICPRegistration()

    def _register_pair(
        self,
        source_keypoints: np.ndarray,
        target_points: np.ndarray,
        target_keypoints: np.ndarray,
        initial: np.ndarray,
    ) -> Tuple[np.ndarray, float]:
        _, transform, error = self.icp.align_point_clouds(
            source=source_keypoints,
            target=target_points,
            initial_transform=initial,
        )
        return transform, error
