"""
Coarse Registration Methods

Provides coarse alignment between consecutive frames, used to seed the
ICP refinement stage.

Methods implemented:
- centroid: translation-only alignment by centroids
- pca: rigid alignment by principal axes (3D), then centroid translation
- open3d_fpfh: optional global feature-based RANSAC via Open3D (if installed)
- none: identity (frames are assumed to be pre-aligned)

CoarseAligner chains these pairwise estimates over a frame sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .sequential import SequentialAligner
from ..utils.logging import setup_logger, redirect_stdout_stderr_to_logger
from ..utils.transforms import apply_transform, compose, rigid_from_rt

logger = setup_logger(__name__)


@dataclass
class CoarseRegistration:
    method: str = "pca"  # centroid | pca | open3d_fpfh | none
    voxel_size: float = 0.5

    def compute_initial_transform(self, source: np.ndarray, target: np.ndarray) -> np.ndarray:
        """
        Compute a coarse transform aligning source -> target.

        Args:
            source: Nx3 array
            target: Mx3 array

        Returns:
            4x4 transform matrix
        """
        method = self.method.lower()
        if method == "none":
            return np.eye(4)

        if source.size == 0 or target.size == 0:
            logger.warning("CoarseRegistration: empty inputs; returning identity transform.")
            return np.eye(4)

        if method == "centroid":
            return self._centroid_transform(source, target)
        if method == "pca":
            return self._validate_or_fallback(source, target, self._pca_transform(source, target))
        if method == "open3d_fpfh":
            try:
                T = self._open3d_fpfh_transform(source, target, voxel=self.voxel_size)
            except Exception as e:
                logger.warning(f"Open3D FPFH coarse registration failed: {e}; falling back to PCA.")
                T = self._pca_transform(source, target)
            return self._validate_or_fallback(source, target, T)

        logger.warning(f"Unknown coarse registration method '{self.method}', using identity.")
        return np.eye(4)

    # ------------------------ Methods ------------------------
    def _centroid_transform(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        T = np.eye(4)
        T[:3, 3] = np.mean(dst, axis=0) - np.mean(src, axis=0)
        return T

    def _pca_transform(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        c_src = np.mean(src, axis=0)
        c_dst = np.mean(dst, axis=0)
        A = src - c_src
        B = dst - c_dst

        # Regularize degenerate (planar / linear) frames
        C_A = (A.T @ A) / max(1, len(A)) + 1e-12 * np.eye(3)
        C_B = (B.T @ B) / max(1, len(B)) + 1e-12 * np.eye(3)

        wA, VA = np.linalg.eigh(C_A)
        wB, VB = np.linalg.eigh(C_B)
        VA = VA[:, np.argsort(wA)[::-1]]
        VB = VB[:, np.argsort(wB)[::-1]]

        # Consecutive frames differ by small motions: orient each target axis
        # like its source axis to avoid 180 degree flips
        signs = np.sign(np.sum(VA * VB, axis=0))
        signs[signs == 0] = 1.0
        VB = VB * signs

        R = VB @ VA.T
        if np.linalg.det(R) < 0:
            VB[:, -1] *= -1
            R = VB @ VA.T

        return rigid_from_rt(R, c_dst - R @ c_src)

    def _open3d_fpfh_transform(self, src: np.ndarray, dst: np.ndarray, *, voxel: float = 0.5) -> np.ndarray:
        try:
            import open3d as o3d  # type: ignore
        except Exception as e:
            raise ImportError("Open3D is required for open3d_fpfh coarse registration") from e

        def to_pcd(points: np.ndarray) -> "o3d.geometry.PointCloud":
            pcd = o3d.geometry.PointCloud()
            pcd.points = o3d.utility.Vector3dVector(points.astype(np.float64))
            if voxel and voxel > 0:
                pcd = pcd.voxel_down_sample(voxel)
            pcd.estimate_normals(o3d.geometry.KDTreeSearchParamHybrid(radius=voxel * 2.0, max_nn=30))
            return pcd

        def fpfh(pcd):
            return o3d.pipelines.registration.compute_fpfh_feature(
                pcd, o3d.geometry.KDTreeSearchParamHybrid(radius=voxel * 5.0, max_nn=100)
            )

        reg = o3d.pipelines.registration
        distance_threshold = voxel * 1.5
        with redirect_stdout_stderr_to_logger(logger):
            src_pcd = to_pcd(src)
            dst_pcd = to_pcd(dst)
            result = reg.registration_ransac_based_on_feature_matching(
                src_pcd,
                dst_pcd,
                fpfh(src_pcd),
                fpfh(dst_pcd),
                mutual_filter=True,
                max_correspondence_distance=distance_threshold,
                estimation_method=reg.TransformationEstimationPointToPoint(False),
                ransac_n=4,
                checkers=[
                    reg.CorrespondenceCheckerBasedOnEdgeLength(0.9),
                    reg.CorrespondenceCheckerBasedOnDistance(distance_threshold),
                ],
                criteria=reg.RANSACConvergenceCriteria(50000, 1000),
            )
        return np.asarray(result.transformation, dtype=float)

    # ------------------------ Helpers ------------------------
    def _validate_or_fallback(self, src: np.ndarray, dst: np.ndarray, T: np.ndarray, *, threshold: float = 1.1) -> np.ndarray:
        """Fall back to the centroid transform if the candidate scores clearly worse."""
        rmse_T = score_rmse(src, dst, T)
        T_cent = self._centroid_transform(src, dst)
        rmse_C = score_rmse(src, dst, T_cent)
        if not np.isfinite(rmse_T) or rmse_T > threshold * rmse_C:
            logger.debug(
                "CoarseRegistration: candidate transform worse than centroid (rmse %.3f vs %.3f). Using centroid.",
                rmse_T, rmse_C,
            )
            return T_cent
        return T


def score_rmse(src: np.ndarray, dst: np.ndarray, T: np.ndarray, *, max_pairs: int = 3000) -> float:
    """Nearest-neighbor RMSE of ``T(src)`` against ``dst`` on a seeded subsample."""
    if src.size == 0 or dst.size == 0:
        return float("inf")
    rng = np.random.default_rng(0)
    idx = rng.choice(len(src), max_pairs, replace=False) if len(src) > max_pairs else np.arange(len(src))
    moved = apply_transform(src[idx], T)
    nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(dst)
    d, _ = nn.kneighbors(moved)
    return float(np.sqrt(np.mean(d.reshape(-1) ** 2)))


class CoarseAligner(SequentialAligner):
    """
    Coarse stage: chain CoarseRegistration estimates between consecutive
    frames' keypoints.

    Each frame is first predicted at its predecessor's pose, then moved by
    the coarse delta: ``T[i] = delta @ T[i-1]``. Fitness is the keypoint
    NN RMSE against the placed predecessor after the delta.
    """

    name = "coarse"

    def __init__(
        self,
        registration: Optional[CoarseRegistration] = None,
        keypoint_voxel_size: float = 0.5,
        max_keypoints: Optional[int] = 5000,
        max_correspondence_distance: float = 1.0,
    ):
        super().__init__(keypoint_voxel_size, max_keypoints, max_correspondence_distance)
        self.registration = registration or CoarseRegistration()

    def _register_pair(
        self,
        source_keypoints: np.ndarray,
        target_points: np.ndarray,
        target_keypoints: np.ndarray,
        initial: np.ndarray,
    ) -> Tuple[np.ndarray, float]:
        predicted = apply_transform(source_keypoints, initial)
        target = target_keypoints if len(target_keypoints) else target_points
        delta = self.registration.compute_initial_transform(predicted, target)
        return compose(delta, initial), score_rmse(predicted, target_points, delta)
