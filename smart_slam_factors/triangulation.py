"""Landmark triangulation with the safety checks the smart factor relies on.

A linear (DLT) solve over every finite measurement channel, optionally
refined by Gauss-Newton on the reprojection error. Failures are reported as a
TriangulationResult status rather than raised, so one bad landmark never
aborts a whole linearization pass.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .cameras import depth_in, translation_of
from .models import (
    CheiralityError,
    TriangulationParameters,
    TriangulationResult,
    TriangulationStatus,
)

logger = logging.getLogger("smart_slam.triangulation")


def triangulate_dlt(rays: Sequence[Tuple[np.ndarray, np.ndarray]],
                    rank_tolerance: float) -> Optional[np.ndarray]:
    """Homogeneous least-squares point from (P, pixel) pairs; None when underconstrained."""
    A = np.empty((2 * len(rays), 4))
    for i, (P, uv) in enumerate(rays):
        A[2 * i] = uv[0] * P[2] - P[0]
        A[2 * i + 1] = uv[1] * P[2] - P[1]
    _, s, vt = np.linalg.svd(A)
    rank = int(np.sum(s > rank_tolerance))
    if rank < 3:
        logger.debug("DLT rank %d below 3 (singular values %s)", rank, s)
        return None
    X = vt[-1]
    if abs(X[3]) <= 1e-12 * np.linalg.norm(X):
        return None
    return X[:3] / X[3]


def _residuals(camera_model, cameras, measurements, point):
    """Stacked reprojection residuals and point Jacobian over finite channels."""
    res: List[np.ndarray] = []
    jac: List[np.ndarray] = []
    for (pose, K), measured in zip(cameras, measurements):
        z = camera_model.measurement_vector(measured)
        predicted, _, d_point = camera_model.project(pose, K, point)
        mask = np.isfinite(z)
        res.append((predicted - z)[mask])
        jac.append(d_point[mask])
    return np.concatenate(res), np.vstack(jac)


def refine(camera_model, cameras, measurements, point: np.ndarray,
           params: TriangulationParameters) -> np.ndarray:
    """Gauss-Newton refinement of `point`; raises CheiralityError if it crosses a camera plane."""
    point = np.array(point, dtype=float)
    for _ in range(max(int(params.max_iterations), 0)):
        r, J = _residuals(camera_model, cameras, measurements, point)
        step, *_ = np.linalg.lstsq(J, -r, rcond=None)
        point = point + step
        if np.linalg.norm(step) <= params.refinement_tolerance * max(1.0, np.linalg.norm(point)):
            break
    return point


def in_front_of_all(cameras, point) -> bool:
    for pose, _ in cameras:
        if depth_in(pose, point) <= 0.0:
            return False
    return True


def max_reprojection_error(camera_model, cameras, measurements, point) -> float:
    worst = 0.0
    for (pose, K), measured in zip(cameras, measurements):
        z = camera_model.measurement_vector(measured)
        predicted, _, _ = camera_model.project(pose, K, point)
        mask = np.isfinite(z)
        worst = max(worst, float(np.linalg.norm((predicted - z)[mask])))
    return worst


def triangulate_safe(camera_model, cameras: Sequence[Tuple[object, object]],
                     measurements: Sequence[object],
                     params: Optional[TriangulationParameters] = None) -> TriangulationResult:
    """Triangulate one landmark from (camera pose, calibration) pairs and measurements."""
    params = params or TriangulationParameters()
    if len(cameras) != len(measurements):
        raise ValueError(f"{len(cameras)} cameras but {len(measurements)} measurements")

    rays = []
    for (pose, K), measured in zip(cameras, measurements):
        rays.extend(camera_model.rays(pose, K, measured))
    if len(rays) < 2:
        return TriangulationResult.degenerate()

    point = triangulate_dlt(rays, params.rank_tolerance)
    if point is None:
        return TriangulationResult.degenerate()

    if not in_front_of_all(cameras, point):
        return TriangulationResult(TriangulationStatus.BEHIND_CAMERA)

    if params.enable_epi:
        try:
            point = refine(camera_model, cameras, measurements, point, params)
        except CheiralityError:
            return TriangulationResult(TriangulationStatus.BEHIND_CAMERA)
        except np.linalg.LinAlgError:
            return TriangulationResult.degenerate()
        if not in_front_of_all(cameras, point):
            return TriangulationResult(TriangulationStatus.BEHIND_CAMERA)

    if params.landmark_distance_threshold > 0:
        for pose, _ in cameras:
            if np.linalg.norm(translation_of(pose) - point) > params.landmark_distance_threshold:
                return TriangulationResult(TriangulationStatus.FAR_POINT)

    if params.dynamic_outlier_rejection_threshold > 0:
        try:
            worst = max_reprojection_error(camera_model, cameras, measurements, point)
        except CheiralityError:
            return TriangulationResult(TriangulationStatus.BEHIND_CAMERA)
        if worst > params.dynamic_outlier_rejection_threshold:
            return TriangulationResult(TriangulationStatus.OUTLIER)

    return TriangulationResult(TriangulationStatus.VALID, point)
