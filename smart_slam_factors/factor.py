"""Smart projection factor over body poses and extrinsic camera poses.

Each view observes the same landmark from a camera mounted on a body:
world_P_cam = world_P_body * body_P_cam, with both poses being variables.
The landmark is triangulated from the current estimate at every
linearization and marginalized out, so the graph only ever sees camera
variables. Several views may share a body pose or an extrinsic.

Reference: L. Carlone, Z. Kira, C. Beall, V. Indelman, F. Dellaert,
"Eliminating conditionally independent sets in factor graphs: a unifying
perspective based on smart factors", ICRA 2014.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np

from .cameras import STEREO
from .jacobians import compute_jacobians, pose_at
from .linear import HessianFactor
from .models import (
    ConfigurationError,
    DegeneracyMode,
    LinearizationMode,
    SmartProjectionParams,
    TriangulationResult,
)
from .noise import noise_dimension, whiten_system, whitened_squared_norm
from .packing import pack_unique_keys
from .schur import POSE_DIM, compute_point_covariance, schur_complement
from .triangulation import triangulate_safe
from .views import ViewRegistry

logger = logging.getLogger("smart_slam.factor")

Linearizer = Callable[["SmartProjectionFactorPP", Any, float, Optional[bool]], HessianFactor]

_LINEARIZERS: Dict[LinearizationMode, Linearizer] = {}


def register_linearizer(mode: LinearizationMode, fn: Linearizer) -> None:
    """Install the construction strategy used by linearize_damped() for `mode`."""
    _LINEARIZERS[mode] = fn


class SmartProjectionFactorPP:
    """Marginalizes one landmark seen from (body pose, extrinsic pose) pairs.

    The camera model decides the measurement type: STEREO (gtsam.StereoPoint2
    with Cal3_S2Stereo) or PINHOLE (gtsam.Point2 with Cal3_S2).
    """

    def __init__(self, noise_model, params: Optional[SmartProjectionParams] = None,
                 camera_model=STEREO):
        self.params = params or SmartProjectionParams()
        if self.params.degeneracy_mode is DegeneracyMode.HANDLE_INFINITY:
            raise ConfigurationError(
                "HANDLE_INFINITY is not supported: this factor marginalizes a full 3D point")
        if self.params.linearization_mode not in _LINEARIZERS:
            raise ConfigurationError(f"Unknown linearization mode: {self.params.linearization_mode}")
        dim = noise_dimension(noise_model)
        if dim != camera_model.dim:
            raise ConfigurationError(
                f"Noise model has dimension {dim}, {camera_model.name} measurements have {camera_model.dim}")
        self.noise_model = noise_model
        self.camera_model = camera_model
        self._views = ViewRegistry(camera_model)

    # -- view registry -------------------------------------------------------

    def add(self, measured, pose_key: Hashable, extrinsic_key: Hashable, calibration) -> None:
        self._views.add(measured, pose_key, extrinsic_key, calibration)

    def add_batch(self, measurements: Sequence[Any], pose_keys: Sequence[Hashable],
                  extrinsic_keys: Sequence[Hashable], calibrations) -> None:
        self._views.add_batch(measurements, pose_keys, extrinsic_keys, calibrations)

    def keys(self) -> List[Hashable]:
        return self._views.keys()

    @property
    def views(self):
        return self._views.views

    @property
    def pose_keys(self) -> List[Hashable]:
        return [v.pose_key for v in self._views]

    @property
    def extrinsic_keys(self) -> List[Hashable]:
        return [v.extrinsic_key for v in self._views]

    @property
    def measured(self) -> List[Any]:
        return [v.measurement for v in self._views]

    @property
    def calibrations(self) -> List[Any]:
        return [v.calibration for v in self._views]

    def __len__(self) -> int:
        return len(self._views)

    # -- geometry ------------------------------------------------------------

    def cameras(self, values) -> List[Tuple[Any, Any]]:
        """(world_P_cam, calibration) for every view at the given estimate."""
        cams = []
        for view in self._views:
            body = pose_at(values, view.pose_key)
            extrinsic = pose_at(values, view.extrinsic_key)
            cams.append((body.compose(extrinsic), view.calibration))
        return cams

    def triangulate(self, values) -> TriangulationResult:
        return triangulate_safe(self.camera_model, self.cameras(values), self.measured,
                                self.params.triangulation)

    def point(self, values) -> Optional[np.ndarray]:
        result = self.triangulate(values)
        return result.point if result else None

    def compute_jacobians(self, values, point):
        return compute_jacobians(self.camera_model, self._views.views, values, point)

    # -- linearization -------------------------------------------------------

    def create_hessian_factor(self, values, lambda_: float = 0.0,
                              diagonal_damping: Optional[bool] = None) -> HessianFactor:
        if len(self._views) == 0:
            raise ConfigurationError("Cannot linearize a smart factor without views")
        if diagonal_damping is None:
            diagonal_damping = self.params.diagonal_damping
        keys = self.keys()

        result = self.triangulate(values)
        if not result:
            logger.debug("Triangulation %s over %d views; contributing a zero factor",
                         result.status.value, len(self._views))
            return HessianFactor.zeros(keys, POSE_DIM)

        f_blocks, E, b = self.compute_jacobians(values, result.point)
        f_blocks, E, b = whiten_system(self.noise_model, f_blocks, E, b, self.camera_model.dim)
        P = compute_point_covariance(E, lambda_, diagonal_damping)
        augmented = schur_complement(f_blocks, E, P, b)
        packed = pack_unique_keys(augmented, self._views.nonunique_keys(), keys)
        return HessianFactor(keys, packed)

    def linearize_damped(self, values, lambda_: float = 0.0) -> HessianFactor:
        strategy = _LINEARIZERS.get(self.params.linearization_mode)
        if strategy is None:
            raise ConfigurationError(f"Unknown linearization mode: {self.params.linearization_mode}")
        return strategy(self, values, lambda_, None)

    def linearize(self, values) -> HessianFactor:
        return self.linearize_damped(values, 0.0)

    # -- error ---------------------------------------------------------------

    def error(self, values) -> float:
        """0.5 * sum of squared whitened reprojection errors; 0 when degenerate."""
        result = self.triangulate(values)
        if not result:
            return 0.0
        total = 0.0
        for (camera_pose, K), view in zip(self.cameras(values), self._views):
            predicted, _, _ = self.camera_model.project(camera_pose, K, result.point)
            residual = predicted - self.camera_model.measurement_vector(view.measurement)
            residual[np.isnan(residual)] = 0.0
            total += whitened_squared_norm(self.noise_model, residual)
        return 0.5 * total

    def equals(self, other: "SmartProjectionFactorPP", tol: float = 1e-9) -> bool:
        if not isinstance(other, SmartProjectionFactorPP):
            return False
        if self.camera_model.name != other.camera_model.name or self.params != other.params:
            return False
        if len(self) != len(other) or self.keys() != other.keys():
            return False
        for a, b in zip(self._views, other._views):
            if a.pose_key != b.pose_key or a.extrinsic_key != b.extrinsic_key:
                return False
            za = self.camera_model.measurement_vector(a.measurement)
            zb = other.camera_model.measurement_vector(b.measurement)
            if not np.allclose(za, zb, atol=tol, equal_nan=True):
                return False
            if a.calibration is not b.calibration and not a.calibration.equals(b.calibration, tol):
                return False
        return True

    def __repr__(self) -> str:
        return (f"SmartProjectionFactorPP({self.camera_model.name}, views={len(self)}, "
                f"keys={len(self.keys())})")


register_linearizer(
    LinearizationMode.HESSIAN,
    lambda factor, values, lambda_, diagonal_damping:
        factor.create_hessian_factor(values, lambda_, diagonal_damping),
)
