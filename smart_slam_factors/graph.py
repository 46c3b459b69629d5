from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Hashable, Iterable, List, Optional, Union

import numpy as np

try:
    import gtsam
except Exception:
    gtsam = None

from .cameras import STEREO
from .factor import SmartProjectionFactorPP
from .linear import HessianFactor
from .models import PosePrior, SmartProjectionParams

logger = logging.getLogger("smart_slam.graph")


def format_key(key: Union[int, str]) -> str:
    """Render gtsam symbol keys as 'x3'; anything else via str()."""
    if gtsam is not None and isinstance(key, int):
        try:
            return gtsam.Symbol(key).string()
        except Exception:
            return str(key)
    return str(key)


def linearize_prior(prior: PosePrior, values) -> HessianFactor:
    """Gaussian factor of a pose prior.

    The Jacobian of the local-coordinates error is taken as identity, exact
    at the prior mean and first-order accurate around it.
    """
    pose = values.atPose3(prior.key)
    e = np.asarray(gtsam.Pose3.Logmap(prior.pose.between(pose)), dtype=float)
    info = np.diag(1.0 / np.asarray(prior.sigmas, dtype=float) ** 2)
    return HessianFactor.from_blocks([prior.key], info, -info @ e, float(e @ info @ e), dims=[6])


def prior_error(prior: PosePrior, values) -> float:
    pose = values.atPose3(prior.key)
    e = np.asarray(gtsam.Pose3.Logmap(prior.pose.between(pose)), dtype=float) / np.asarray(prior.sigmas)
    return 0.5 * float(e @ e)


def linearize_factors(factors: Iterable[SmartProjectionFactorPP], values, lambda_: float = 0.0,
                      workers: int = 1) -> List[HessianFactor]:
    """Linearize independent smart factors, optionally on a thread pool.

    Each linearization only reads `values`; the caller must not mutate it
    while this runs.
    """
    factors = list(factors)
    if workers <= 1 or len(factors) < 2:
        return [f.linearize_damped(values, lambda_) for f in factors]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda f: f.linearize_damped(values, lambda_), factors))


class GraphBuilder:
    """Collects smart factors, pose priors and the initial estimate.

    Smart factors are keyed by landmark id so observations can arrive in any
    order; every body pose and extrinsic is a gtsam.Pose3 in `initial`.
    """

    def __init__(self, noise_model, params: Optional[SmartProjectionParams] = None,
                 camera_model=STEREO):
        if gtsam is None:
            raise RuntimeError("GTSAM not available; cannot build graph")
        self.noise_model = noise_model
        self.params = params or SmartProjectionParams()
        self.camera_model = camera_model
        self.initial = gtsam.Values()
        self.smart_factors: Dict[Hashable, SmartProjectionFactorPP] = {}
        self.priors: List[PosePrior] = []
        self.counts = Counter()

    def ensure_init(self, key: int, pose) -> None:
        """Insert `pose` for `key` unless the key already has a value."""
        if self.initial.exists(key):
            return
        self.initial.insert(key, pose)

    def add_observation(self, landmark_id: Hashable, measured, pose_key: int, extrinsic_key: int,
                        calibration) -> None:
        factor = self.smart_factors.get(landmark_id)
        if factor is None:
            factor = SmartProjectionFactorPP(self.noise_model, self.params, self.camera_model)
            self.smart_factors[landmark_id] = factor
            self.counts["smart"] += 1
        factor.add(measured, pose_key, extrinsic_key, calibration)
        self.counts["observations"] += 1

    def add_prior(self, key: int, pose, sigmas) -> None:
        self.priors.append(PosePrior(key, pose, np.asarray(sigmas, dtype=float)))
        self.counts["prior"] += 1

    def variable_keys(self) -> List[int]:
        return [int(k) for k in self.initial.keys()]

    def linearize(self, values, lambda_: float = 0.0, workers: int = 1) -> List[HessianFactor]:
        linear = linearize_factors(self.smart_factors.values(), values, lambda_, workers)
        degenerate = sum(1 for f in linear if f.degenerate)
        if degenerate:
            logger.debug("%d of %d smart factors degenerate at this estimate", degenerate, len(linear))
        linear.extend(linearize_prior(p, values) for p in self.priors)
        return linear

    def error(self, values) -> float:
        total = sum(f.error(values) for f in self.smart_factors.values())
        total += sum(prior_error(p, values) for p in self.priors)
        return float(total)

    def degenerate_landmarks(self, values) -> List[Hashable]:
        return [lid for lid, f in self.smart_factors.items() if not f.triangulate(values)]
