from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

import numpy as np

try:
    import gtsam
except Exception:
    gtsam = None

from .cameras import translation_of
from .graph import GraphBuilder
from .linear import HessianFactor

if TYPE_CHECKING:
    from smart_slam_common.kpi_logging import KPILogger

logger = logging.getLogger("smart_slam.optimize")


@dataclass
class OptimizerConfig:
    max_iterations: int = 50
    lambda_initial: float = 1e-3
    lambda_factor: float = 10.0
    lambda_upper_bound: float = 1e5
    relative_error_tol: float = 1e-5
    absolute_error_tol: float = 1e-5
    diagonal_damping: bool = False
    damp_landmarks: bool = True  # hand the current lambda to the smart factors
    workers: int = 1


@dataclass
class OptimizationSummary:
    initial_error: float
    final_error: float
    iterations: int
    final_lambda: float
    errors: List[float] = field(default_factory=list)


def assemble_normal_equations(linear_factors: Sequence[HessianFactor],
                              ordering: Sequence[int]) -> Tuple[np.ndarray, np.ndarray, float]:
    """Sum dense H, g, f of all factors over `ordering` (6 columns per key)."""
    index = {key: k for k, key in enumerate(ordering)}
    n = 6 * len(ordering)
    H = np.zeros((n, n))
    g = np.zeros(n)
    f = 0.0
    for factor in linear_factors:
        cols = np.concatenate([np.arange(6 * index[k], 6 * index[k] + 6) for k in factor.keys()])
        H[np.ix_(cols, cols)] += factor.information()
        g[cols] += factor.linear_term()
        f += factor.constant_term()
    return H, g, f


def retract(values, ordering: Sequence[int], delta: np.ndarray):
    out = gtsam.Values()
    for k, key in enumerate(ordering):
        pose = values.atPose3(key)
        out.insert(key, pose.compose(gtsam.Pose3.Expmap(delta[6 * k: 6 * k + 6])))
    return out


def optimize_lm(graph: GraphBuilder,
                initial: Optional["gtsam.Values"] = None,
                config: Optional[OptimizerConfig] = None,
                kpi: Optional["KPILogger"] = None) -> Tuple["gtsam.Values", OptimizationSummary]:
    """Levenberg-Marquardt over body poses and extrinsics with smart factors."""
    if gtsam is None:
        raise RuntimeError("GTSAM not available; cannot optimize")
    cfg = config or OptimizerConfig()
    values = initial if initial is not None else graph.initial
    ordering = graph.variable_keys()
    error = graph.error(values)
    summary = OptimizationSummary(initial_error=error, final_error=error, iterations=0,
                                  final_lambda=cfg.lambda_initial, errors=[error])
    lam = cfg.lambda_initial
    logger.info("LM start: %d variables, %d smart factors, error %.6g",
                len(ordering), len(graph.smart_factors), error)

    for iteration in range(1, cfg.max_iterations + 1):
        if kpi:
            kpi.optimization_start(iteration, len(graph.smart_factors) + len(graph.priors), len(ordering))
        start = time.perf_counter()
        linear = graph.linearize(values, lam if cfg.damp_landmarks else 0.0, cfg.workers)
        if kpi:
            kpi.linearization(iteration, len(linear), sum(1 for f in linear if f.degenerate),
                              time.perf_counter() - start)
        H, g, _ = assemble_normal_equations(linear, ordering)

        accepted = False
        while lam <= cfg.lambda_upper_bound:
            damping = np.diag(np.diag(H)) if cfg.diagonal_damping else np.eye(H.shape[0])
            try:
                delta = np.linalg.solve(H + lam * damping, g)
            except np.linalg.LinAlgError:
                lam *= cfg.lambda_factor
                continue
            candidate = retract(values, ordering, delta)
            new_error = graph.error(candidate)
            if new_error < error:
                values = candidate
                accepted = True
                lam = max(lam / cfg.lambda_factor, 1e-12)
                break
            lam *= cfg.lambda_factor

        duration = time.perf_counter() - start
        if not accepted:
            logger.info("LM stopped at iteration %d: no step decreased the error (lambda %.3g)",
                        iteration, lam)
            if kpi:
                kpi.optimization_end(iteration, duration, updated_keys=0, error=error, lambda_=lam)
            break

        decrease = error - new_error
        logger.info("LM iteration %d: error %.6g -> %.6g (lambda %.3g)", iteration, error, new_error, lam)
        error = new_error
        summary.errors.append(error)
        summary.iterations = iteration
        if kpi:
            kpi.optimization_end(iteration, duration, updated_keys=len(ordering), error=error, lambda_=lam,
                                 max_step=float(np.max(np.abs(delta))))
        if decrease < cfg.absolute_error_tol or decrease < cfg.relative_error_tol * max(error, 1e-300):
            break

    summary.final_error = error
    summary.final_lambda = lam
    return values, summary


def pose_errors(values, ground_truth: Dict[int, "gtsam.Pose3"]) -> Dict[int, Tuple[float, float]]:
    """(translation error, rotation angle error) per key present in both."""
    out = {}
    for key, truth in ground_truth.items():
        if not values.exists(key):
            continue
        rel = truth.between(values.atPose3(key))
        omega = np.asarray(gtsam.Rot3.Logmap(rel.rotation()), dtype=float)
        out[key] = (float(np.linalg.norm(translation_of(rel))), float(np.linalg.norm(omega)))
    return out
