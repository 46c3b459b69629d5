"""Synthetic stereo-rig scenes for demos and tests.

Body poses sit on a circle around a cube of landmarks, each looking at the
centre; one or more cameras are mounted on the body through extrinsic poses.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

try:
    import gtsam
except Exception:
    gtsam = None

from .cameras import STEREO, look_at, make_pose
from .graph import GraphBuilder
from .models import CheiralityError, SmartProjectionParams
from .noise import isotropic


@dataclass
class ScenarioConfig:
    n_poses: int = 10
    radius: float = 30.0
    height: float = 0.0
    cube_half_size: float = 10.0
    fx: float = 500.0
    fy: float = 500.0
    px: float = 320.0
    py: float = 240.0
    baseline: float = 0.5
    pixel_sigma: float = 0.0
    drop_right_probability: float = 0.0
    shared_extrinsic: bool = True
    pose_perturbation: Tuple[float, float] = (0.02, 0.2)  # rotation (rad), translation sigmas
    seed: int = 0


@dataclass
class Observation:
    landmark: int
    pose_key: int
    extrinsic_key: int
    measured: object


@dataclass
class Scenario:
    config: ScenarioConfig
    calibration: object
    body_poses: Dict[int, object]
    extrinsics: Dict[int, object]
    landmarks: np.ndarray
    observations: List[Observation] = field(default_factory=list)

    @property
    def ground_truth(self) -> Dict[int, object]:
        out = dict(self.body_poses)
        out.update(self.extrinsics)
        return out


def cube_landmarks(half_size: float) -> np.ndarray:
    s = half_size
    return np.array([[x, y, z] for z in (s, -s) for x, y in ((s, s), (-s, s), (-s, -s), (s, -s))],
                    dtype=float)


def make_scenario(config: Optional[ScenarioConfig] = None) -> Scenario:
    if gtsam is None:
        raise RuntimeError("GTSAM not available; cannot simulate")
    cfg = config or ScenarioConfig()
    rng = np.random.default_rng(cfg.seed)
    K = gtsam.Cal3_S2Stereo(cfg.fx, cfg.fy, 0.0, cfg.px, cfg.py, cfg.baseline)

    # body x forward, camera z forward: mount rotates body axes onto camera axes
    mount = make_pose(np.array([[0.0, 0.0, 1.0], [-1.0, 0.0, 0.0], [0.0, -1.0, 0.0]]), np.zeros(3))
    body_poses: Dict[int, object] = {}
    extrinsics: Dict[int, object] = {}
    for i in range(cfg.n_poses):
        theta = 2.0 * math.pi * i / cfg.n_poses
        eye = np.array([cfg.radius * math.cos(theta), cfg.radius * math.sin(theta), cfg.height])
        camera = look_at(eye, np.zeros(3))
        body_poses[gtsam.symbol("x", i)] = camera.compose(mount.inverse())
        if not cfg.shared_extrinsic or i == 0:
            extrinsics[gtsam.symbol("c", i)] = mount

    scenario = Scenario(cfg, K, body_poses, extrinsics, cube_landmarks(cfg.cube_half_size))
    ext_keys = list(extrinsics)
    for i, (pose_key, body) in enumerate(body_poses.items()):
        ext_key = ext_keys[0] if cfg.shared_extrinsic else ext_keys[i]
        camera_pose = body.compose(extrinsics[ext_key])
        for j, point in enumerate(scenario.landmarks):
            try:
                z, _, _ = STEREO.project(camera_pose, K, point)
            except CheiralityError:
                continue
            if cfg.pixel_sigma > 0:
                z = z + rng.normal(0.0, cfg.pixel_sigma, size=3)
            if cfg.drop_right_probability > 0 and rng.random() < cfg.drop_right_probability:
                z[1] = np.nan
            scenario.observations.append(Observation(j, pose_key, ext_key, STEREO.make_measurement(z)))
    return scenario


def perturb(pose, rng: np.random.Generator, sigmas: Tuple[float, float]):
    xi = np.concatenate([rng.normal(0.0, sigmas[0], 3), rng.normal(0.0, sigmas[1], 3)])
    return pose.compose(gtsam.Pose3.Expmap(xi))


def build_graph(scenario: Scenario, params: Optional[SmartProjectionParams] = None,
                measurement_sigma: float = 1.0, prior_sigmas=(1e-3,) * 3 + (1e-2,) * 3,
                perturb_initial: bool = True) -> GraphBuilder:
    """Smart factors for every landmark, priors on the first body pose and the extrinsics."""
    cfg = scenario.config
    rng = np.random.default_rng(cfg.seed + 1)
    graph = GraphBuilder(isotropic(3, measurement_sigma), params)
    for obs in scenario.observations:
        graph.add_observation(obs.landmark, obs.measured, obs.pose_key, obs.extrinsic_key,
                              scenario.calibration)

    first_key = next(iter(scenario.body_poses))
    for key, pose in scenario.ground_truth.items():
        initial = pose
        if perturb_initial and key != first_key and key not in scenario.extrinsics:
            initial = perturb(pose, rng, cfg.pose_perturbation)
        graph.ensure_init(key, initial)
    graph.add_prior(first_key, scenario.body_poses[first_key], prior_sigmas)
    for key, pose in scenario.extrinsics.items():
        graph.add_prior(key, pose, prior_sigmas)
    return graph
