import numpy as np
import pytest

gtsam = pytest.importorskip("gtsam")

from conftest import C, X  # noqa: E402
from smart_slam_factors.graph import (  # noqa: E402
    GraphBuilder,
    format_key,
    linearize_factors,
    linearize_prior,
    prior_error,
)
from smart_slam_factors.models import PosePrior  # noqa: E402
from smart_slam_factors.noise import isotropic  # noqa: E402
from smart_slam_factors.optimize import retract  # noqa: E402
from smart_slam_factors.simulate import ScenarioConfig, build_graph, make_scenario  # noqa: E402


@pytest.fixture
def scenario():
    return make_scenario(ScenarioConfig(n_poses=6, seed=2))


class TestPriors:
    def test_prior_at_mean(self):
        prior = PosePrior(X[0], gtsam.Pose3(), np.array([0.1] * 3 + [0.2] * 3))
        values = gtsam.Values()
        values.insert(X[0], gtsam.Pose3())
        linear = linearize_prior(prior, values)
        np.testing.assert_allclose(np.diag(linear.information()), [100.0] * 3 + [25.0] * 3)
        np.testing.assert_allclose(linear.linear_term(), 0.0, atol=1e-12)
        assert prior_error(prior, values) == pytest.approx(0.0)

    def test_newton_step_reduces_prior_error(self):
        prior = PosePrior(X[0], gtsam.Pose3(), np.array([0.1] * 6))
        values = gtsam.Values()
        values.insert(X[0], gtsam.Pose3.Expmap(np.array([0.05, -0.02, 0.01, 0.3, 0.1, -0.2])))
        linear = linearize_prior(prior, values)
        delta = np.linalg.solve(linear.information(), linear.linear_term())
        assert prior_error(prior, retract(values, [X[0]], delta)) < 1e-3 * prior_error(prior, values)
        assert linear.constant_term() == pytest.approx(2.0 * prior_error(prior, values))


class TestGraphBuilder:
    def test_counts_and_keys(self, scenario):
        graph = build_graph(scenario)
        assert graph.counts["smart"] == len(scenario.landmarks)
        assert graph.counts["observations"] == len(scenario.observations)
        assert graph.counts["prior"] == 1 + len(scenario.extrinsics)
        assert set(graph.variable_keys()) == set(scenario.ground_truth)

    def test_ensure_init_keeps_first_value(self, calibration):
        graph = GraphBuilder(isotropic(3, 1.0))
        graph.ensure_init(X[0], gtsam.Pose3())
        graph.ensure_init(X[0], gtsam.Pose3.Expmap(np.full(6, 0.1)))
        assert graph.initial.atPose3(X[0]).equals(gtsam.Pose3(), 1e-12)

    def test_observations_group_by_landmark(self, calibration):
        graph = GraphBuilder(isotropic(3, 1.0))
        z = np.array([320.0, 300.0, 240.0])
        graph.add_observation(7, z, X[0], C[0], calibration)
        graph.add_observation(7, z, X[1], C[0], calibration)
        graph.add_observation(8, z, X[1], C[0], calibration)
        assert len(graph.smart_factors[7]) == 2
        assert graph.smart_factors[8].keys() == [X[1], C[0]]

    def test_ground_truth_has_zero_error(self, scenario):
        graph = build_graph(scenario, perturb_initial=False)
        assert graph.error(graph.initial) == pytest.approx(0.0, abs=1e-8)
        assert graph.degenerate_landmarks(graph.initial) == []

    def test_parallel_linearization_matches_serial(self, scenario):
        graph = build_graph(scenario)
        factors = list(graph.smart_factors.values())
        serial = linearize_factors(factors, graph.initial, 1e-3, workers=1)
        parallel = linearize_factors(factors, graph.initial, 1e-3, workers=4)
        assert len(serial) == len(parallel)
        for a, b in zip(serial, parallel):
            assert a.keys() == b.keys()
            np.testing.assert_array_equal(a.augmented_information(), b.augmented_information())

    def test_linearize_appends_priors(self, scenario):
        graph = build_graph(scenario)
        linear = graph.linearize(graph.initial)
        assert len(linear) == len(graph.smart_factors) + len(graph.priors)


class TestFormatKey:
    def test_symbol_keys(self):
        assert format_key(X[3]) == "x3"
        assert format_key("landmark") == "landmark"
