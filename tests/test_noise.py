import numpy as np
import pytest

gtsam = pytest.importorskip("gtsam")

from smart_slam_factors.noise import (  # noqa: E402
    isotropic,
    noise_dimension,
    whiten_system,
    whitened_squared_norm,
)


class TestWhitening:
    def test_dimensions(self):
        assert noise_dimension(isotropic(3, 0.5)) == 3
        assert noise_dimension(gtsam.noiseModel.Diagonal.Sigmas(np.array([1.0, 2.0]))) == 2

    def test_diagonal_model_scales_rows_per_view(self):
        model = gtsam.noiseModel.Diagonal.Sigmas(np.array([1.0, 2.0, 4.0]))
        rng = np.random.default_rng(0)
        f_blocks = [rng.normal(size=(3, 12)) for _ in range(2)]
        E = rng.normal(size=(6, 3))
        b = rng.normal(size=6)
        f_w, E_w, b_w = whiten_system(model, f_blocks, E, b, 3)
        scale = np.array([1.0, 0.5, 0.25])
        np.testing.assert_allclose(f_w[1], f_blocks[1] * scale[:, None])
        np.testing.assert_allclose(E_w, E * np.tile(scale, 2)[:, None])
        np.testing.assert_allclose(b_w, b * np.tile(scale, 2))

    def test_gaussian_model_norm_uses_inverse_covariance(self):
        cov = np.array([[4.0, 1.0, 0.0], [1.0, 2.0, 0.5], [0.0, 0.5, 1.0]])
        model = gtsam.noiseModel.Gaussian.Covariance(cov)
        v = np.array([0.3, -1.2, 2.0])
        assert whitened_squared_norm(model, v) == pytest.approx(v @ np.linalg.solve(cov, v))
