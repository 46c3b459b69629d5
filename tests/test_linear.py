import numpy as np
import pytest

from smart_slam_factors.linear import HessianFactor


@pytest.fixture
def factor():
    rng = np.random.default_rng(5)
    A = rng.normal(size=(8, 4))
    H = A.T @ A
    g = rng.normal(size=4)
    return HessianFactor.from_blocks(["a", "b"], H, g, 3.5, dims=[2, 2]), H, g


class TestHessianFactor:
    def test_terms_round_trip(self, factor):
        hf, H, g = factor
        np.testing.assert_allclose(hf.information(), H)
        np.testing.assert_allclose(hf.linear_term(), g)
        assert hf.constant_term() == 3.5
        assert hf.keys() == ["a", "b"]
        assert hf.dims == [2, 2]
        assert not hf.degenerate

    def test_error_is_quadratic_form(self, factor):
        hf, H, g = factor
        delta = {"a": np.array([0.1, -0.2]), "b": np.array([0.3, 0.05])}
        x = np.concatenate([delta["a"], delta["b"]])
        assert hf.error(delta) == pytest.approx(0.5 * (3.5 - 2 * x @ g + x @ H @ x))
        assert hf.error({}) == pytest.approx(0.5 * 3.5)

    def test_diagonal_and_gradient(self, factor):
        hf, H, g = factor
        np.testing.assert_allclose(hf.hessian_diagonal()["b"], H[2:, 2:])
        np.testing.assert_allclose(hf.gradient_at_zero()["a"], -g[:2])

    def test_zeros(self):
        hf = HessianFactor.zeros(["a", "b", "c"])
        assert hf.degenerate
        assert hf.is_zero()
        assert hf.augmented_information().shape == (19, 19)

    def test_key_count_must_match_blocks(self, factor):
        hf, _, _ = factor
        with pytest.raises(ValueError):
            HessianFactor(["a"], hf.info)
