import numpy as np
import pytest

from smart_slam_factors.blockmatrix import SymmetricBlockMatrix
from smart_slam_factors.packing import pack_unique_keys


def random_augmented(n_slots, dim=2, seed=0):
    rng = np.random.default_rng(seed)
    n = n_slots * dim + 1
    A = rng.normal(size=(n, n))
    return SymmetricBlockMatrix([dim] * n_slots + [1], A + A.T)


def selection(nonunique, unique, dim=2):
    """S with x_slots = S x_unique; the trailing scalar maps to itself."""
    S = np.zeros((len(nonunique) * dim + 1, len(unique) * dim + 1))
    for k, key in enumerate(nonunique):
        u = unique.index(key)
        S[k * dim:(k + 1) * dim, u * dim:(u + 1) * dim] = np.eye(dim)
    S[-1, -1] = 1.0
    return S


class TestPackUniqueKeys:
    def test_fast_path_returns_input(self):
        augmented = random_augmented(3)
        keys = ["a", "b", "c"]
        assert pack_unique_keys(augmented, keys, keys) is augmented

    @pytest.mark.parametrize("nonunique, unique", [
        (["x0", "c0", "x1", "c0"], ["x0", "c0", "x1"]),
        (["x0", "c0", "x0", "c1"], ["x0", "c0", "c1"]),
        # later slots mapping onto earlier unique keys exercise the transposed update
        (["x0", "c0", "x1", "c1", "x0", "c1"], ["x0", "c0", "x1", "c1"]),
        (["x0", "c0", "x1", "c1"], ["c1", "x1", "c0", "x0"]),
    ])
    def test_equals_selection_congruence(self, nonunique, unique):
        augmented = random_augmented(len(nonunique), seed=len(unique))
        packed = pack_unique_keys(augmented, nonunique, unique)
        S = selection(nonunique, unique)
        expected = S.T @ augmented.selfadjoint_view() @ S
        np.testing.assert_allclose(packed.selfadjoint_view(), expected, atol=1e-12)

    def test_shared_key_folds_cross_block_into_diagonal(self):
        augmented = random_augmented(4)
        packed = pack_unique_keys(augmented, ["x0", "c0", "x1", "c0"], ["x0", "c0", "x1"])
        cross = augmented.above_diagonal_block(1, 3)
        expected = augmented.diagonal_block(1) + augmented.diagonal_block(3) + cross + cross.T
        np.testing.assert_allclose(packed.diagonal_block(1), expected)
        np.testing.assert_allclose(packed.above_diagonal_block(1, 3),
                                   augmented.above_diagonal_block(1, 4) + augmented.above_diagonal_block(3, 4))
        assert packed.diagonal_block(3)[0, 0] == augmented.diagonal_block(4)[0, 0]

    def test_keeps_block_width(self):
        augmented = random_augmented(4, dim=6)
        packed = pack_unique_keys(augmented, ["x0", "c0", "x1", "c0"], ["x0", "c0", "x1"])
        assert packed.dims == [6, 6, 6, 1]

    def test_rejects_inconsistent_inputs(self):
        augmented = random_augmented(2)
        with pytest.raises(ValueError):
            pack_unique_keys(augmented, ["x0", "c0", "x1"], ["x0", "c0", "x1"])
        with pytest.raises(ValueError):
            pack_unique_keys(augmented, ["x0", "c9"], ["x0", "c0"])
