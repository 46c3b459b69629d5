import numpy as np
import pytest

from smart_slam_factors.blockmatrix import SymmetricBlockMatrix


class TestLayout:
    def test_dims_and_rows(self):
        m = SymmetricBlockMatrix.zeros([6, 6, 1])
        assert m.n_blocks == 3
        assert m.selfadjoint_view().shape == (13, 13)
        assert m.dims == [6, 6, 1]

    def test_rejects_bad_shapes(self):
        with pytest.raises(ValueError):
            SymmetricBlockMatrix([6, 0])
        with pytest.raises(ValueError):
            SymmetricBlockMatrix([2, 1], np.zeros((4, 4)))

    def test_block_index_out_of_range(self):
        m = SymmetricBlockMatrix.zeros([2, 1])
        with pytest.raises(IndexError):
            m.diagonal_block(2)


class TestUpdates:
    def test_lower_update_lands_transposed_above_diagonal(self):
        m = SymmetricBlockMatrix.zeros([2, 3, 1])
        delta = np.arange(6.0).reshape(3, 2)
        m.update_off_diagonal_block(1, 0, delta)
        np.testing.assert_array_equal(m.above_diagonal_block(0, 1), delta.T)
        np.testing.assert_array_equal(m.selfadjoint_view()[2:5, 0:2], delta)

    def test_updates_accumulate(self):
        m = SymmetricBlockMatrix.zeros([2, 2])
        m.update_diagonal_block(0, np.eye(2))
        m.update_diagonal_block(0, 2 * np.eye(2))
        m.update_off_diagonal_block(0, 1, np.ones((2, 2)))
        m.update_off_diagonal_block(1, 0, np.ones((2, 2)))
        np.testing.assert_array_equal(m.diagonal_block(0), 3 * np.eye(2))
        np.testing.assert_array_equal(m.above_diagonal_block(0, 1), 2 * np.ones((2, 2)))

    def test_above_diagonal_requires_ordered_indices(self):
        m = SymmetricBlockMatrix.zeros([2, 2])
        with pytest.raises(IndexError):
            m.above_diagonal_block(1, 0)
        with pytest.raises(IndexError):
            m.update_off_diagonal_block(1, 1, np.zeros((2, 2)))

    def test_selfadjoint_view_ignores_lower_triangle(self):
        raw = np.arange(9.0).reshape(3, 3)
        m = SymmetricBlockMatrix([1, 1, 1], raw)
        full = m.selfadjoint_view()
        np.testing.assert_array_equal(full, full.T)
        np.testing.assert_array_equal(np.triu(full), np.triu(raw))

