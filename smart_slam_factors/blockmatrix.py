"""Symmetric block matrix used as a per-linearization accumulator.

Only the diagonal blocks and the blocks above the diagonal are written;
`selfadjoint_view()` mirrors the upper triangle into a full symmetric array.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np


class SymmetricBlockMatrix:
    def __init__(self, dims: Sequence[int], matrix: Optional[np.ndarray] = None):
        self._dims = [int(d) for d in dims]
        if any(d <= 0 for d in self._dims):
            raise ValueError(f"Block dimensions must be positive, got {self._dims}")
        self._offsets = np.concatenate([[0], np.cumsum(self._dims)]).astype(int)
        n = int(self._offsets[-1])
        if matrix is None:
            self._matrix = np.zeros((n, n), dtype=float)
        else:
            matrix = np.array(matrix, dtype=float)
            if matrix.shape != (n, n):
                raise ValueError(f"Expected a {n}x{n} matrix for dims {self._dims}, got {matrix.shape}")
            self._matrix = matrix

    @classmethod
    def zeros(cls, dims: Sequence[int]) -> "SymmetricBlockMatrix":
        return cls(dims)

    @property
    def dims(self):
        return list(self._dims)

    @property
    def n_blocks(self) -> int:
        return len(self._dims)

    def _span(self, i: int) -> slice:
        if not 0 <= i < len(self._dims):
            raise IndexError(f"Block index {i} out of range for {len(self._dims)} blocks")
        return slice(self._offsets[i], self._offsets[i + 1])

    def diagonal_block(self, i: int) -> np.ndarray:
        s = self._span(i)
        return self._matrix[s, s].copy()

    def above_diagonal_block(self, i: int, j: int) -> np.ndarray:
        if i >= j:
            raise IndexError(f"above_diagonal_block requires i < j, got ({i}, {j})")
        return self._matrix[self._span(i), self._span(j)].copy()

    def update_diagonal_block(self, i: int, delta: np.ndarray) -> None:
        s = self._span(i)
        self._matrix[s, s] += delta

    def update_off_diagonal_block(self, i: int, j: int, delta: np.ndarray) -> None:
        """Add `delta` at block (i, j); stored transposed above the diagonal when i > j."""
        if i == j:
            raise IndexError("Use update_diagonal_block for i == j")
        if i < j:
            self._matrix[self._span(i), self._span(j)] += delta
        else:
            self._matrix[self._span(j), self._span(i)] += np.asarray(delta).T

    def selfadjoint_view(self) -> np.ndarray:
        upper = np.triu(self._matrix)
        return upper + np.triu(self._matrix, 1).T

    def __repr__(self) -> str:
        return f"SymmetricBlockMatrix(dims={self._dims})"
