from __future__ import annotations

from typing import Dict, Hashable, List, Mapping, Sequence

import numpy as np

from .blockmatrix import SymmetricBlockMatrix


class HessianFactor:
    """Quadratic factor 0.5 * (f - 2 x'g + x'Hx) over a fixed set of keys.

    Stored as the augmented information matrix [[H, g], [g', f]] in a
    SymmetricBlockMatrix with one block per key and a trailing 1x1 block.
    """

    def __init__(self, keys: Sequence[Hashable], info: SymmetricBlockMatrix, degenerate: bool = False):
        if info.n_blocks != len(keys) + 1:
            raise ValueError(f"{len(keys)} keys but {info.n_blocks} information blocks")
        self._keys = list(keys)
        self._info = info
        self.degenerate = degenerate

    @classmethod
    def zeros(cls, keys: Sequence[Hashable], dim: int = 6) -> "HessianFactor":
        """The factor of a landmark that could not be triangulated."""
        return cls(keys, SymmetricBlockMatrix.zeros([dim] * len(keys) + [1]), degenerate=True)

    @classmethod
    def from_blocks(cls, keys: Sequence[Hashable], H: np.ndarray, g: np.ndarray, f: float,
                    dims: Sequence[int] = None) -> "HessianFactor":
        dims = list(dims) if dims is not None else [H.shape[0] // max(len(keys), 1)] * len(keys)
        n = H.shape[0]
        augmented = np.zeros((n + 1, n + 1))
        augmented[:n, :n] = H
        augmented[:n, n] = g
        augmented[n, :n] = g
        augmented[n, n] = f
        return cls(keys, SymmetricBlockMatrix(dims + [1], augmented))

    def keys(self) -> List[Hashable]:
        return list(self._keys)

    @property
    def info(self) -> SymmetricBlockMatrix:
        return self._info

    @property
    def dims(self) -> List[int]:
        return self._info.dims[:-1]

    def augmented_information(self) -> np.ndarray:
        return self._info.selfadjoint_view()

    def information(self) -> np.ndarray:
        full = self.augmented_information()
        return full[:-1, :-1]

    def linear_term(self) -> np.ndarray:
        full = self.augmented_information()
        return full[:-1, -1]

    def constant_term(self) -> float:
        return float(self._info.diagonal_block(len(self._keys))[0, 0])

    def _stack(self, delta: Mapping[Hashable, np.ndarray]) -> np.ndarray:
        parts = []
        for key, d in zip(self._keys, self.dims):
            x = np.zeros(d) if key not in delta else np.asarray(delta[key], dtype=float).reshape(d)
            parts.append(x)
        return np.concatenate(parts) if parts else np.zeros(0)

    def error(self, delta: Mapping[Hashable, np.ndarray]) -> float:
        x = self._stack(delta)
        H = self.information()
        g = self.linear_term()
        return 0.5 * (self.constant_term() - 2.0 * x @ g + x @ H @ x)

    def hessian_diagonal(self) -> Dict[Hashable, np.ndarray]:
        return {key: self._info.diagonal_block(k) for k, key in enumerate(self._keys)}

    def gradient_at_zero(self) -> Dict[Hashable, np.ndarray]:
        n = len(self._keys)
        return {key: -self._info.above_diagonal_block(k, n).reshape(-1)
                for k, key in enumerate(self._keys)}

    def is_zero(self) -> bool:
        return not np.any(self.augmented_information())

    def __repr__(self) -> str:
        return f"HessianFactor(keys={self._keys}, degenerate={self.degenerate})"
