"""Collapse the per-view slot layout onto the factor's unique keys.

Two views can reference the same body pose or the same extrinsic variable.
The Schur complement is computed per view slot, so information that belongs
to one variable may sit in several slots; it has to be summed, including the
cross term between two slots that turn out to be the same variable.
"""
from __future__ import annotations

from typing import Dict, Hashable, Sequence

from .blockmatrix import SymmetricBlockMatrix


def pack_unique_keys(augmented: SymmetricBlockMatrix, nonunique_keys: Sequence[Hashable],
                     unique_keys: Sequence[Hashable]) -> SymmetricBlockMatrix:
    n_nonunique = len(nonunique_keys)
    n_unique = len(unique_keys)
    if augmented.n_blocks != n_nonunique + 1:
        raise ValueError(
            f"Augmented matrix has {augmented.n_blocks} blocks, expected {n_nonunique + 1}")

    # every slot maps to a distinct key, in order: nothing to remap
    if list(nonunique_keys) == list(unique_keys):
        return augmented

    slot_of: Dict[Hashable, int] = {key: k for k, key in enumerate(unique_keys)}
    missing = [key for key in nonunique_keys if key not in slot_of]
    if missing:
        raise ValueError(f"Slot keys {missing} are not among the unique keys")

    dims = [augmented.dims[0]] * n_unique + [1]
    packed = SymmetricBlockMatrix.zeros(dims)
    for i in range(n_nonunique):
        u_i = slot_of[nonunique_keys[i]]
        packed.update_off_diagonal_block(u_i, n_unique, augmented.above_diagonal_block(i, n_nonunique))
        for j in range(i, n_nonunique):
            u_j = slot_of[nonunique_keys[j]]
            if i == j:
                packed.update_diagonal_block(u_i, augmented.diagonal_block(i))
            elif u_i != u_j:
                packed.update_off_diagonal_block(u_i, u_j, augmented.above_diagonal_block(i, j))
            else:
                block = augmented.above_diagonal_block(i, j)
                packed.update_diagonal_block(u_i, block + block.T)
    packed.update_diagonal_block(n_unique, augmented.diagonal_block(n_nonunique))
    return packed
