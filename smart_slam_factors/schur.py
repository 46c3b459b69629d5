"""Landmark marginalization via the Schur complement.

With whitened camera blocks F (stacked block-diagonally), point Jacobian E,
residual b and point covariance P = (E'E + lambda D)^-1:

    H = F'F - F'E P E'F
    g = F'b - F'E P E'b
    f = b'b - (E'b)' P (E'b)

The result is laid out over per-view slots (body pose, extrinsic) of width 6
plus one trailing slot of width 1 carrying g and f.
"""
from typing import Sequence

import numpy as np

from .blockmatrix import SymmetricBlockMatrix

POSE_DIM = 6


def compute_point_covariance(E: np.ndarray, lambda_: float = 0.0,
                             diagonal_damping: bool = False) -> np.ndarray:
    EtE = E.T @ E
    if diagonal_damping:
        EtE = EtE + lambda_ * np.diag(np.diag(EtE))
    else:
        EtE = EtE + lambda_ * np.eye(EtE.shape[0])
    return np.linalg.inv(EtE)


def schur_complement(f_blocks: Sequence[np.ndarray], E: np.ndarray, P: np.ndarray,
                     b: np.ndarray) -> SymmetricBlockMatrix:
    m = len(f_blocks)
    if m == 0:
        raise ValueError("Schur complement needs at least one view")
    dim = f_blocks[0].shape[0]
    width = f_blocks[0].shape[1]  # 12: body pose + extrinsic
    n = width * m

    Etb = E.T @ b
    P_Etb = P @ Etb
    EtF = []
    for i, F_i in enumerate(f_blocks):
        E_i = E[dim * i: dim * (i + 1)]
        EtF.append(E_i.T @ F_i)  # 3 x 12
    P_EtF = [P @ block for block in EtF]

    augmented = np.zeros((n + 1, n + 1))
    for i, F_i in enumerate(f_blocks):
        ri = slice(width * i, width * (i + 1))
        b_i = b[dim * i: dim * (i + 1)]
        augmented[ri, ri] = F_i.T @ F_i - EtF[i].T @ P_EtF[i]
        for j in range(i + 1, m):
            rj = slice(width * j, width * (j + 1))
            augmented[ri, rj] = -EtF[i].T @ P_EtF[j]
        augmented[ri, n] = F_i.T @ b_i - EtF[i].T @ P_Etb
    augmented[n, n] = float(b @ b - Etb @ P_Etb)

    dims = [width // 2] * (2 * m) + [1]
    return SymmetricBlockMatrix(dims, augmented)
