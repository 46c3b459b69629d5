from typing import List, Sequence, Tuple

import numpy as np

try:
    import gtsam
except Exception:
    gtsam = None


def _require_gtsam():
    if gtsam is None:
        raise RuntimeError("GTSAM not available; cannot build noise model")


def isotropic(dim: int, sigma: float):
    _require_gtsam()
    return gtsam.noiseModel.Isotropic.Sigma(int(dim), float(sigma))


def noise_dimension(model) -> int:
    return int(np.asarray(model.R()).shape[0])


def whiten_system(model, f_blocks: Sequence[np.ndarray], E: np.ndarray, b: np.ndarray,
                  dim: int) -> Tuple[List[np.ndarray], np.ndarray, np.ndarray]:
    """Whiten the stacked point Jacobian/residual and every camera block.

    The model acts on one measurement (`dim` rows), so E and b are whitened
    one view at a time.
    """
    E_w = np.empty_like(E, dtype=float)
    b_w = np.empty_like(b, dtype=float)
    for i in range(len(f_blocks)):
        rows = slice(dim * i, dim * (i + 1))
        E_w[rows] = np.asarray(model.Whiten(np.asarray(E[rows], dtype=float)))
        b_w[rows] = np.asarray(model.whiten(np.asarray(b[rows], dtype=float))).reshape(-1)
    f_w = [np.asarray(model.Whiten(np.asarray(F, dtype=float))) for F in f_blocks]
    return f_w, E_w, b_w


def whitened_squared_norm(model, residual: np.ndarray) -> float:
    w = np.asarray(model.whiten(np.asarray(residual, dtype=float))).reshape(-1)
    return float(w.dot(w))
