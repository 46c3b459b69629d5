from typing import List, Sequence, Tuple

import numpy as np

from .cameras import compose_with_jacobians
from .models import ContractViolation, View, VariableLookupError


def pose_at(values, key):
    if not values.exists(key):
        raise VariableLookupError(f"No value for key {key} in the current assignment")
    return values.atPose3(key)


def compute_jacobians(camera_model, views: Sequence[View], values,
                      point) -> Tuple[List[np.ndarray], np.ndarray, np.ndarray]:
    """Per-view camera blocks F_i, stacked point Jacobian E and stacked b.

    b holds measured - predicted. Channels whose measurement is NaN (e.g. a
    missing right pixel) get zero rows in F_i and E and a zero residual, so
    the view degrades to a lower-dimensional constraint instead of vanishing.
    """
    if point is None:
        raise ContractViolation("Jacobians requested without a triangulated landmark")
    point = np.asarray(point, dtype=float)
    dim = camera_model.dim
    m = len(views)
    E = np.zeros((dim * m, 3))
    b = np.zeros(dim * m)
    f_blocks: List[np.ndarray] = []
    for i, view in enumerate(views):
        body = pose_at(values, view.pose_key)
        extrinsic = pose_at(values, view.extrinsic_key)
        camera_pose, d_body, d_ext = compose_with_jacobians(body, extrinsic)
        predicted, d_cam, E_i = camera_model.project(camera_pose, view.calibration, point)
        measured = camera_model.measurement_vector(view.measurement)

        F_i = np.hstack([d_cam @ d_body, d_cam @ d_ext])  # dim x 12
        error = predicted - measured
        missing = np.isnan(measured)
        if missing.any():
            F_i[missing] = 0.0
            E_i = E_i.copy()
            E_i[missing] = 0.0
            error[missing] = 0.0

        rows = slice(dim * i, dim * (i + 1))
        f_blocks.append(F_i)
        E[rows] = E_i
        b[rows] = -error
    return f_blocks, E, b
