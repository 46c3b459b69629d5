"""Camera models consumed by the smart factor.

Poses are gtsam.Pose3 values. Derivatives come from GTSAM and follow its
conventions: tangent vectors are ordered [omega, v] and perturbations act on
the right, `pose * Expmap(xi)`.
"""
from __future__ import annotations

import math
from typing import List, Tuple

import numpy as np

try:
    import gtsam
except Exception:
    gtsam = None

from .models import CheiralityError, ConfigurationError


def _require_gtsam():
    if gtsam is None:
        raise RuntimeError("GTSAM not available; cannot build camera poses")


def _vec3(p) -> np.ndarray:
    """Support both GTSAM APIs: Point3 with .x()/.y()/.z() and numpy vectors."""
    if hasattr(p, "x") and callable(getattr(p, "x")):
        return np.array([p.x(), p.y(), p.z()], dtype=float)
    return np.asarray(p, dtype=float).reshape(3)


def _jacobian(rows: int, cols: int) -> np.ndarray:
    # GTSAM writes OptionalJacobian outputs into Fortran-ordered buffers
    return np.zeros((rows, cols), dtype=np.float64, order="F")


def rotation_of(pose) -> np.ndarray:
    return np.asarray(pose.rotation().matrix(), dtype=float)


def translation_of(pose) -> np.ndarray:
    return _vec3(pose.translation())


def make_pose(R: np.ndarray, t: np.ndarray):
    _require_gtsam()
    return gtsam.Pose3(gtsam.Rot3(np.asarray(R, dtype=float)), np.asarray(t, dtype=float).reshape(3))


def quaternion_wxyz(rot) -> Tuple[float, float, float, float]:
    """(w, x, y, z) of a gtsam.Rot3 across binding versions."""
    if hasattr(rot, "quaternion"):
        q = rot.quaternion()
        return float(q[0]), float(q[1]), float(q[2]), float(q[3])
    q = rot.toQuaternion()
    return float(q.w()), float(q.x()), float(q.y()), float(q.z())


def compose_with_jacobians(body, extrinsic):
    """world_P_cam = world_P_body * body_P_cam, with both 6x6 derivatives."""
    d_body = _jacobian(6, 6)
    d_ext = _jacobian(6, 6)
    cam = body.compose(extrinsic, d_body, d_ext)
    return cam, d_body, d_ext


def depth_in(pose, point) -> float:
    """z coordinate of a world point in the frame of `pose`."""
    return float(_vec3(pose.transformTo(np.asarray(point, dtype=float)))[2])


def _check_cheirality(camera_pose, point) -> None:
    z = depth_in(camera_pose, point)
    if z <= 0.0:
        raise CheiralityError(f"Point has non-positive depth {z:.6g} in camera frame")


def look_at(eye, target, up=(0.0, 0.0, 1.0)):
    """Camera pose at `eye` looking at `target` (z forward, y down)."""
    eye = np.asarray(eye, dtype=float)
    zc = np.asarray(target, dtype=float) - eye
    zc /= np.linalg.norm(zc)
    xc = np.cross(zc, np.asarray(up, dtype=float))
    xc /= np.linalg.norm(xc)
    yc = np.cross(zc, xc)
    return make_pose(np.column_stack([xc, yc, zc]), eye)


def _projection_matrix(K: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    return K @ np.hstack([R.T, (-R.T @ t)[:, None]])


class StereoCameraModel:
    """Rectified stereo pair; measurements are (uL, uR, v).

    Projection is gtsam.StereoCamera: the calibration skew is ignored and the
    right camera sits `baseline` along the left camera's x axis.
    """

    dim = 3
    name = "stereo"

    def measurement_vector(self, measured) -> np.ndarray:
        if hasattr(measured, "uL"):
            return np.array([measured.uL(), measured.uR(), measured.v()], dtype=float)
        z = np.asarray(measured, dtype=float).reshape(-1)
        if z.shape != (3,):
            raise ConfigurationError(f"Stereo measurement must have 3 components, got {z.shape}")
        return z

    def make_measurement(self, z: np.ndarray):
        _require_gtsam()
        return gtsam.StereoPoint2(float(z[0]), float(z[1]), float(z[2]))

    def project(self, camera_pose, calibration, point):
        point = np.asarray(point, dtype=float)
        _check_cheirality(camera_pose, point)
        d_pose = _jacobian(3, 6)
        d_point = _jacobian(3, 3)
        z = gtsam.StereoCamera(camera_pose, calibration).project2(point, d_pose, d_point)
        return self.measurement_vector(z), d_pose, d_point

    def rays(self, camera_pose, calibration, measured) -> List[Tuple[np.ndarray, np.ndarray]]:
        """Projection matrices and pixels for every finite channel."""
        z = self.measurement_vector(measured)
        R = rotation_of(camera_pose)
        t = translation_of(camera_pose)
        K = np.array([[calibration.fx(), 0.0, calibration.px()],
                      [0.0, calibration.fy(), calibration.py()],
                      [0.0, 0.0, 1.0]])
        out = []
        if math.isfinite(z[0]) and math.isfinite(z[2]):
            out.append((_projection_matrix(K, R, t), np.array([z[0], z[2]])))
        if math.isfinite(z[1]) and math.isfinite(z[2]):
            t_right = t + R @ np.array([calibration.baseline(), 0.0, 0.0])
            out.append((_projection_matrix(K, R, t_right), np.array([z[1], z[2]])))
        return out


class PinholeCameraModel:
    """Monocular pinhole camera (gtsam.PinholeCameraCal3_S2); measurements are (u, v)."""

    dim = 2
    name = "pinhole"

    def measurement_vector(self, measured) -> np.ndarray:
        if hasattr(measured, "x") and callable(getattr(measured, "x")):
            return np.array([measured.x(), measured.y()], dtype=float)
        z = np.asarray(measured, dtype=float).reshape(-1)
        if z.shape != (2,):
            raise ConfigurationError(f"Pinhole measurement must have 2 components, got {z.shape}")
        return z

    def make_measurement(self, z: np.ndarray):
        return np.asarray(z, dtype=float).reshape(2)

    def project(self, camera_pose, calibration, point):
        point = np.asarray(point, dtype=float)
        _check_cheirality(camera_pose, point)
        d_pose = _jacobian(2, 6)
        d_point = _jacobian(2, 3)
        d_cal = _jacobian(2, 5)
        uv = gtsam.PinholeCameraCal3_S2(camera_pose, calibration).project(point, d_pose, d_point, d_cal)
        return self.measurement_vector(uv), d_pose, d_point

    def rays(self, camera_pose, calibration, measured) -> List[Tuple[np.ndarray, np.ndarray]]:
        z = self.measurement_vector(measured)
        if not np.all(np.isfinite(z)):
            return []
        K = np.asarray(calibration.K(), dtype=float)
        return [(_projection_matrix(K, rotation_of(camera_pose), translation_of(camera_pose)), z)]


STEREO = StereoCameraModel()
PINHOLE = PinholeCameraModel()
