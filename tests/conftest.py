import gtsam
import numpy as np
import pytest

from smart_slam_factors.cameras import make_pose
from smart_slam_factors.noise import isotropic


X = [gtsam.symbol("x", i) for i in range(6)]
C = [gtsam.symbol("c", i) for i in range(6)]


@pytest.fixture
def calibration():
    return gtsam.Cal3_S2Stereo(500.0, 480.0, 0.0, 320.0, 240.0, 0.5)


@pytest.fixture
def unit_noise():
    return isotropic(3, 1.0)


@pytest.fixture
def landmark():
    return np.array([0.4, -0.3, 8.0])


@pytest.fixture
def body_poses():
    """Three bodies looking roughly along +z with a 1 m spread."""
    return [
        make_pose(gtsam.Rot3.Ypr(0.02, -0.01, 0.03).matrix(), np.array([-1.0, 0.1, 0.0])),
        make_pose(gtsam.Rot3.Ypr(-0.03, 0.02, 0.0).matrix(), np.array([0.0, -0.1, 0.2])),
        make_pose(gtsam.Rot3.Ypr(0.01, 0.04, -0.02).matrix(), np.array([1.0, 0.0, -0.1])),
    ]


@pytest.fixture
def extrinsics():
    return [
        make_pose(gtsam.Rot3.Ypr(0.05, 0.0, -0.02).matrix(), np.array([0.1, 0.0, 0.05])),
        make_pose(gtsam.Rot3.Ypr(-0.02, 0.03, 0.01).matrix(), np.array([-0.1, 0.05, 0.0])),
    ]


@pytest.fixture
def stereo_project():
    """Ground-truth stereo measurement from gtsam's own StereoCamera."""
    def _project(body, extrinsic, K, point):
        z = gtsam.StereoCamera(body.compose(extrinsic), K).project(point)
        return np.array([z.uL(), z.uR(), z.v()])
    return _project


@pytest.fixture
def to_stereo():
    def _make(z):
        return gtsam.StereoPoint2(float(z[0]), float(z[1]), float(z[2]))
    return _make
