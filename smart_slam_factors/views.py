"""Registry of the observations folded into one smart factor."""
from __future__ import annotations

import logging
from typing import Any, Hashable, Iterator, List, Sequence

from .models import ConfigurationError, View

logger = logging.getLogger("smart_slam.views")


class ViewRegistry:
    """Append-only list of views plus the order-preserving unique key set.

    Unique keys are collected pose key first, then extrinsic key, per view;
    two views may share either key.
    """

    def __init__(self, camera_model):
        self._camera_model = camera_model
        self._views: List[View] = []
        self._keys: List[Hashable] = []
        self._key_set = set()

    def _remember(self, key: Hashable) -> None:
        if key not in self._key_set:
            self._key_set.add(key)
            self._keys.append(key)

    def _check_measurement(self, measured: Any) -> None:
        z = self._camera_model.measurement_vector(measured)
        if z.shape != (self._camera_model.dim,):
            raise ConfigurationError(
                f"{self._camera_model.name} measurement must have {self._camera_model.dim} "
                f"components, got {z.shape}")

    def add(self, measured: Any, pose_key: Hashable, extrinsic_key: Hashable, calibration: Any) -> View:
        if calibration is None:
            raise ConfigurationError("Each view needs a calibration")
        self._check_measurement(measured)
        view = View(measured, pose_key, extrinsic_key, calibration)
        self._views.append(view)
        self._remember(pose_key)
        self._remember(extrinsic_key)
        return view

    def add_batch(self, measurements: Sequence[Any], pose_keys: Sequence[Hashable],
                  extrinsic_keys: Sequence[Hashable], calibrations: Any) -> List[View]:
        """Add several views at once.

        `calibrations` is either one calibration shared by every view of the
        batch or a sequence with one entry per view. All lengths are checked
        before anything is appended.
        """
        n = len(measurements)
        if isinstance(calibrations, (list, tuple)):
            calibration_list = list(calibrations)
        else:
            calibration_list = [calibrations] * n
        lengths = {
            "measurements": n,
            "pose_keys": len(pose_keys),
            "extrinsic_keys": len(extrinsic_keys),
            "calibrations": len(calibration_list),
        }
        if len(set(lengths.values())) != 1:
            raise ConfigurationError(f"Mismatched batch lengths: {lengths}")
        for measured in measurements:
            self._check_measurement(measured)
        return [self.add(z, pk, ek, K)
                for z, pk, ek, K in zip(measurements, pose_keys, extrinsic_keys, calibration_list)]

    @property
    def views(self) -> List[View]:
        return list(self._views)

    def keys(self) -> List[Hashable]:
        return list(self._keys)

    def nonunique_keys(self) -> List[Hashable]:
        """Slot keys in Schur-complement order: pose, extrinsic per view."""
        out: List[Hashable] = []
        for view in self._views:
            out.append(view.pose_key)
            out.append(view.extrinsic_key)
        return out

    def __len__(self) -> int:
        return len(self._views)

    def __iter__(self) -> Iterator[View]:
        return iter(self._views)
