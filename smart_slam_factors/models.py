from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Hashable, Mapping, Optional, Union

import numpy as np


class SmartFactorError(RuntimeError):
    """Base class for errors raised by the smart factor machinery."""


class ConfigurationError(SmartFactorError):
    """Raised for malformed construction input (programmer error, not data)."""


class VariableLookupError(SmartFactorError):
    """Raised when the variable assignment does not cover the factor's keys."""


class ContractViolation(SmartFactorError):
    """Raised when an internal precondition is broken (e.g. no landmark estimate)."""


class CheiralityError(SmartFactorError):
    """Raised when projecting a point that lies behind the camera."""


class LinearizationMode(Enum):
    HESSIAN = "hessian"


class DegeneracyMode(Enum):
    IGNORE_DEGENERACY = "ignore_degeneracy"
    ZERO_ON_DEGENERACY = "zero_on_degeneracy"
    HANDLE_INFINITY = "handle_infinity"


class TriangulationStatus(Enum):
    VALID = "valid"
    DEGENERATE = "degenerate"
    BEHIND_CAMERA = "behind_camera"
    OUTLIER = "outlier"
    FAR_POINT = "far_point"


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        token = value.strip().lower()
        for member in enum_cls:
            if token in (member.value, member.name.lower()):
                return member
    raise ConfigurationError(f"Unsupported {enum_cls.__name__}: {value!r}")


def parse_linearization_mode(value: Union[str, LinearizationMode]) -> LinearizationMode:
    return _parse_enum(LinearizationMode, value)


def parse_degeneracy_mode(value: Union[str, DegeneracyMode]) -> DegeneracyMode:
    return _parse_enum(DegeneracyMode, value)


@dataclass
class TriangulationParameters:
    """Knobs handed to the triangulation collaborator.

    Non-positive thresholds disable the corresponding check.
    """
    rank_tolerance: float = 1.0
    enable_epi: bool = False  # Gauss-Newton refinement after the linear solve
    landmark_distance_threshold: float = -1.0
    dynamic_outlier_rejection_threshold: float = -1.0
    max_iterations: int = 10
    refinement_tolerance: float = 1e-9

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "TriangulationParameters":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown triangulation options: {sorted(unknown)}")
        return cls(**data)


@dataclass
class SmartProjectionParams:
    linearization_mode: LinearizationMode = LinearizationMode.HESSIAN
    degeneracy_mode: DegeneracyMode = DegeneracyMode.IGNORE_DEGENERACY
    diagonal_damping: bool = False
    triangulation: TriangulationParameters = field(default_factory=TriangulationParameters)

    def __post_init__(self):
        self.linearization_mode = parse_linearization_mode(self.linearization_mode)
        self.degeneracy_mode = parse_degeneracy_mode(self.degeneracy_mode)
        if isinstance(self.triangulation, Mapping):
            self.triangulation = TriangulationParameters.from_dict(self.triangulation)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SmartProjectionParams":
        """Build params from a plain mapping (e.g. a JSON config section).

        Enum values may be given as strings in any case.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown smart factor options: {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True, eq=False)
class View:
    """One observation of the landmark.

    `calibration` is a shared reference: many views (and factors) may hold the
    same calibration object, which is never mutated after construction.
    """
    measurement: Any
    pose_key: Hashable
    extrinsic_key: Hashable
    calibration: Any


@dataclass(frozen=True, eq=False)
class TriangulationResult:
    status: TriangulationStatus
    point: Optional[np.ndarray] = None

    @property
    def valid(self) -> bool:
        return self.status is TriangulationStatus.VALID and self.point is not None

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def degenerate(cls) -> "TriangulationResult":
        return cls(TriangulationStatus.DEGENERATE)


@dataclass
class PosePrior:
    key: Hashable
    pose: Any  # gtsam.Pose3
    sigmas: np.ndarray  # 6 sigmas, [rotation, translation]


def describe_params(params: SmartProjectionParams) -> Dict[str, Any]:
    return {
        "linearization_mode": params.linearization_mode.value,
        "degeneracy_mode": params.degeneracy_mode.value,
        "diagonal_damping": params.diagonal_damping,
        "triangulation": {f.name: getattr(params.triangulation, f.name) for f in fields(params.triangulation)},
    }
