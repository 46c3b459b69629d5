"""smart_slam_factors: smart projection factors over body poses and extrinsics.

This package provides:
- A view registry and smart factor that marginalizes one landmark
- Stereo and pinhole camera models with analytic Jacobians
- Safe triangulation (degenerate / behind-camera / outlier / far-point checks)
- Schur-complement elimination and key deduplication into a Hessian factor
- A graph builder, a reference Levenberg-Marquardt driver and synthetic scenes

Design intent:
Every stage of a linearization is a plain function of the current estimate
and the factor's immutable views, so independent factors can be linearized
concurrently and each stage can be tested in isolation.
"""
from .cameras import PINHOLE, STEREO, PinholeCameraModel, StereoCameraModel
from .factor import SmartProjectionFactorPP, register_linearizer
from .linear import HessianFactor
from .models import (
    CheiralityError,
    ConfigurationError,
    ContractViolation,
    DegeneracyMode,
    LinearizationMode,
    SmartFactorError,
    SmartProjectionParams,
    TriangulationParameters,
    TriangulationResult,
    TriangulationStatus,
    VariableLookupError,
    View,
)

__all__ = [
    "cameras", "triangulation", "views", "jacobians", "noise", "schur", "blockmatrix",
    "packing", "linear", "factor", "graph", "optimize", "simulate", "models",
    "SmartProjectionFactorPP", "HessianFactor", "SmartProjectionParams",
    "TriangulationParameters", "TriangulationResult", "TriangulationStatus",
    "LinearizationMode", "DegeneracyMode", "View", "register_linearizer",
    "STEREO", "PINHOLE", "StereoCameraModel", "PinholeCameraModel",
    "SmartFactorError", "ConfigurationError", "VariableLookupError",
    "ContractViolation", "CheiralityError",
]
__version__ = "0.1.0"
