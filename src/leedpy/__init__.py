from .core import IVCurve, IVResult, Layer, PhaseShiftSet, compute_iv_curves, rfactor
from .errors import (
    AllocationError,
    ConvergenceError,
    FileIOError,
    InputValidationError,
    LEEDError,
    SingularMatrixError,
)
from .modeling import CalcConfig, Crystal, StackedLayer, build_crystal

__all__ = [
    "IVCurve",
    "IVResult",
    "Layer",
    "PhaseShiftSet",
    "compute_iv_curves",
    "rfactor",
    "LEEDError",
    "AllocationError",
    "ConvergenceError",
    "FileIOError",
    "InputValidationError",
    "SingularMatrixError",
    "CalcConfig",
    "Crystal",
    "StackedLayer",
    "build_crystal",
]
