from .iv_curve import read_iv_curve, read_iv_curves, write_iv_curves
from .phase_shift import read_phase_shift_file, resolve_phase_path, write_phase_shift_file

__all__ = [
    "read_iv_curve",
    "read_iv_curves",
    "write_iv_curves",
    "read_phase_shift_file",
    "resolve_phase_path",
    "write_phase_shift_file",
]
