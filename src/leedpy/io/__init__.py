from leedpy.io.library import PhaseShiftLibrary
from leedpy.io.readers import (
    read_iv_curve,
    read_iv_curves,
    read_phase_shift_file,
    resolve_phase_path,
    write_iv_curves,
    write_phase_shift_file,
)
from leedpy.io.registry import get_reader, list_readers, read_phase_shifts, reader_for, register_reader


register_reader("cleed", read_phase_shift_file, suffixes=(".phs",))

__all__ = [
    "PhaseShiftLibrary",
    "register_reader",
    "get_reader",
    "list_readers",
    "read_phase_shifts",
    "reader_for",
    "read_phase_shift_file",
    "resolve_phase_path",
    "write_phase_shift_file",
    "read_iv_curve",
    "read_iv_curves",
    "write_iv_curves",
]
