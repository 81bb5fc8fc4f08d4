"""Phase-shift table files (``.phs``).

Layout::

    # optional comment lines
    <n_energies> <l_max> [eV | Ry | Hartree]
    <energy>
    <delta_0> <delta_1> ... <delta_lmax>
    ...

Shift lines written by Fortran programs may lack separators between
negative numbers (``0.12-0.34-0.05``); numbers are therefore tokenised by
pattern instead of by whitespace. Shifts of one energy may continue on the
following line.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import numpy as np

from leedpy.core.types import PhaseShiftTable
from leedpy.errors import FileIOError
from leedpy.modeling.units import energy_scale


logger = logging.getLogger(__name__)

PHASE_PATH_ENV = "CLEED_PHASE"
PHASE_SUFFIX = ".phs"

_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[EeDd][-+]?\d+)?")


def _numbers(line: str) -> list[float]:
    return [float(tok.replace("D", "E").replace("d", "e")) for tok in _NUMBER_RE.findall(line)]


def resolve_phase_path(tag: str | Path) -> Path:
    """Path of a phase-shift file given either a path or a bare atom tag.

    A bare tag (no directory part, no suffix) resolves to
    ``$CLEED_PHASE/<tag>.phs``.
    """

    p = Path(tag)
    if p.is_absolute() or len(p.parts) > 1 or p.suffix:
        return p
    base = os.environ.get(PHASE_PATH_ENV)
    if not base:
        raise FileIOError(f"Environment variable {PHASE_PATH_ENV} is not set; cannot resolve phase shifts '{tag}'.")
    return Path(base) / f"{p.name}{PHASE_SUFFIX}"


def read_phase_shift_file(source: Any) -> PhaseShiftTable:
    """Parse a phase-shift file into a :class:`PhaseShiftTable` (energies in Hartree)."""

    path = resolve_phase_path(source)
    try:
        with path.open("r", encoding="utf-8") as fh:
            lines = [ln.strip() for ln in fh]
    except OSError as exc:
        raise FileIOError(f"Cannot read phase-shift file '{path}': {exc}") from exc

    lines = [ln for ln in lines if ln and not ln.startswith("#")]
    if not lines:
        raise FileIOError(f"Phase-shift file '{path}' has no header line.")
    header = lines[0].split()
    try:
        n_eng = int(header[0])
        l_max = int(header[1])
    except (IndexError, ValueError) as exc:
        raise FileIOError(f"Improper header line in '{path}': {lines[0]!r}") from exc
    if n_eng <= 0 or l_max < 0:
        raise FileIOError(f"Header of '{path}' must give a positive energy count and l_max >= 0.")
    try:
        scale = energy_scale(header[2] if len(header) > 2 else None)
    except ValueError as exc:
        raise FileIOError(f"{path}: {exc}") from exc

    values: list[float] = []
    for ln in lines[1:]:
        values.extend(_numbers(ln))
    record = l_max + 2
    n_found = min(n_eng, len(values) // record)
    if n_found < n_eng:
        logger.warning(
            "EOF found before reading all phase shifts in '%s': expected %d energies, found %d.",
            path,
            n_eng,
            n_found,
        )
    if n_found == 0:
        raise FileIOError(f"Phase-shift file '{path}' contains no complete energy record.")

    data = np.asarray(values[: n_found * record], dtype=float).reshape(n_found, record)
    energies = data[:, 0] * scale
    if np.any(np.diff(energies) <= 0.0):
        raise FileIOError(f"Energies in '{path}' must be strictly increasing.")
    logger.debug("Read %d energies (l_max=%d) from '%s'.", n_found, l_max, path)
    return PhaseShiftTable(energies=energies, shifts=data[:, 1:], source=str(path))


def write_phase_shift_file(path: str | Path, table: PhaseShiftTable, unit: str = "Hartree") -> None:
    """Write ``table`` in the layout read by :func:`read_phase_shift_file`."""

    scale = energy_scale(unit)
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as fh:
        fh.write(f"{table.n_energies} {table.l_max} {unit}\n")
        for e, row in zip(table.energies, table.shifts):
            fh.write(f"{e / scale:.6f}\n")
            fh.write(" ".join(f"{v:.6f}" for v in row))
            fh.write("\n")
