"""Unit conversion helpers between laboratory and atomic units."""

from __future__ import annotations

import numpy as np


# CODATA 2018 constants.
HARTREE_EV = 27.211386245988
BOHR_ANGSTROM = 0.529177210903

# Energy scale applied to phase-shift tables labelled "Ry".
PHASE_FILE_RYDBERG_SCALE = 2.0


def ev_to_hartree(energy: np.ndarray | float) -> np.ndarray | float:
    """Convert energies in eV to Hartree."""

    return np.asarray(energy, dtype=float) / HARTREE_EV


def hartree_to_ev(energy: np.ndarray | float) -> np.ndarray | float:
    """Convert energies in Hartree to eV."""

    return np.asarray(energy, dtype=float) * HARTREE_EV


def angstrom_to_bohr(length: np.ndarray | float) -> np.ndarray | float:
    """Convert lengths in Angstrom to bohr."""

    return np.asarray(length, dtype=float) / BOHR_ANGSTROM


def bohr_to_angstrom(length: np.ndarray | float) -> np.ndarray | float:
    return np.asarray(length, dtype=float) * BOHR_ANGSTROM


def energy_scale(unit: str | None) -> float:
    """Return the factor that converts phase-file energies in ``unit`` to Hartree."""

    key = "hartree" if unit is None else unit.strip().lower()
    if key == "ev":
        return 1.0 / HARTREE_EV
    if key in {"ry", "rydberg"}:
        return PHASE_FILE_RYDBERG_SCALE
    if key in {"hartree", "h", "ha", ""}:
        return 1.0
    raise ValueError(f"Unknown energy unit '{unit}'. Use eV, Ry or Hartree.")


def length_scale(unit: str) -> float:
    """Return the factor that converts lengths in ``unit`` to bohr."""

    key = unit.strip().lower()
    if key in {"angstrom", "a", "ang"}:
        return 1.0 / BOHR_ANGSTROM
    if key in {"bohr", "au"}:
        return 1.0
    raise ValueError(f"Unknown length unit '{unit}'. Use angstrom or bohr.")
