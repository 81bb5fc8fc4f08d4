"""Calculation parameters of a LEED IV run."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CalcConfig:
    """Knobs of the multiple-scattering calculation.

    Energies (``vr``, ``vi``) are in eV and angles in degrees; ``vr`` is the
    real inner potential (negative below the vacuum level), ``vi`` the
    absorptive optical potential.
    """

    l_max: int = 8
    epsilon: float = 1e-3
    vr: float = -10.0
    vi: float = 4.0
    theta: float = 0.0
    phi: float = 0.0
    inversion: str = "dense"
    doubling_tol: float = 1e-6
    doubling_max_iter: int = 16

    def __post_init__(self) -> None:
        if self.l_max < 1:
            raise ValueError("l_max must be at least 1.")
        if not 0.0 < self.epsilon < 1.0:
            raise ValueError("epsilon must lie in (0, 1).")
        if self.vi <= 0.0:
            raise ValueError("vi must be positive: lattice sums need damping.")
        if not 0.0 <= self.theta < 90.0:
            raise ValueError("theta must lie in [0, 90) degrees.")


@dataclass(frozen=True)
class RFactorConfig:
    """R-factor type and energy-shift search window (eV)."""

    kind: str = "rp"
    shift_range: float = 10.0
    shift_step: float = 0.25
    grid_step: float = 0.5
    vi: float = 4.0
