"""Atomic t-matrices from phase shifts, including thermal vibrations.

All t-matrices returned here are in the normalisation t_l = sin(delta_l)
exp(i delta_l) (``-kappa`` times the T=0 matrix ``-t_l / kappa``), indexed by
``lm_index(l, m)``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from leedpy.core.linalg import lm_arrays, n_lm
from leedpy.core.special import dipole_matrices, modified_spherical_bessel, wigner3j_zero_squared
from leedpy.core.types import GEO_TOLERANCE, PhaseShiftSet, PhaseShiftTable, TemperatureTreatment
from leedpy.errors import ConvergenceError, InputValidationError


Array = np.ndarray

logger = logging.getLogger(__name__)

CONV_TEST = 1e-6
NITER = 1000
_ENERGY_TOL = 1e-10
_ZERO_REL = 1e-12


def interpolate_phase_shifts(table: PhaseShiftTable, energy: float) -> Array:
    """Linearly interpolate delta_l at ``energy`` (Hartree).

    Energies above the table are extrapolated linearly from the last two
    points with a warning; energies below it are rejected.
    """

    e = table.energies
    s = table.shifts
    if energy < e[0] - _ENERGY_TOL:
        raise InputValidationError(
            f"Energy {energy:.4f} H is below the first phase-shift energy {e[0]:.4f} H ({table.source or 'table'})."
        )
    if e.size == 1:
        return s[0].copy()
    if energy > e[-1]:
        logger.warning(
            "Energy %.4f H is above the last phase-shift energy %.4f H (%s); extrapolating.",
            energy,
            e[-1],
            table.source or "table",
        )
    i = int(np.searchsorted(e, energy, side="right"))
    i = min(max(i, 1), e.size - 1)
    frac = (energy - e[i - 1]) / (e[i] - e[i - 1])
    return s[i - 1] + frac * (s[i] - s[i - 1])


def tl_from_phase_shifts(delta: Array) -> Array:
    """t_l = sin(delta_l) exp(i delta_l)."""

    delta = np.asarray(delta, dtype=float)
    return np.sin(delta) * np.exp(1j * delta)


def temperature_tl(tl: Array, energy: float, u2: float, l_max_out: int | None = None) -> Array:
    """Isotropic Debye-Waller t_l(T) from t_l(0).

    t_l''(T) = exp(-x) sum_{l,L} (2l+1)(2L+1) i_L(x) (l L l''; 0 0 0)^2 t_l(0)
    with x = 2 kappa^2 <u^2>, kappa^2 = 2 E and <u^2> the mean square
    amplitude along one axis.
    """

    tl = np.asarray(tl, dtype=np.complex128)
    l_max_0 = tl.size - 1
    l_out = l_max_0 if l_max_out is None else int(l_max_out)
    x = 4.0 * float(energy) * float(u2)
    if x <= 0.0:
        out = np.zeros(l_out + 1, dtype=np.complex128)
        n = min(l_out, l_max_0) + 1
        out[:n] = tl[:n]
        return out

    big_l = l_max_0 + l_out
    bessel = modified_spherical_bessel(big_l, x)
    out = np.zeros(l_out + 1, dtype=np.complex128)
    for lpp in range(l_out + 1):
        acc = 0.0 + 0.0j
        for l in range(l_max_0 + 1):
            for big in range(abs(l - lpp), l + lpp + 1):
                w = wigner3j_zero_squared(l, big, lpp)
                if w:
                    acc += (2 * l + 1) * (2 * big + 1) * bessel[big] * w * tl[l]
        out[lpp] = np.exp(-x) * acc
    return out


class CumulantCache:
    """Dipole matrices M_x, M_y, M_z and their squares for one l_max.

    Owned by the caller and passed to :func:`cumulant_tmatrix`; rebuilt only
    when a different l_max is requested.
    """

    def __init__(self) -> None:
        self._l_max: int | None = None
        self._mats: tuple[Array, ...] | None = None
        self.n_builds = 0

    @property
    def l_max(self) -> int | None:
        return self._l_max

    def matrices(self, l_max: int) -> tuple[Array, ...]:
        """Return (M_x, M_y, M_z, M_x^2, M_y^2, M_z^2)."""

        if self._mats is None or self._l_max != l_max:
            mx, my, mz = dipole_matrices(int(l_max))
            self._mats = (mx, my, mz, mx @ mx, my @ my, mz @ mz)
            self._l_max = int(l_max)
            self.n_builds += 1
        return self._mats


def _relative_change(t_n: Array, t_acc: Array) -> tuple[float, float]:
    """Summed |t_n / t_acc| over the real and the imaginary parts separately."""

    errs = []
    for part_n, part_acc in ((t_n.real, t_acc.real), (t_n.imag, t_acc.imag)):
        scale = float(np.max(np.abs(part_acc)))
        if scale == 0.0:
            errs.append(0.0)
            continue
        mask = np.abs(part_acc) > _ZERO_REL * scale
        errs.append(float(np.sum(np.abs(part_n[mask] / part_acc[mask]))))
    return errs[0], errs[1]


def cumulant_tmatrix(
    tl0: Array,
    l_max_t: int,
    displacement: Array,
    energy: float,
    cache: CumulantCache | None = None,
) -> Array:
    """Non-diagonal thermal t-matrix by cumulant expansion.

    Starting from T_0 = diag(-t_l / kappa) the series
    T_(n+1) = -kappa^2/(n+1) sum_a u_a^2 (M_a M_a T_n + T_n M_a M_a - 2 M_a T_n M_a)
    is summed until the relative changes of the real and of the imaginary
    part each drop below ``CONV_TEST`` times the number of matrix elements. Returns the sum times ``-kappa``.
    """

    tl0 = np.asarray(tl0, dtype=np.complex128)
    l_max_0 = tl0.size - 1
    if l_max_t < l_max_0:
        raise InputValidationError(f"l_max_t={l_max_t} must not be smaller than the phase-shift l_max={l_max_0}.")
    if l_max_t != l_max_0:
        logger.warning("Cumulant t-matrix: l_max %d of the phase shifts extended to %d with zeros.", l_max_0, l_max_t)
    if energy <= 0.0:
        raise InputValidationError("Energy must be positive for the cumulant expansion.")

    kappa = np.sqrt(2.0 * float(energy))
    u = np.asarray(displacement, dtype=float)
    l_of, _ = lm_arrays(l_max_t)
    tl_full = np.zeros(l_max_t + 1, dtype=np.complex128)
    tl_full[: l_max_0 + 1] = tl0
    t0 = np.diag(-tl_full[l_of] / kappa)

    if np.all(np.abs(u) < GEO_TOLERANCE):
        logger.warning("Cumulant t-matrix: vibrational displacements vanish, returning the T=0 matrix.")
        return -kappa * t0

    cache = CumulantCache() if cache is None else cache
    mx, my, mz, mxx, myy, mzz = cache.matrices(l_max_t)
    axes = [(u2, m, mm) for u2, m, mm in zip(u**2, (mx, my, mz), (mxx, myy, mzz)) if u2 > 0.0]

    conv = CONV_TEST * n_lm(l_max_t) ** 2
    t_n = t0
    t_acc = t0.copy()
    for it in range(NITER):
        term = np.zeros_like(t_n)
        for u2, m, mm in axes:
            term += u2 * (mm @ t_n + t_n @ mm - 2.0 * (m @ t_n @ m))
        t_n = -(kappa**2) / (it + 1) * term
        t_acc += t_n
        err_re, err_im = _relative_change(t_n, t_acc)
        if err_re < conv and err_im < conv:
            logger.debug("Cumulant expansion converged after %d iterations.", it + 1)
            break
    else:
        raise ConvergenceError(f"Cumulant expansion did not converge within {NITER} iterations.")
    return -kappa * t_acc


def diagonal_tmatrix(tl: Array, l_max: int) -> Array:
    """Expand t_l into the diagonal (l_max+1)^2 matrix."""

    l_of, _ = lm_arrays(l_max)
    full = np.zeros(l_max + 1, dtype=np.complex128)
    n = min(l_max + 1, np.asarray(tl).size)
    full[:n] = np.asarray(tl)[:n]
    return np.diag(full[l_of])


def atomic_tmatrices(
    phase_sets: Sequence[PhaseShiftSet],
    energy: float,
    l_max: int,
    cache: CumulantCache | None = None,
) -> list[Array]:
    """One (l_max+1)^2 square t-matrix per phase-shift set at crystal energy ``energy``."""

    out: list[Array] = []
    for pset in phase_sets:
        tl0 = tl_from_phase_shifts(interpolate_phase_shifts(pset.table, energy))
        if pset.treatment is TemperatureTreatment.NOND:
            tl0 = tl0[: l_max + 1]
            out.append(cumulant_tmatrix(tl0, l_max, pset.displacement, energy, cache=cache))
        else:
            tl = temperature_tl(tl0, energy, pset.mean_square_displacement, l_max_out=l_max)
            out.append(diagonal_tmatrix(tl, l_max))
    return out


def required_l_max(tmatrix: Array, epsilon: float) -> int:
    """Largest l whose t-matrix rows still exceed ``epsilon`` in magnitude (at least 1)."""

    n = tmatrix.shape[0]
    l_max = int(round(np.sqrt(n))) - 1
    l_of, _ = lm_arrays(l_max)
    amp = np.max(np.abs(tmatrix), axis=1)
    above = l_of[amp >= epsilon]
    return max(1, int(above.max()) if above.size else 1)
