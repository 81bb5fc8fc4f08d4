"""Reliability factors between theoretical and experimental IV curves.

All curves are compared on a common equidistant energy grid over their
overlap. The theoretical curve is shifted rigidly in energy to absorb the
uncertainty of the real inner potential; the minimum over the shift window
is reported.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.integrate import trapezoid
from scipy.ndimage import gaussian_filter1d

from leedpy.errors import InputValidationError

if TYPE_CHECKING:
    from leedpy.core.types import PhaseShiftSet
    from leedpy.modeling.schema import CalcConfig, Crystal


Array = np.ndarray

logger = logging.getLogger(__name__)

RFACTOR_KINDS = ("rp", "r1", "r2")
_MIN_POINTS = 4


@dataclass(frozen=True)
class IVCurve:
    """Intensity versus energy (eV) of one beam."""

    energies: Array
    intensities: Array
    label: str = ""

    def __post_init__(self) -> None:
        e = np.array(self.energies, dtype=float)
        i = np.array(self.intensities, dtype=float)
        if e.ndim != 1 or e.shape != i.shape:
            raise ValueError("energies and intensities must be 1D arrays of equal length.")
        if e.size > 1 and np.any(np.diff(e) <= 0.0):
            order = np.argsort(e, kind="stable")
            e = e[order]
            i = i[order]
            if np.any(np.diff(e) <= 0.0):
                raise ValueError(f"Curve {self.label!r} has repeated energies.")
        object.__setattr__(self, "energies", e)
        object.__setattr__(self, "intensities", i)

    def __len__(self) -> int:
        return int(self.energies.size)

    @property
    def e_min(self) -> float:
        return float(self.energies[0])

    @property
    def e_max(self) -> float:
        return float(self.energies[-1])

    def shifted(self, shift: float) -> IVCurve:
        return IVCurve(self.energies + shift, self.intensities, label=self.label)

    def on_grid(self, grid: Array) -> Array:
        return np.interp(grid, self.energies, self.intensities)


@dataclass(frozen=True)
class RFactorResult:
    """Best R-factor of a comparison and where it was found."""

    value: float
    shift: float
    overlap: float
    kind: str
    per_beam: dict[str, float]


def remove_negative_data(curve: IVCurve, mode: str = "cut") -> IVCurve:
    """Handle negative intensities of a measured curve.

    ``mode="cut"`` drops the points, ``"zero"`` clips them to zero and
    ``"offset"`` lifts the whole curve so its minimum becomes zero.
    """

    values = curve.intensities
    if not np.any(values < 0.0):
        return curve
    if mode == "cut":
        keep = values >= 0.0
        return IVCurve(curve.energies[keep], values[keep], label=curve.label)
    if mode == "zero":
        return IVCurve(curve.energies, np.clip(values, 0.0, None), label=curve.label)
    if mode == "offset":
        return IVCurve(curve.energies, values - float(values.min()), label=curve.label)
    raise InputValidationError(f"Unknown negative-data mode '{mode}'. Use cut, zero or offset.")


def _uniform_grid(e_min: float, e_max: float, step: float) -> Array:
    n = int(np.floor((e_max - e_min) / step + 1e-9)) + 1
    return e_min + step * np.arange(n)


def smooth_curve(curve: IVCurve, sigma: float, step: float | None = None) -> IVCurve:
    """Gaussian smoothing with width ``sigma`` (eV) on an equidistant grid."""

    if sigma <= 0.0:
        return curve
    if len(curve) < 2:
        return curve
    if step is None:
        step = float(np.min(np.diff(curve.energies)))
    grid = _uniform_grid(curve.e_min, curve.e_max, step)
    values = gaussian_filter1d(curve.on_grid(grid), sigma / step, mode="nearest")
    return IVCurve(grid, values, label=curve.label)


def pendry_y(intensities: Array, step: float, vi: float) -> Array:
    """Pendry Y function Y = L / (1 + V_i^2 L^2) with L = I'/I."""

    values = np.asarray(intensities, dtype=float)
    deriv = np.gradient(values, step)
    # Y = I I' / (I^2 + V_i^2 I'^2), finite where I vanishes.
    den = values**2 + (vi * deriv) ** 2
    y = np.zeros_like(values)
    ok = den > 0.0
    y[ok] = values[ok] * deriv[ok] / den[ok]
    return y


def r_pendry(theory: Array, experiment: Array, step: float, vi: float) -> float:
    y_th = pendry_y(theory, step, vi)
    y_ex = pendry_y(experiment, step, vi)
    den = trapezoid(y_th**2 + y_ex**2, dx=step)
    if den <= 0.0:
        return float("nan")
    return float(trapezoid((y_th - y_ex) ** 2, dx=step) / den)


def _scale(theory: Array, experiment: Array, step: float) -> float:
    norm = trapezoid(theory, dx=step)
    if norm == 0.0:
        return 1.0
    return float(trapezoid(experiment, dx=step) / norm)


def r_1(theory: Array, experiment: Array, step: float) -> float:
    """Zanazzi-Jona style R1 = int |c I_th - I_ex| / int |I_ex|."""

    c = _scale(theory, experiment, step)
    den = trapezoid(np.abs(experiment), dx=step)
    if den <= 0.0:
        return float("nan")
    return float(trapezoid(np.abs(c * theory - experiment), dx=step) / den)


def r_2(theory: Array, experiment: Array, step: float) -> float:
    """R2 = int (c I_th - I_ex)^2 / int I_ex^2."""

    c = _scale(theory, experiment, step)
    den = trapezoid(experiment**2, dx=step)
    if den <= 0.0:
        return float("nan")
    return float(trapezoid((c * theory - experiment) ** 2, dx=step) / den)


def _single(theory: IVCurve, experiment: IVCurve, kind: str, vi: float, step: float) -> tuple[float, float]:
    e_lo = max(theory.e_min, experiment.e_min)
    e_hi = min(theory.e_max, experiment.e_max)
    if e_hi - e_lo < (_MIN_POINTS - 1) * step:
        return float("nan"), 0.0
    grid = _uniform_grid(e_lo, e_hi, step)
    th = theory.on_grid(grid)
    ex = experiment.on_grid(grid)
    if kind == "rp":
        value = r_pendry(th, ex, step, vi)
    elif kind == "r1":
        value = r_1(th, ex, step)
    else:
        value = r_2(th, ex, step)
    return value, float(grid[-1] - grid[0])


def _as_curves(curves: IVCurve | Sequence[IVCurve]) -> list[IVCurve]:
    return [curves] if isinstance(curves, IVCurve) else list(curves)


def rfactor(
    theory: IVCurve | Sequence[IVCurve],
    experiment: IVCurve | Sequence[IVCurve],
    *,
    kind: str = "rp",
    vi: float = 4.0,
    shift_range: float = 10.0,
    shift_step: float = 0.25,
    grid_step: float = 0.5,
) -> RFactorResult:
    """Overlap-weighted R-factor of matching beams, minimised over energy shifts.

    Beams are matched by ``label``; a single pair of curves is matched
    regardless of labels. Shifts run over ``[-shift_range, shift_range]``.
    """

    if kind not in RFACTOR_KINDS:
        raise InputValidationError(f"Unknown R-factor kind '{kind}'. Use one of {', '.join(RFACTOR_KINDS)}.")
    if grid_step <= 0.0 or shift_step <= 0.0:
        raise InputValidationError("grid_step and shift_step must be positive.")
    th_list = _as_curves(theory)
    ex_list = _as_curves(experiment)
    if len(th_list) == 1 and len(ex_list) == 1:
        pairs = [(th_list[0], ex_list[0])]
    else:
        by_label = {c.label: c for c in th_list}
        pairs = [(by_label[c.label], c) for c in ex_list if c.label in by_label]
        missing = [c.label for c in ex_list if c.label not in by_label]
        if missing:
            logger.warning("No theoretical curve for experimental beam(s): %s.", ", ".join(missing))
    if not pairs:
        raise InputValidationError("No theoretical and experimental curves share a beam label.")

    n_shift = int(np.floor(shift_range / shift_step + 1e-9))
    shifts = shift_step * np.arange(-n_shift, n_shift + 1)
    best: RFactorResult | None = None
    for shift in shifts:
        per_beam: dict[str, float] = {}
        total = 0.0
        weight = 0.0
        for th, ex in pairs:
            value, overlap = _single(th.shifted(float(shift)), ex, kind, vi, grid_step)
            if overlap <= 0.0 or not np.isfinite(value):
                continue
            per_beam[ex.label] = value
            total += value * overlap
            weight += overlap
        if weight <= 0.0:
            continue
        value = total / weight
        if best is None or value < best.value:
            best = RFactorResult(value=value, shift=float(shift), overlap=weight, kind=kind, per_beam=per_beam)
    if best is None:
        raise InputValidationError("Theoretical and experimental curves do not overlap in energy.")
    if abs(best.shift) >= shift_range - 0.5 * shift_step and n_shift > 0:
        logger.warning("Best energy shift %.2f eV lies at the edge of the search window.", best.shift)
    return best


class RFactorObjective:
    """Parameter vector -> R-factor, for external structure-search drivers.

    ``builder`` maps the parameter vector to a :class:`Crystal`. Each call
    recomputes the IV curves of the beams present in ``experiment``; the
    result only depends on the inputs.
    """

    def __init__(
        self,
        builder: Callable[[Array], Crystal],
        phase_sets: Sequence[PhaseShiftSet],
        energies_ev: Sequence[float] | Array,
        config: CalcConfig,
        experiment: Sequence[IVCurve],
        **rfactor_kwargs: Any,
    ) -> None:
        self.builder = builder
        self.phase_sets = list(phase_sets)
        self.energies_ev = np.asarray(energies_ev, dtype=float)
        self.config = config
        self.experiment = list(experiment)
        self.rfactor_kwargs = rfactor_kwargs
        self.n_evaluations = 0
        self.last_result: RFactorResult | None = None

    def __call__(self, params: Sequence[float] | Array) -> float:
        from leedpy.core.iv import compute_iv_curves

        crystal = self.builder(np.asarray(params, dtype=float))
        result = compute_iv_curves(crystal, self.phase_sets, self.energies_ev, self.config)
        theory = [result.curve(*beam) for beam in result.emerging_beams()]
        self.last_result = rfactor(theory, self.experiment, **self.rfactor_kwargs)
        self.n_evaluations += 1
        logger.info("R-factor evaluation %d: %.4f (shift %.2f eV).", self.n_evaluations, self.last_result.value, self.last_result.shift)
        return self.last_result.value
