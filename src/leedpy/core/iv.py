"""Energy loop: surface reflection matrices and beam intensities."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from leedpy.core.beams import cutoff_radius_sq, generate_beams, select_beams
from leedpy.core.composite import layer_matrices
from leedpy.core.doubling import bulk_reflection, double_layer_rpm
from leedpy.core.rfactor import IVCurve
from leedpy.core.tmatrix import CumulantCache, atomic_tmatrices
from leedpy.core.types import BeamList, BeamSelection, PhaseShiftSet
from leedpy.errors import InputValidationError
from leedpy.modeling.units import HARTREE_EV

if TYPE_CHECKING:
    from leedpy.modeling.schema import CalcConfig, Crystal


Array = np.ndarray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnergyPoint:
    """One step of the energy loop (Hartree).

    ``energy`` is the complex crystal energy E_vac - V_r + i V_i and ``k_in``
    the parallel momentum of the incident beam, conserved across the surface.
    """

    e_vacuum: float
    energy: complex
    k_in: Array


def incident_k_par(e_vacuum: float, theta: float, phi: float) -> Array:
    """Parallel wave vector of the incident beam; angles in degrees."""

    k = np.sqrt(2.0 * e_vacuum)
    th = np.deg2rad(theta)
    ph = np.deg2rad(phi)
    return k * np.sin(th) * np.array([np.cos(ph), np.sin(ph)])


def energy_point(e_vacuum_ev: float, config: CalcConfig) -> EnergyPoint:
    if e_vacuum_ev <= 0.0:
        raise InputValidationError(f"Vacuum energy must be positive, got {e_vacuum_ev:g} eV.")
    e_vac = float(e_vacuum_ev) / HARTREE_EV
    e_real = (float(e_vacuum_ev) - config.vr) / HARTREE_EV
    e_imag = config.vi / HARTREE_EV
    if e_real <= 0.0:
        raise InputValidationError(f"Crystal energy at {e_vacuum_ev:g} eV is not positive (vr={config.vr:g} eV).")
    return EnergyPoint(
        e_vacuum=e_vac,
        energy=complex(e_real, e_imag),
        k_in=incident_k_par(e_vac, config.theta, config.phi),
    )


def beam_list_for_range(crystal: Crystal, e_max_ev: float, config: CalcConfig) -> BeamList:
    """Every beam that any energy up to ``e_max_ev`` may select.

    The cutoff circle of ``select_beams`` is centred on -k_in, which moves
    with the energy at oblique incidence, so the list is generated around
    k_in = 0 with the radius widened by the largest |k_in|.
    """

    top = energy_point(e_max_ev, config)
    dmin = crystal.dmin
    radius = np.sqrt(cutoff_radius_sq(top.energy.real, config.epsilon, dmin)) + float(np.hypot(*top.k_in))
    decay = (np.log(config.epsilon) / dmin) ** 2
    e_eff = 0.5 * (radius**2 - decay)
    return generate_beams(crystal.a_1x1, crystal.superstructure, np.zeros(2), e_eff, config.epsilon, dmin)


def surface_reflection(
    crystal: Crystal,
    phase_sets: Sequence[PhaseShiftSet],
    point: EnergyPoint,
    config: CalcConfig,
    beam_list: BeamList,
    cache: CumulantCache | None = None,
) -> tuple[BeamSelection, Array]:
    """R^{+-} of the whole surface at one energy, with the beams it is indexed by."""

    beams = select_beams(beam_list, point.energy, point.k_in, config.epsilon, crystal.dmin, crystal.area)
    tmatrices = atomic_tmatrices(phase_sets, point.energy.real, config.l_max, cache=cache)

    kwargs = dict(
        n_sets=crystal.n_sets,
        epsilon=config.epsilon,
        l_max=config.l_max,
        inversion=config.inversion,
    )
    bulk = layer_matrices(crystal.bulk_layer, point.k_in, beams, tmatrices, **kwargs)
    stack = bulk_reflection(
        bulk,
        crystal.bulk_gap,
        beams,
        tol=config.doubling_tol,
        max_iter=config.doubling_max_iter,
    )
    rpm = stack.rpm
    for item, gap in zip(crystal.overlayers, crystal.stacking_gaps()):
        mats = layer_matrices(item.layer, point.k_in, beams, tmatrices, **kwargs)
        rpm = double_layer_rpm(rpm, mats, gap, beams)
    return beams, rpm


def emerging_mask(beams: BeamSelection, e_vacuum: float) -> Array:
    """Beams that propagate in the vacuum at ``e_vacuum`` (Hartree)."""

    k_par_sq = beams.k_x**2 + beams.k_y**2
    return 2.0 * e_vacuum - k_par_sq > 0.0


def beam_intensities(rpm: Array, beams: BeamSelection, e_vacuum: float) -> Array:
    """I_g = |R_g0|^2 Re(kz_g) / Re(kz_0); NaN for beams that do not emerge."""

    i0 = beams.index_of(0.0, 0.0)
    column = rpm[:, i0]
    flux = np.abs(column) ** 2 * beams.kz.real / beams.kz[i0].real
    out = np.full(len(beams), np.nan)
    mask = emerging_mask(beams, e_vacuum)
    out[mask] = flux[mask]
    return out


@dataclass(frozen=True)
class IVResult:
    """Intensities of every beam over the energy loop.

    ``intensities[i, j]`` belongs to ``energies[i]`` (eV) and the beam
    ``(ind1[j], ind2[j])``; NaN where the beam does not emerge.
    """

    energies: Array
    ind1: Array
    ind2: Array
    intensities: Array

    def __post_init__(self) -> None:
        if self.intensities.shape != (self.energies.size, self.ind1.size):
            raise ValueError("intensities must have shape (n_energies, n_beams).")

    @property
    def n_beams(self) -> int:
        return int(self.ind1.size)

    def beam_index(self, ind1: float, ind2: float, tol: float = 1e-4) -> int:
        hit = np.nonzero((np.abs(self.ind1 - ind1) < tol) & (np.abs(self.ind2 - ind2) < tol))[0]
        if hit.size == 0:
            raise KeyError(f"Beam ({ind1:g}, {ind2:g}) was not calculated.")
        return int(hit[0])

    def curve(self, ind1: float, ind2: float) -> IVCurve:
        """Emerging part of one beam's IV curve."""

        j = self.beam_index(ind1, ind2)
        values = self.intensities[:, j]
        ok = np.isfinite(values)
        return IVCurve(self.energies[ok], values[ok], label=beam_label(self.ind1[j], self.ind2[j]))

    def emerging_beams(self) -> list[tuple[float, float]]:
        """Beams with at least one finite intensity, in beam-list order."""

        ok = np.any(np.isfinite(self.intensities), axis=0)
        return [(float(a), float(b)) for a, b in zip(self.ind1[ok], self.ind2[ok])]


def beam_label(ind1: float, ind2: float) -> str:
    return f"({ind1:.4g},{ind2:.4g})"


def compute_iv_curves(
    crystal: Crystal,
    phase_sets: Sequence[PhaseShiftSet],
    energies_ev: Sequence[float] | Array,
    config: CalcConfig,
) -> IVResult:
    """Run the energy loop and collect the intensities of all beams."""

    energies = np.asarray(energies_ev, dtype=float)
    if energies.ndim != 1 or energies.size == 0:
        raise InputValidationError("energies_ev must be a non-empty 1D sequence.")
    if np.any(np.diff(energies) <= 0.0):
        raise InputValidationError("energies_ev must be strictly increasing.")

    beam_list = beam_list_for_range(crystal, float(energies[-1]), config)
    intensities = np.full((energies.size, len(beam_list)), np.nan)
    cache = CumulantCache()
    # Row of every beam-list entry, matched by indices.
    keys = {(round(float(a), 6), round(float(b), 6)): j for j, (a, b) in enumerate(zip(beam_list.ind1, beam_list.ind2))}

    for i, e_ev in enumerate(energies):
        point = energy_point(float(e_ev), config)
        beams, rpm = surface_reflection(crystal, phase_sets, point, config, beam_list, cache=cache)
        values = beam_intensities(rpm, beams, point.e_vacuum)
        cols = [keys[(round(float(a), 6), round(float(b), 6))] for a, b in zip(beams.ind1, beams.ind2)]
        intensities[i, cols] = values
        logger.info(
            "E=%.2f eV: %d beams selected, %d emerging.", e_ev, len(beams), int(np.count_nonzero(np.isfinite(values)))
        )

    return IVResult(
        energies=energies,
        ind1=np.asarray(beam_list.ind1, dtype=float),
        ind2=np.asarray(beam_list.ind2, dtype=float),
        intensities=intensities,
    )
