import numpy as np
import pytest

from leedpy.core.iv import (
    IVResult,
    beam_list_for_range,
    compute_iv_curves,
    energy_point,
    incident_k_par,
    surface_reflection,
)
from leedpy.core.rfactor import RFactorObjective
from leedpy.errors import InputValidationError
from leedpy.modeling import CalcConfig
from leedpy.modeling.units import HARTREE_EV
from leedpy.models import SquareCrystalParams, constant_phase_table, phase_set, square_crystal


A = 4.7
CONFIG = CalcConfig(l_max=3, epsilon=1e-2, vr=-10.0, vi=4.0)
PHASES = [phase_set(constant_phase_table([0.8, 0.4, 0.1, 0.02]))]


def _crystal(spacing: float = 3.3, top: float = 3.0):
    return square_crystal(SquareCrystalParams(a=A, spacing=spacing, n_overlayers=1, top_spacing=top))


@pytest.fixture(scope="module")
def normal_incidence() -> IVResult:
    return compute_iv_curves(_crystal(), PHASES, [60.0, 70.0, 80.0], CONFIG)


def test_energy_point_includes_inner_potential() -> None:
    point = energy_point(50.0, CONFIG)
    assert point.e_vacuum == pytest.approx(50.0 / HARTREE_EV)
    assert point.energy.real == pytest.approx(60.0 / HARTREE_EV)
    assert point.energy.imag == pytest.approx(4.0 / HARTREE_EV)
    assert np.allclose(point.k_in, 0.0)
    with pytest.raises(InputValidationError):
        energy_point(-1.0, CONFIG)
    with pytest.raises(InputValidationError):
        energy_point(5.0, CalcConfig(vr=10.0))


def test_oblique_incidence_parallel_momentum() -> None:
    k = incident_k_par(2.0, 30.0, 90.0)
    assert np.allclose(k, [0.0, 1.0], atol=1e-12)
    point = energy_point(100.0, CalcConfig(theta=20.0, phi=45.0))
    assert np.hypot(*point.k_in) == pytest.approx(np.sqrt(2.0 * 100.0 / HARTREE_EV) * np.sin(np.deg2rad(20.0)))


def test_beam_list_covers_every_energy_at_oblique_incidence() -> None:
    config = CalcConfig(l_max=3, epsilon=1e-2, theta=40.0, phi=10.0)
    crystal = _crystal()
    beam_list = beam_list_for_range(crystal, 120.0, config)
    listed = {(round(a, 6), round(b, 6)) for a, b in zip(beam_list.ind1, beam_list.ind2)}
    for e_ev in (40.0, 80.0, 120.0):
        beams, rpm = surface_reflection(crystal, PHASES, energy_point(e_ev, config), config, beam_list)
        assert rpm.shape == (len(beams), len(beams))
        assert {(round(a, 6), round(b, 6)) for a, b in zip(beams.ind1, beams.ind2)} <= listed


def test_specular_intensity_is_physical(normal_incidence: IVResult) -> None:
    i00 = normal_incidence.intensities[:, normal_incidence.beam_index(0.0, 0.0)]
    assert np.all(np.isfinite(i00))
    assert np.all(i00 > 0.0)
    assert np.all(np.nansum(normal_incidence.intensities, axis=1) < 1.0)


def test_symmetric_beams_agree_at_normal_incidence(normal_incidence: IVResult) -> None:
    ref = normal_incidence.curve(1.0, 0.0).intensities
    for beam in ((0.0, 1.0), (-1.0, 0.0), (0.0, -1.0)):
        assert np.allclose(normal_incidence.curve(*beam).intensities, ref, rtol=1e-6)


def test_evanescent_beams_have_no_intensity(normal_incidence: IVResult) -> None:
    g_sq = (2.0 * np.pi / A) ** 2 * (normal_incidence.ind1**2 + normal_incidence.ind2**2)
    for row, e_ev in zip(normal_incidence.intensities, normal_incidence.energies):
        closed = g_sq >= 2.0 * e_ev / HARTREE_EV
        assert np.all(np.isnan(row[closed]))
        assert np.all(np.isfinite(row[~closed]))
    assert np.isnan(normal_incidence.intensities).any()


def test_result_curves_and_labels(normal_incidence: IVResult) -> None:
    curve = normal_incidence.curve(0.0, 0.0)
    assert curve.label == "(0,0)"
    assert np.allclose(curve.energies, [60.0, 70.0, 80.0])
    assert normal_incidence.emerging_beams()[0] == (0.0, 0.0)
    with pytest.raises(KeyError):
        normal_incidence.beam_index(7.0, 7.0)


def test_energies_must_increase() -> None:
    with pytest.raises(InputValidationError):
        compute_iv_curves(_crystal(), PHASES, [70.0, 60.0], CONFIG)


def test_rfactor_objective_is_zero_at_the_reference_structure() -> None:
    energies = [60.0, 65.0, 70.0, 75.0, 80.0]
    reference = compute_iv_curves(_crystal(), PHASES, energies, CONFIG)
    experiment = [reference.curve(*beam) for beam in reference.emerging_beams()]

    def builder(params: np.ndarray):
        return _crystal(spacing=float(params[0]), top=float(params[1]))

    objective = RFactorObjective(builder, PHASES, energies, CONFIG, experiment, shift_range=2.0)
    best = objective([3.3, 3.0])
    assert best == pytest.approx(0.0, abs=1e-10)
    assert objective([3.3, 3.6]) > best
    assert objective.n_evaluations == 2
    assert objective.last_result is not None
