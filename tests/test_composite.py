import numpy as np
import pytest

from leedpy.core.beams import generate_beams, select_beams
from leedpy.core.composite import composite_layer_matrices, layer_matrices, order_atoms_by_plane
from leedpy.core.doubling import double_layer
from leedpy.core.tmatrix import diagonal_tmatrix, tl_from_phase_shifts
from leedpy.core.types import Atom, Layer
from leedpy.errors import InputValidationError


A = 4.7
A_1X1 = np.array([[A, 0.0], [0.0, A]])
K_IN = np.array([0.11, 0.04])
T_ATOM = [diagonal_tmatrix(tl_from_phase_shifts([0.3, 0.1, 0.02]), 2)]


def _beams(energy: complex, epsilon: float = 1e-3, dmin: float = 3.0, superstructure=None):
    beam_list = generate_beams(A_1X1, superstructure, K_IN, energy.real, epsilon, dmin)
    return select_beams(beam_list, energy, K_IN, epsilon, dmin, A * A)


def _layer(*positions, lattice=A_1X1, rel_area=1.0) -> Layer:
    return Layer(atoms=tuple(Atom(type=0, position=np.asarray(p, dtype=float)) for p in positions), lattice=lattice, rel_area=rel_area)


def test_atoms_are_ordered_by_most_populated_plane() -> None:
    layer = _layer((0.0, 0.0, 1.0), (0.0, 0.0, 0.0), (2.0, 0.0, 1.0))
    order, n_plane = order_atoms_by_plane(layer)
    assert n_plane == 2
    assert sorted(order[:2]) == [0, 2]
    assert order[2] == 1


def test_non_scattering_layer_only_propagates() -> None:
    beams = _beams(1.2 + 0.1j)
    zero = [np.zeros((9, 9), dtype=np.complex128)]
    layer = _layer((0.0, 0.0, 0.0), (1.0, 2.0, 1.5))
    mats = composite_layer_matrices(layer, K_IN, beams, zero, epsilon=1e-3, l_max=2)
    phase = np.exp(1j * beams.kz * 1.5)
    assert np.allclose(mats.tpp, np.diag(phase))
    assert np.allclose(mats.tmm, np.diag(phase))
    assert np.allclose(mats.rpm, 0.0)
    assert np.allclose(mats.rmp, 0.0)


def test_single_layer_conserves_flux_for_weak_damping() -> None:
    # Below the first diffraction threshold only the specular beam propagates.
    beams = _beams(0.6 + 0.02j)
    mats = composite_layer_matrices(_layer((0.0, 0.0, 0.0)), K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2)
    i0 = beams.index_of(0.0, 0.0)
    total = abs(mats.tpp[i0, i0]) ** 2 + abs(mats.rmp[i0, i0]) ** 2
    assert mats.tpp.shape == (len(beams), len(beams))
    assert abs(total - 1.0) < 0.15
    assert abs(mats.rmp[i0, i0]) > 1e-3


def test_single_atom_square_layer_reflects_and_transmits_unit_flux() -> None:
    a = 2.5
    lattice = np.array([[a, 0.0], [0.0, a]])
    k_in = np.zeros(2)
    energy = 1.0 + 1e-3j
    beam_list = generate_beams(lattice, None, k_in, energy.real, 1e-3, 2.0)
    beams = select_beams(beam_list, energy, k_in, 1e-3, 2.0, a * a)
    assert len(beams) > 1
    layer = _layer((0.0, 0.0, 0.0), lattice=lattice)
    mats = composite_layer_matrices(layer, k_in, beams, T_ATOM, epsilon=1e-3, l_max=2)
    for name in ("tpp", "tmm", "rpm", "rmp"):
        assert getattr(mats, name).shape == (len(beams), len(beams))
    i0 = beams.index_of(0.0, 0.0)
    total = abs(mats.tpp[i0, i0]) ** 2 + abs(mats.rmp[i0, i0]) ** 2
    assert total == pytest.approx(1.0, abs=0.02)
    assert abs(mats.rmp[i0, i0]) ** 2 > 1e-4


def test_layer_is_independent_of_the_cell_used_to_describe_it() -> None:
    beams = _beams(1.5 + 0.12j)
    single = composite_layer_matrices(_layer((0.0, 0.0, 0.0)), K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2)
    super_lattice = np.array([[A, A], [A, -A]])
    double = _layer((0.0, 0.0, 0.0), (A, 0.0, 0.0), lattice=super_lattice, rel_area=2.0)
    two = composite_layer_matrices(double, K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2)
    for name in ("tpp", "tmm", "rpm", "rmp"):
        assert np.allclose(getattr(single, name), getattr(two, name), rtol=1e-6, atol=1e-8)


def test_partitioned_inversion_matches_dense() -> None:
    beams = _beams(1.5 + 0.12j)
    layer = _layer((0.0, 0.0, 0.0), (2.35, 0.0, 0.0), (1.2, 2.35, 1.4))
    dense = composite_layer_matrices(layer, K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2, inversion="dense")
    block = composite_layer_matrices(layer, K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2, inversion="partitioned")
    for name in ("tpp", "tmm", "rpm", "rmp"):
        assert np.allclose(getattr(dense, name), getattr(block, name), rtol=1e-9, atol=1e-12)


def test_stacked_composite_agrees_with_layer_doubling() -> None:
    energy = 2.0 + 0.15j
    eps = 1e-4
    beams = _beams(energy, epsilon=eps, dmin=3.0)
    composite = composite_layer_matrices(
        _layer((0.0, 0.0, 0.0), (0.0, 0.0, 3.0)), K_IN, beams, T_ATOM, epsilon=eps, l_max=2
    )
    plane = composite_layer_matrices(_layer((0.0, 0.0, 0.0)), K_IN, beams, T_ATOM, epsilon=eps, l_max=2)
    stacked = double_layer(plane, plane, np.array([0.0, 0.0, 3.0]), beams)
    for name in ("tpp", "tmm", "rpm", "rmp"):
        assert np.allclose(getattr(composite, name), getattr(stacked, name), atol=1e-2)


def test_1x1_layer_does_not_mix_superstructure_beam_sets() -> None:
    sup = np.array([[1.0, 1.0], [-1.0, 1.0]])
    beams = _beams(1.5 + 0.12j, superstructure=sup)
    mats = layer_matrices(_layer((0.0, 0.0, 0.0)), K_IN, beams, T_ATOM, n_sets=2, epsilon=1e-3, l_max=2)
    cross = np.ix_(beams.set_id == 0, beams.set_id == 1)
    assert np.allclose(mats.rpm[cross], 0.0)
    assert np.max(np.abs(mats.rpm[np.ix_(beams.set_id == 1, beams.set_id == 1)])) > 1e-4


def test_layer_with_unsupported_cell_is_rejected() -> None:
    beams = _beams(1.5 + 0.12j)
    odd = _layer((0.0, 0.0, 0.0), lattice=np.array([[3 * A, 0.0], [0.0, A]]), rel_area=3.0)
    with pytest.raises(InputValidationError):
        layer_matrices(odd, K_IN, beams, T_ATOM, n_sets=2, epsilon=1e-3, l_max=2)


def test_missing_tmatrix_type_is_rejected() -> None:
    beams = _beams(1.5 + 0.12j)
    layer = Layer(atoms=(Atom(type=1, position=np.zeros(3)),), lattice=A_1X1)
    with pytest.raises(InputValidationError):
        composite_layer_matrices(layer, K_IN, beams, T_ATOM, epsilon=1e-3, l_max=2)
