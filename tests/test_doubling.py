import numpy as np
import pytest

from leedpy.core.doubling import bulk_reflection, double_layer, double_layer_rpm, propagators
from leedpy.core.types import BeamSelection, LayerMatrices
from leedpy.errors import ConvergenceError


def _beams(n: int = 5) -> BeamSelection:
    energy = 1.8 + 0.1j
    ind1 = np.arange(n, dtype=float) - n // 2
    ind2 = np.zeros(n)
    k_x = 0.3 + 0.9 * ind1
    k_y = np.full(n, 0.05)
    kz = np.sqrt(2.0 * energy - (k_x**2 + k_y**2) + 0j)
    return BeamSelection(
        ind1=ind1,
        ind2=ind2,
        set_id=np.zeros(n, dtype=int),
        k_x=k_x,
        k_y=k_y,
        kz=kz,
        k=complex(np.sqrt(2.0 * energy)),
        akz=1.0 / (25.0 * kz),
        energy=energy,
    )


def _random_layer(rng: np.random.Generator, n: int, scale: float = 0.3, transmission: float = 1.0) -> LayerMatrices:
    def block() -> np.ndarray:
        return scale * (rng.normal(size=(n, n)) + 1j * rng.normal(size=(n, n))) / n

    return LayerMatrices(
        tpp=transmission * np.eye(n) + block(), tmm=transmission * np.eye(n) + block(), rpm=block(), rmp=block()
    )


def _transparent(n: int) -> LayerMatrices:
    eye = np.eye(n, dtype=np.complex128)
    zero = np.zeros((n, n), dtype=np.complex128)
    return LayerMatrices(tpp=eye, tmm=eye.copy(), rpm=zero, rmp=zero.copy())


def test_propagators_follow_plane_wave_phases() -> None:
    beams = _beams()
    vec = np.array([0.4, -0.2, 1.3])
    p_plus, p_minus = propagators(beams, vec)
    lateral = beams.k_x * vec[0] + beams.k_y * vec[1]
    assert np.allclose(p_plus, np.exp(1j * (lateral + beams.kz * vec[2])))
    assert np.allclose(p_minus, np.exp(1j * (beams.kz * vec[2] - lateral)))
    # Decaying in both directions for a damped medium.
    assert np.all(np.abs(p_plus * p_minus) < 1.0)


def test_transparent_top_layer_only_propagates_the_reflection() -> None:
    rng = np.random.default_rng(3)
    beams = _beams()
    lower = _random_layer(rng, len(beams))
    vec = np.array([0.1, 0.2, 2.0])
    p_plus, p_minus = propagators(beams, vec)
    stack = double_layer(lower, _transparent(len(beams)), vec, beams)
    assert np.allclose(stack.rpm, p_plus[:, None] * lower.rpm * p_minus[None, :])
    assert np.allclose(stack.rmp, lower.rmp)


def test_reflection_only_update_matches_full_doubling() -> None:
    rng = np.random.default_rng(11)
    beams = _beams()
    a = _random_layer(rng, len(beams))
    b = _random_layer(rng, len(beams))
    vec = np.array([0.0, 0.3, 1.7])
    full = double_layer(a, b, vec, beams)
    assert np.allclose(double_layer_rpm(a.rpm, b, vec, beams), full.rpm)


def test_doubling_is_associative() -> None:
    rng = np.random.default_rng(5)
    beams = _beams()
    a, b, c = (_random_layer(rng, len(beams)) for _ in range(3))
    v1 = np.array([0.2, 0.0, 1.5])
    v2 = np.array([-0.1, 0.4, 2.1])
    left = double_layer(double_layer(a, b, v1, beams), c, v2, beams)
    right = double_layer(a, double_layer(b, c, v2, beams), v1, beams)
    for name in ("tpp", "tmm", "rpm", "rmp"):
        assert np.allclose(getattr(left, name), getattr(right, name), atol=1e-10)


def test_bulk_reflection_is_a_fixed_point_of_adding_one_layer() -> None:
    rng = np.random.default_rng(7)
    beams = _beams()
    layer = _random_layer(rng, len(beams), scale=0.1, transmission=0.7)
    vec = np.array([0.0, 0.0, 3.0])
    bulk = bulk_reflection(layer, vec, beams, tol=1e-10, max_iter=30)
    once_more = double_layer_rpm(bulk.rpm, layer, vec, beams)
    assert np.allclose(once_more, bulk.rpm, atol=1e-8)


def test_bulk_reflection_reports_missing_convergence() -> None:
    rng = np.random.default_rng(7)
    beams = _beams()
    layer = _random_layer(rng, len(beams), scale=0.1, transmission=0.7)
    with pytest.raises(ConvergenceError):
        bulk_reflection(layer, np.array([0.0, 0.0, 3.0]), beams, tol=1e-12, max_iter=1)
