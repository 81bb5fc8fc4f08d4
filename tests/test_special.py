import numpy as np
from scipy.special import spherical_jn, spherical_yn

from leedpy.core.linalg import lm_index, n_lm
from leedpy.core.special import (
    dipole_matrices,
    gaunt_table,
    harmonics_of_vectors,
    spherical_hankel1,
    spherical_harmonics,
    spherical_harmonics_conj,
    wigner3j_zero_squared,
)


def _sphere_grid(n_theta: int = 12, n_phi: int = 24):
    x, w = np.polynomial.legendre.leggauss(n_theta)
    phi = 2.0 * np.pi * np.arange(n_phi) / n_phi
    cos_t = np.repeat(x, n_phi)
    sin_t = np.sqrt(1.0 - cos_t**2)
    phis = np.tile(phi, n_theta)
    weights = np.repeat(w, n_phi) * (2.0 * np.pi / n_phi)
    return cos_t, sin_t * np.exp(1j * phis), sin_t * np.exp(-1j * phis), weights


def test_spherical_harmonics_low_orders() -> None:
    theta, phi = 0.7, 1.3
    c = np.cos(theta)
    s = np.sin(theta)
    y = spherical_harmonics(1, c, s * np.exp(1j * phi), s * np.exp(-1j * phi))
    assert np.isclose(y[lm_index(0, 0)], 1.0 / np.sqrt(4.0 * np.pi))
    assert np.isclose(y[lm_index(1, 0)], np.sqrt(3.0 / (4.0 * np.pi)) * c)
    assert np.isclose(y[lm_index(1, 1)], -np.sqrt(3.0 / (8.0 * np.pi)) * s * np.exp(1j * phi))
    assert np.isclose(y[lm_index(1, -1)], np.sqrt(3.0 / (8.0 * np.pi)) * s * np.exp(-1j * phi))


def test_spherical_harmonics_are_orthonormal() -> None:
    l_max = 5
    c, ep, em, w = _sphere_grid()
    y = spherical_harmonics(l_max, c, ep, em)
    gram = (np.conj(y) * w[:, None]).T @ y
    assert np.allclose(gram, np.eye(n_lm(l_max)), atol=1e-12)


def test_conjugate_harmonics_for_real_directions() -> None:
    c, ep, em, _ = _sphere_grid(4, 6)
    assert np.allclose(spherical_harmonics_conj(3, c, ep, em), np.conj(spherical_harmonics(3, c, ep, em)))


def test_harmonics_of_vectors_ignore_length() -> None:
    v = np.array([[0.3, -1.2, 0.8], [2.0, 0.0, -1.0]])
    assert np.allclose(harmonics_of_vectors(4, v), harmonics_of_vectors(4, 3.5 * v))


def test_spherical_hankel_matches_scipy() -> None:
    z = np.linspace(0.5, 12.0, 25)
    h = spherical_hankel1(7, z)
    for l in range(8):
        ref = spherical_jn(l, z) + 1j * spherical_yn(l, z)
        assert np.allclose(h[:, l], ref, rtol=1e-10, atol=0.0)


def test_wigner3j_zero_known_values() -> None:
    assert np.isclose(wigner3j_zero_squared(1, 1, 2), 2.0 / 15.0)
    assert np.isclose(wigner3j_zero_squared(1, 1, 0), 1.0 / 3.0)
    assert wigner3j_zero_squared(1, 1, 1) == 0.0
    assert wigner3j_zero_squared(1, 2, 4) == 0.0


def _gaunt_value(table, row: int, col: int, lpp: int) -> complex:
    r, c, p, v = table
    hit = np.nonzero((r == row) & (c == col) & (p == lpp))[0]
    return complex(v[hit].sum()) if hit.size else 0.0


def test_gaunt_table_matches_3j_for_m_zero() -> None:
    table = gaunt_table(2)
    assert np.isclose(_gaunt_value(table, 0, 0, 0), 1.0 / np.sqrt(4.0 * np.pi))
    expected = np.sqrt(3 * 3 * 5 / (4.0 * np.pi)) * wigner3j_zero_squared(1, 1, 2)
    assert np.isclose(_gaunt_value(table, lm_index(1, 0), lm_index(1, 0), lm_index(2, 0)), expected)
    # Parity: l + l' + l'' odd vanishes.
    assert _gaunt_value(table, lm_index(1, 0), lm_index(1, 0), lm_index(1, 0)) == 0.0


def test_dipole_matrices_couple_neighbouring_l() -> None:
    mx, my, mz = dipole_matrices(3)
    assert np.isclose(mz[lm_index(1, 0), lm_index(0, 0)], 1.0 / np.sqrt(3.0))
    for m in (mx, my, mz):
        assert np.allclose(m, m.conj().T, atol=1e-12)
    assert mz[lm_index(2, 0), lm_index(0, 0)] == 0.0
