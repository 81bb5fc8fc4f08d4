"""Spherical harmonics, Hankel functions and angular coupling tables."""

from __future__ import annotations

from functools import lru_cache
from math import lgamma

import numpy as np
from scipy.special import spherical_in

from leedpy.core.linalg import lm_arrays, lm_index, n_lm


Array = np.ndarray

# Elements of quadrature tables below this magnitude are exact zeros.
_TABLE_ZERO = 1e-13


@lru_cache(maxsize=None)
def _ylm_norm(l_max: int) -> Array:
    norm = np.zeros((l_max + 1, l_max + 1), dtype=float)
    for l in range(l_max + 1):
        for m in range(l + 1):
            log_ratio = lgamma(l - m + 1) - lgamma(l + m + 1)
            norm[l, m] = np.sqrt((2 * l + 1) / (4.0 * np.pi) * np.exp(log_ratio))
    return norm


def spherical_harmonics(l_max: int, cos_theta: Array, e_plus: Array, e_minus: Array) -> Array:
    """Return Y_lm for l <= l_max along possibly complex directions.

    The direction enters through ``cos_theta = z/r``, ``e_plus = (x + iy)/r``
    and ``e_minus = (x - iy)/r``, so complex wave vectors of evanescent beams
    are handled by analytic continuation. The Condon-Shortley phase is
    included; the last axis of the result runs over ``lm_index(l, m)``.
    """

    c, ep, em = np.broadcast_arrays(
        np.asarray(cos_theta, dtype=np.complex128),
        np.asarray(e_plus, dtype=np.complex128),
        np.asarray(e_minus, dtype=np.complex128),
    )
    norm = _ylm_norm(int(l_max))
    out = np.zeros(c.shape + (n_lm(l_max),), dtype=np.complex128)

    ep_pow = np.ones_like(c)
    em_pow = np.ones_like(c)
    q_mm = 1.0
    for m in range(l_max + 1):
        if m > 0:
            ep_pow = ep_pow * ep
            em_pow = em_pow * em
            q_mm *= -(2 * m - 1)
        sign_m = -1.0 if m % 2 else 1.0
        q_prev2 = np.zeros_like(c)
        q_prev = np.full_like(c, q_mm)
        for l in range(m, l_max + 1):
            if l == m:
                q = q_prev
            elif l == m + 1:
                q = c * (2 * m + 1) * q_mm
            else:
                q = ((2 * l - 1) * c * q_prev - (l + m - 1) * q_prev2) / (l - m)
            if l > m:
                q_prev2, q_prev = q_prev, q
            out[..., lm_index(l, m)] = norm[l, m] * q * ep_pow
            if m > 0:
                out[..., lm_index(l, -m)] = sign_m * norm[l, m] * q * em_pow
    return out


def spherical_harmonics_conj(l_max: int, cos_theta: Array, e_plus: Array, e_minus: Array) -> Array:
    """Analytic continuation of conj(Y_lm); equals conj(Y_lm) for real directions."""

    return spherical_harmonics(l_max, cos_theta, e_minus, e_plus)


def harmonics_of_vectors(l_max: int, vectors: Array) -> Array:
    """Y_lm(r_hat) for an (N, 3) array of real, non-zero vectors."""

    v = np.asarray(vectors, dtype=float)
    r = np.linalg.norm(v, axis=-1)
    return spherical_harmonics(
        l_max,
        v[..., 2] / r,
        (v[..., 0] + 1j * v[..., 1]) / r,
        (v[..., 0] - 1j * v[..., 1]) / r,
    )


def spherical_hankel1(l_max: int, z: Array) -> Array:
    """Spherical Hankel functions h_l^(1)(z), l = 0..l_max, on the last axis."""

    z = np.asarray(z, dtype=np.complex128)
    out = np.empty(z.shape + (l_max + 1,), dtype=np.complex128)
    eiz = np.exp(1j * z)
    out[..., 0] = -1j * eiz / z
    if l_max >= 1:
        out[..., 1] = -eiz * (z + 1j) / (z * z)
    for l in range(1, l_max):
        out[..., l + 1] = (2 * l + 1) / z * out[..., l] - out[..., l - 1]
    return out


def modified_spherical_bessel(l_max: int, x: float) -> Array:
    """i_l(x) for l = 0..l_max."""

    return spherical_in(np.arange(l_max + 1), float(x))


@lru_cache(maxsize=None)
def _sphere_quadrature(degree: int) -> tuple[Array, Array, Array, Array, Array]:
    # Exact for polynomials in cos(theta) up to ``degree`` times exp(i m phi), |m| <= degree.
    n_c = degree // 2 + 1
    x, w = np.polynomial.legendre.leggauss(n_c)
    n_phi = degree + 1
    phi = 2.0 * np.pi * np.arange(n_phi) / n_phi
    cos_t = np.repeat(x, n_phi)
    sin_t = np.sqrt(1.0 - cos_t * cos_t)
    phis = np.tile(phi, n_c)
    weights = np.repeat(w, n_phi) * (2.0 * np.pi / n_phi)
    return cos_t, sin_t, phis, weights, np.stack([sin_t * np.cos(phis), sin_t * np.sin(phis), cos_t], axis=1)


def _grid_harmonics(l_max: int, degree: int) -> tuple[Array, Array, Array]:
    cos_t, sin_t, phis, weights, unit = _sphere_quadrature(degree)
    ylm = spherical_harmonics(l_max, cos_t, sin_t * np.exp(1j * phis), sin_t * np.exp(-1j * phis))
    return ylm, weights, unit


@lru_cache(maxsize=None)
def gaunt_table(l_max: int) -> tuple[Array, Array, Array, Array]:
    """Sparse table of integrals conj(Y_L) Y_L' conj(Y_L'') over the unit sphere.

    Returns ``(row, col, lpp_index, value)`` with ``row = L``, ``col = L'``
    (both l <= l_max) and ``lpp_index = lm_index(l'', m' - m)`` (l'' <= 2 l_max).
    Only non-vanishing entries are kept.
    """

    l_big = 2 * l_max
    y_small, weights, _ = _grid_harmonics(l_max, 4 * l_max)
    y_big, _, _ = _grid_harmonics(l_big, 4 * l_max)
    _, m_of = lm_arrays(l_max)
    n_small = n_lm(l_max)

    rows: list[Array] = []
    cols: list[Array] = []
    lpps: list[Array] = []
    values: list[Array] = []
    all_l = np.arange(n_small)
    pair_l, pair_lp = np.meshgrid(all_l, all_l, indexing="ij")
    pair_l = pair_l.ravel()
    pair_lp = pair_lp.ravel()
    delta = m_of[pair_lp] - m_of[pair_l]
    for dm in range(-l_big, l_big + 1):
        sel = np.nonzero(delta == dm)[0]
        if sel.size == 0:
            continue
        lpp = np.arange(abs(dm), l_big + 1)
        lpp_idx = lpp * (lpp + 1) + dm
        prod = np.conj(y_small[:, pair_l[sel]]) * y_small[:, pair_lp[sel]] * weights[:, None]
        block = prod.T @ np.conj(y_big[:, lpp_idx])
        ii, jj = np.nonzero(np.abs(block) > _TABLE_ZERO)
        rows.append(pair_l[sel][ii])
        cols.append(pair_lp[sel][ii])
        lpps.append(lpp_idx[jj])
        values.append(block[ii, jj])

    table = (
        np.concatenate(rows),
        np.concatenate(cols),
        np.concatenate(lpps),
        np.concatenate(values),
    )
    for arr in table:
        arr.setflags(write=False)
    return table


def dipole_matrices(l_max: int) -> tuple[Array, Array, Array]:
    """(M_x, M_y, M_z) with (M_a)[L'', L] = integral of conj(Y_L'') khat_a Y_L."""

    ylm, weights, unit = _grid_harmonics(l_max, 2 * l_max + 1)
    mats = []
    for axis in range(3):
        m = (np.conj(ylm) * (weights * unit[:, axis])[:, None]).T @ ylm
        m[np.abs(m) < _TABLE_ZERO] = 0.0
        mats.append(m)
    return mats[0], mats[1], mats[2]


def wigner3j_zero_squared(l1: int, l2: int, l3: int) -> float:
    """Square of the Wigner 3j symbol (l1 l2 l3; 0 0 0)."""

    two_g = l1 + l2 + l3
    if two_g % 2 or l3 > l1 + l2 or l3 < abs(l1 - l2):
        return 0.0
    g = two_g // 2
    log_val = (
        lgamma(two_g - 2 * l1 + 1)
        + lgamma(two_g - 2 * l2 + 1)
        + lgamma(two_g - 2 * l3 + 1)
        - lgamma(two_g + 2)
        + 2.0 * (lgamma(g + 1) - lgamma(g - l1 + 1) - lgamma(g - l2 + 1) - lgamma(g - l3 + 1))
    )
    return float(np.exp(log_val))
