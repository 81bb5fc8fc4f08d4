"""Two-dimensional lattice sums of outgoing spherical waves.

The sums run over the Bravais lattice ``P = n1*a1 + n2*a2`` of a layer,

    S_lm(d) = sum_P exp(-i k_in.P) h_l(k |P + d|) Y_lm(P + d),

truncated at the radius where the damped amplitude ``exp(-Im(k) r)`` falls
below ``epsilon``. ``lattice_sum_ij`` returns them in the prefactored form of
the interlayer propagator for both +d and -d from a single pass over the
lattice.
"""

from __future__ import annotations

import logging

import numpy as np

from leedpy.core.linalg import lm_arrays, n_lm
from leedpy.core.special import gaunt_table, harmonics_of_vectors, spherical_hankel1
from leedpy.core.types import GEO_TOLERANCE
from leedpy.errors import InputValidationError


Array = np.ndarray

logger = logging.getLogger(__name__)

RADIUS_WARN_LEVEL = 1000.0
_CHUNK = 20000


def summation_radius(k_imag: float, epsilon: float) -> float:
    """Return the real-space cutoff radius of a lattice sum."""

    if k_imag <= 0.0:
        raise InputValidationError(
            f"Imaginary part of the wave vector must be positive for lattice sums (k_i={k_imag:.4g})."
        )
    if epsilon <= 0.0:
        raise InputValidationError("epsilon must be positive.")
    r_max = -np.log(epsilon) / k_imag if epsilon < 1.0 else float(epsilon)
    if r_max > RADIUS_WARN_LEVEL:
        logger.warning(
            "Lattice-sum radius %.1f bohr exceeds %.0f bohr: damping too weak, convergence will be poor.",
            r_max,
            RADIUS_WARN_LEVEL,
        )
    return float(r_max)


def lattice_points_within(basis: Array, shift: Array, dz: float, radius: float) -> Array:
    """Return integer pairs (n1, n2) with |n1*a1 + n2*a2 + shift|^2 + dz^2 < radius^2.

    The admissible n1 interval and the n2 interval of every n1 follow from the
    quadratic form of the lattice metric; both are widened to the enclosing
    integers so no corner point is skipped.
    """

    a1 = np.asarray(basis[0], dtype=float)
    a2 = np.asarray(basis[1], dtype=float)
    d = np.asarray(shift, dtype=float)[:2]
    f1 = float(a1 @ a1)
    f2 = float(a2 @ a2)
    f12 = float(a1 @ a2)
    f1d = float(a1 @ d)
    f2d = float(a2 @ d)
    fd = float(d @ d) + float(dz) ** 2
    r2 = float(radius) ** 2

    fa = f12 * f12 - f1 * f2
    if fa >= 0.0:
        raise InputValidationError("Lattice basis vectors are linearly dependent.")
    fb = f12 * f2d - f1d * f2
    fc = f2d * f2d - f2 * fd + f2 * r2
    disc = fb * fb - fa * fc
    if disc < 0.0:
        return np.zeros((0, 2), dtype=int)
    root = np.sqrt(disc)
    bounds = sorted(((-fb + root) / fa, (-fb - root) / fa))
    n1_lo = int(np.floor(bounds[0]))
    n1_hi = int(np.ceil(bounds[1]))

    pairs: list[Array] = []
    for n1 in range(n1_lo, n1_hi + 1):
        b = n1 * f12 + f2d
        c = f1 * n1 * n1 + 2.0 * f1d * n1 + fd - r2
        disc2 = b * b - f2 * c
        if disc2 < 0.0:
            continue
        root2 = np.sqrt(disc2)
        n2 = np.arange(int(np.floor((-b - root2) / f2)), int(np.ceil((-b + root2) / f2)) + 1)
        pairs.append(np.column_stack([np.full(n2.size, n1), n2]))
    if not pairs:
        return np.zeros((0, 2), dtype=int)
    out = np.concatenate(pairs, axis=0)
    r = out[:, :1] * a1[None, :] + out[:, 1:] * a2[None, :] + d[None, :]
    return out[np.einsum("ij,ij->i", r, r) + fd - float(d @ d) < r2]


def _prefactors(k: complex, l_max: int) -> Array:
    l_of, _ = lm_arrays(l_max)
    return -8.0 * np.pi * k * (1j ** (l_of + 1))


def lattice_sum_ij(
    k: complex,
    k_in: Array,
    basis: Array,
    d: Array,
    l_max: int,
    epsilon: float,
) -> tuple[Array, Array]:
    """Return ``(llm_p, llm_m)`` for the displacement ``d`` and ``-d``.

    ``llm_p[L] = -8 pi k i^(l+1) (-1)^(l+m) S_L(d)`` and
    ``llm_m[L] = -8 pi k i^(l+1) (-1)^(l+m) S_L(-d)``. The second sum reuses the
    terms of the first: Y_lm(-r) = (-1)^l Y_lm(r) and the lattice point -P
    carries the conjugate phase, which leaves the factor (-1)^m.
    """

    k = complex(k)
    k_in = np.asarray(k_in, dtype=float)[:2]
    basis = np.asarray(basis, dtype=float)
    d = np.asarray(d, dtype=float)
    if d.shape != (3,):
        raise InputValidationError("Displacement vector must have three components.")
    if l_max < 0:
        raise InputValidationError("l_max must be non-negative.")

    r_max = summation_radius(k.imag, epsilon)
    n_pairs = lattice_points_within(basis, d[:2], float(d[2]), r_max)
    l_of, m_of = lm_arrays(l_max)
    pref = _prefactors(k, l_max)

    llm_p = np.zeros(n_lm(l_max), dtype=np.complex128)
    llm_m = np.zeros(n_lm(l_max), dtype=np.complex128)
    for start in range(0, n_pairs.shape[0], _CHUNK):
        chunk = n_pairs[start : start + _CHUNK]
        p = chunk[:, :1] * basis[0][None, :] + chunk[:, 1:] * basis[1][None, :]
        r = np.column_stack([p + d[None, :2], np.full(p.shape[0], d[2])])
        r2 = np.einsum("ij,ij->i", r, r)
        keep = (r2 > GEO_TOLERANCE * GEO_TOLERANCE) & (r2 < r_max * r_max)
        if not np.any(keep):
            continue
        p = p[keep]
        r = r[keep]
        r_abs = np.sqrt(r2[keep])

        hl = spherical_hankel1(l_max, k * r_abs)
        terms = hl[:, l_of] * harmonics_of_vectors(l_max, r)
        kp = p @ k_in
        llm_p += np.exp(-1j * kp) @ terms
        llm_m += np.exp(1j * kp) @ terms

    llm_p *= pref * ((-1.0) ** (l_of + m_of))
    llm_m *= pref * ((-1.0) ** m_of)
    logger.debug("Lattice sum: %d points within r_max=%.2f bohr, d=%s.", n_pairs.shape[0], r_max, d)
    return llm_p, llm_m


def lattice_sum_ii(k: complex, k_in: Array, basis: Array, l_max: int, epsilon: float) -> Array:
    """Intra-layer Bravais sum (d = 0, origin excluded)."""

    llm_p, _ = lattice_sum_ij(k, k_in, basis, np.zeros(3), l_max, epsilon)
    return llm_p


def sum_to_hankel_series(llm: Array, k: complex, l_max: int) -> Array:
    """Undo the prefactors: return S_L(d) from a ``llm_p`` output."""

    l_of, m_of = lm_arrays(l_max)
    return llm / (_prefactors(k, l_max) * ((-1.0) ** (l_of + m_of)))


def structure_constants(llm: Array, k: complex, l_max: int) -> Array:
    """Propagator G[L, L'] of order l_max from a lattice sum of order 2*l_max.

    ``G[L, L'] = 4 pi sum_L'' i^(l - l' + l'') S_L'' Gaunt(L, L', L'')`` maps
    outgoing waves h_l' Y_L' of one sublattice onto regular waves j_l Y_L
    around an atom of the receiving sublattice.
    """

    s = sum_to_hankel_series(np.asarray(llm, dtype=np.complex128), k, 2 * l_max)
    row, col, lpp, value = gaunt_table(int(l_max))
    l_small, _ = lm_arrays(l_max)
    l_big, _ = lm_arrays(2 * l_max)
    phase = 1j ** ((l_small[row] - l_small[col] + l_big[lpp]) % 4)
    g = np.zeros((n_lm(l_max), n_lm(l_max)), dtype=np.complex128)
    np.add.at(g, (row, col), 4.0 * np.pi * phase * value * s[lpp])
    return g
