"""Diffraction beam generation and per-energy selection."""

from __future__ import annotations

import logging

import numpy as np

from leedpy.core.lattice_sum import lattice_points_within
from leedpy.core.types import BeamList, BeamSelection
from leedpy.errors import InputValidationError


Array = np.ndarray

logger = logging.getLogger(__name__)

K_TOLERANCE = 1e-4


def reciprocal_lattice(lattice: Array) -> Array:
    """Rows b1, b2 with a_i . b_j = 2 pi delta_ij."""

    a = np.asarray(lattice, dtype=float)
    if a.shape != (2, 2):
        raise InputValidationError("Lattice must be a 2x2 array of row vectors.")
    return 2.0 * np.pi * np.linalg.inv(a).T


def beam_set_offsets(superstructure: Array) -> Array:
    """Fractional offsets of the beam sets induced by a superstructure matrix.

    ``superstructure`` maps the 1x1 basis onto the superstructure basis
    (``a_super = M @ a_1x1``). The offsets are the superstructure reciprocal
    vectors reduced to the first 1x1 zone, ``0 <= f < 1``, with (0, 0) first.
    """

    m = np.asarray(superstructure, dtype=float)
    det = float(np.linalg.det(m))
    n_sets = int(round(abs(det)))
    if n_sets < 1 or abs(abs(det) - n_sets) > K_TOLERANCE:
        raise InputValidationError(f"Superstructure matrix must have an integer determinant, got {det:.6g}.")
    m_recip = np.linalg.inv(m).T

    offsets: list[Array] = []
    for i1 in range(n_sets):
        for i2 in range(n_sets):
            f = i1 * m_recip[0] + i2 * m_recip[1]
            f = f - np.floor(f + K_TOLERANCE)
            f[np.abs(f) < K_TOLERANCE] = 0.0
            if not any(np.allclose(f, g, atol=K_TOLERANCE) for g in offsets):
                offsets.append(f)
    if len(offsets) != n_sets:
        raise InputValidationError(
            f"Found {len(offsets)} beam sets for a superstructure of relative area {n_sets}."
        )
    out = np.array(offsets)
    order = np.lexsort((out[:, 1], out[:, 0]))
    return out[order]


def _canonical_order(k_par_sq: Array, ind1: Array, ind2: Array) -> Array:
    # Ascending |g|^2; beams degenerate within K_TOLERANCE by ind1, then ind2.
    order = np.argsort(k_par_sq, kind="stable")
    groups: list[Array] = []
    start = 0
    for i in range(1, order.size + 1):
        if i == order.size or k_par_sq[order[i]] - k_par_sq[order[start]] > K_TOLERANCE:
            grp = order[start:i]
            groups.append(grp[np.lexsort((ind2[grp], ind1[grp]))])
            start = i
    return np.concatenate(groups) if groups else order


def cutoff_radius_sq(energy: float, epsilon: float, dmin: float) -> float:
    """(ln(eps)/dmin)^2 + 2 E: the largest k_par^2 still propagating over dmin."""

    if dmin <= 0.0:
        raise InputValidationError("Minimum interlayer distance must be positive.")
    if not 0.0 < epsilon < 1.0:
        raise InputValidationError("epsilon must lie in (0, 1) for the beam cutoff.")
    return float((np.log(epsilon) / dmin) ** 2 + 2.0 * energy)


def generate_beams(
    a_1x1: Array,
    superstructure: Array | None,
    k_in: Array,
    e_max: float,
    epsilon: float,
    dmin: float,
) -> BeamList:
    """Enumerate every beam needed up to the crystal energy ``e_max`` (Hartree)."""

    a = np.asarray(a_1x1, dtype=float)
    b = reciprocal_lattice(a)
    m = np.eye(2) if superstructure is None else np.asarray(superstructure, dtype=float)
    offsets = beam_set_offsets(m)
    k_in = np.asarray(k_in, dtype=float)[:2]
    k_max_sq = cutoff_radius_sq(e_max, epsilon, dmin)

    area = abs(float(np.linalg.det(a)))
    estimate = int(2 + 0.10132118 * offsets.shape[0] * area * k_max_sq)
    logger.debug("Beam generation: k_max^2=%.4f, about %d beams expected.", k_max_sq, estimate)

    ind1_all: list[Array] = []
    ind2_all: list[Array] = []
    set_all: list[Array] = []
    for set_id, f in enumerate(offsets):
        shift = k_in + f @ b
        pairs = lattice_points_within(b, shift, 0.0, np.sqrt(k_max_sq))
        ind1 = pairs[:, 0] + f[0]
        ind2 = pairs[:, 1] + f[1]
        g = np.outer(ind1, b[0]) + np.outer(ind2, b[1])
        k_par_sq = np.einsum("ij,ij->i", g, g)
        order = _canonical_order(k_par_sq, ind1, ind2)
        ind1_all.append(ind1[order])
        ind2_all.append(ind2[order])
        set_all.append(np.full(order.size, set_id, dtype=int))

    ind1 = np.concatenate(ind1_all)
    ind2 = np.concatenate(ind2_all)
    g = np.outer(ind1, b[0]) + np.outer(ind2, b[1])
    beams = BeamList(
        ind1=ind1,
        ind2=ind2,
        g_x=g[:, 0],
        g_y=g[:, 1],
        k_par_sq=np.einsum("ij,ij->i", g, g),
        set_id=np.concatenate(set_all),
        n_sets=int(offsets.shape[0]),
    )
    logger.info("Generated %d beams in %d beam set(s).", len(beams), beams.n_sets)
    return beams


def select_beams(
    beams: BeamList,
    energy: complex,
    k_in: Array,
    epsilon: float,
    dmin: float,
    area: float,
) -> BeamSelection:
    """Keep the beams inside the cutoff at ``energy = E_r + i E_i`` (Hartree).

    kz follows the branch with non-negative imaginary part, so evanescent
    beams decay towards the interior; ``akz = 1 / (area * kz)``.
    """

    energy = complex(energy)
    k_in = np.asarray(k_in, dtype=float)[:2]
    k_max_sq = cutoff_radius_sq(energy.real, epsilon, dmin)

    k_x = beams.g_x + k_in[0]
    k_y = beams.g_y + k_in[1]
    k_par_sq = k_x * k_x + k_y * k_y
    keep = np.nonzero(k_par_sq <= k_max_sq)[0]
    if keep.size == 0:
        raise InputValidationError(f"No beams inside the cutoff at E={energy.real:.4f} H.")

    k = np.sqrt(2.0 * energy)
    kz = np.sqrt((2.0 * energy.real - k_par_sq[keep]) + 2j * energy.imag + 0j)
    if np.any(np.abs(kz) < K_TOLERANCE):
        logger.warning("A beam is close to emergence (|kz| < %.0e) at E=%.4f H.", K_TOLERANCE, energy.real)
    return BeamSelection(
        ind1=beams.ind1[keep],
        ind2=beams.ind2[keep],
        set_id=beams.set_id[keep],
        k_x=k_x[keep],
        k_y=k_y[keep],
        kz=kz,
        k=complex(k),
        akz=1.0 / (area * kz),
        energy=energy,
    )
