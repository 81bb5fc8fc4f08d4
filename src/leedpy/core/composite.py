"""Composite-layer multiple scattering: the giant-matrix solver.

A composite layer holds several atoms per 2D unit cell. Scattering inside
the layer is solved in angular-momentum space,

    (I - [tau_i G^(ij)]_(i != j)) b = tau a,

where ``tau_i`` is the Bravais-renormalised t-matrix of the sublattice of
atom ``i`` and ``G^(ij)`` the lattice-sum propagator from sublattice ``j`` to
atom ``i``. The amplitudes are then projected onto the beams.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from leedpy.core.lattice_sum import lattice_sum_ii, lattice_sum_ij, structure_constants
from leedpy.core.linalg import borrow_or_allocate, check_matrix, insert_block, invert, invert_giant, lm_arrays, n_lm
from leedpy.core.special import spherical_harmonics, spherical_harmonics_conj
from leedpy.core.tmatrix import required_l_max
from leedpy.core.types import GEO_TOLERANCE, BeamSelection, Layer, LayerMatrices
from leedpy.errors import InputValidationError


Array = np.ndarray

logger = logging.getLogger(__name__)


def bravais_tmatrix(tmatrix: Array, g_ii: Array) -> Array:
    """tau = (I - T G_ii)^-1 T for one Bravais sublattice.

    ``tmatrix`` is the outgoing-amplitude multiplier ``i t_l`` (possibly
    non-diagonal); ``g_ii`` the intra-sublattice propagator.
    """

    eye = np.eye(tmatrix.shape[0], dtype=np.complex128)
    return invert(eye - tmatrix @ g_ii) @ tmatrix


def order_atoms_by_plane(layer: Layer) -> tuple[list[int], int]:
    """Atom order with the most populated z-plane first, and that plane's size."""

    z = layer.positions[:, 2]
    planes: list[list[int]] = []
    for i in np.argsort(z, kind="stable"):
        if planes and abs(z[i] - z[planes[-1][0]]) < GEO_TOLERANCE:
            planes[-1].append(int(i))
        else:
            planes.append([int(i)])
    biggest = max(range(len(planes)), key=lambda p: (len(planes[p]), -p))
    order = planes[biggest] + [i for p, plane in enumerate(planes) if p != biggest for i in plane]
    return order, len(planes[biggest])


def _check_outputs(out: LayerMatrices | None) -> None:
    if out is None:
        return
    for name in ("tpp", "tmm", "rpm", "rmp"):
        check_matrix(getattr(out, name), f"out.{name}")


def _giant_matrix(
    positions: Array,
    types: Sequence[int],
    tau: dict[int, Array],
    k: complex,
    k_in: Array,
    lattice: Array,
    l_max: int,
    epsilon: float,
) -> Array:
    n = n_lm(l_max)
    n_atoms = positions.shape[0]
    giant = np.eye(n_atoms * n, dtype=np.complex128)
    visited = np.eye(n_atoms, dtype=bool)
    diff = positions[None, :, :] - positions[:, None, :]
    n_sums = 0
    for i in range(n_atoms):
        for j in range(i + 1, n_atoms):
            if visited[i, j]:
                continue
            d = diff[i, j]
            llm_p, llm_m = lattice_sum_ij(k, k_in, lattice, d, 2 * l_max, epsilon)
            n_sums += 1
            g_minus = structure_constants(llm_m, k, l_max)
            g_plus = structure_constants(llm_p, k, l_max)
            # Every pair (a, b) with r_b - r_a == d shares the same propagators.
            same = np.all(np.abs(diff - d[None, None, :]) < GEO_TOLERANCE, axis=-1)
            for a, b in zip(*np.nonzero(same)):
                if visited[a, b]:
                    continue
                insert_block(giant, -tau[types[a]] @ g_minus, a * n, b * n)
                insert_block(giant, -tau[types[b]] @ g_plus, b * n, a * n)
                visited[a, b] = visited[b, a] = True
    logger.debug("Giant matrix: %d atoms, %d interlayer lattice sums.", n_atoms, n_sums)
    return giant


def _beam_harmonics(beams: BeamSelection, l_max: int, sign: int, conj: bool) -> Array:
    k = beams.k
    c = sign * beams.kz / k
    e_plus = (beams.k_x + 1j * beams.k_y) / k
    e_minus = (beams.k_x - 1j * beams.k_y) / k
    if conj:
        return spherical_harmonics_conj(l_max, c, e_plus, e_minus)
    return spherical_harmonics(l_max, c, e_plus, e_minus)


def composite_layer_matrices(
    layer: Layer,
    k_in: Array,
    beams: BeamSelection,
    tmatrices: Sequence[Array],
    *,
    epsilon: float,
    l_max: int,
    inversion: str = "dense",
    out: LayerMatrices | None = None,
) -> LayerMatrices:
    """Return Tpp, Tmm, Rpm, Rmp of a composite layer for the given beams.

    ``k_in`` is the Bloch vector of the lattice sums; all beams must differ
    from it by reciprocal vectors of ``layer.lattice``. ``tmatrices`` are the
    per-type t-matrices in the ``sin(delta) exp(i delta)`` normalisation. When
    ``out`` is given, its arrays are reused where their shape fits.
    """

    _check_outputs(out)
    if len(beams) == 0:
        raise InputValidationError("At least one beam is required.")
    types_used = sorted({atom.type for atom in layer.atoms})
    if types_used[-1] >= len(tmatrices):
        raise InputValidationError(f"Atom type {types_used[-1]} has no t-matrix ({len(tmatrices)} given).")

    l_needed = max(required_l_max(tmatrices[t], epsilon) for t in types_used)
    l_eff = min(int(l_max), l_needed)
    if l_eff < l_max:
        logger.debug("Layer l_max truncated from %d to %d (epsilon=%.1e).", l_max, l_eff, epsilon)
    n = n_lm(l_eff)

    order, n_plane = order_atoms_by_plane(layer)
    positions = layer.positions[order]
    types = [layer.atoms[i].type for i in order]
    n_atoms = len(order)
    k = beams.k
    k_in = np.asarray(k_in, dtype=float)[:2]

    llm_ii = lattice_sum_ii(k, k_in, layer.lattice, 2 * l_eff, epsilon)
    g_ii = structure_constants(llm_ii, k, l_eff)
    tau = {t: bravais_tmatrix(1j * np.asarray(tmatrices[t])[:n, :n], g_ii) for t in types_used}

    if n_atoms == 1:
        x_inv = np.eye(n, dtype=np.complex128)
    else:
        giant = _giant_matrix(positions, types, tau, k, k_in, layer.lattice, l_eff, epsilon)
        x_inv = invert_giant(giant, n_first=n_plane * n, method=inversion)

    l_of, _ = lm_arrays(l_eff)
    # 2 pi / (A k kz) from the lattice sum of outgoing waves; the 4 pi of the
    # plane-wave expansion sits in y_in.
    pref = 2.0 * np.pi * beams.akz / (k * layer.rel_area)
    kx = beams.k_x
    ky = beams.k_y
    kz = beams.kz

    left: dict[int, Array] = {}
    right: dict[int, Array] = {}
    for sign in (1, -1):
        y_out = pref[:, None] * ((-1j) ** l_of)[None, :] * _beam_harmonics(beams, l_eff, sign, conj=False)
        y_in = 4.0 * np.pi * ((1j**l_of)[:, None]) * _beam_harmonics(beams, l_eff, sign, conj=True).T
        # k.r_i for every beam (rows) and atom (columns).
        kr = np.outer(kx, positions[:, 0]) + np.outer(ky, positions[:, 1]) + sign * np.outer(kz, positions[:, 2])
        lmat = np.empty((len(beams), n_atoms * n), dtype=np.complex128)
        rmat = np.empty((n_atoms * n, len(beams)), dtype=np.complex128)
        for i in range(n_atoms):
            lmat[:, i * n : (i + 1) * n] = np.exp(-1j * kr[:, i])[:, None] * y_out
            rmat[i * n : (i + 1) * n, :] = tau[types[i]] @ (y_in * np.exp(1j * kr[:, i])[None, :])
        left[sign] = lmat
        right[sign] = rmat

    x_right_p = x_inv @ right[1]
    x_right_m = x_inv @ right[-1]
    tpp = left[1] @ x_right_p
    rmp = left[-1] @ x_right_p
    tmm = left[-1] @ x_right_m
    rpm = left[1] @ x_right_m

    z_min = float(np.min(positions[:, 2]))
    z_max = float(np.max(positions[:, 2]))
    row_p = np.exp(1j * kz * z_max)
    row_m = np.exp(-1j * kz * z_min)
    col_p = np.exp(-1j * kz * z_min)
    col_m = np.exp(1j * kz * z_max)
    tpp = row_p[:, None] * tpp * col_p[None, :]
    tmm = row_m[:, None] * tmm * col_m[None, :]
    rpm = row_p[:, None] * rpm * col_m[None, :]
    rmp = row_m[:, None] * rmp * col_p[None, :]
    unscattered = np.exp(1j * kz * (z_max - z_min))
    tpp[np.diag_indices_from(tpp)] += unscattered
    tmm[np.diag_indices_from(tmm)] += unscattered

    shape = tpp.shape
    results = {}
    for name, value in (("tpp", tpp), ("tmm", tmm), ("rpm", rpm), ("rmp", rmp)):
        dst = borrow_or_allocate(None if out is None else getattr(out, name), shape)
        dst[...] = value
        results[name] = dst
    return LayerMatrices(**results)


def layer_matrices(
    layer: Layer,
    k_in: Array,
    beams: BeamSelection,
    tmatrices: Sequence[Array],
    *,
    n_sets: int,
    epsilon: float,
    l_max: int,
    inversion: str = "dense",
) -> LayerMatrices:
    """Diffraction matrices of ``layer`` over all selected beams.

    A layer on the 1x1 lattice does not couple different beam sets, so with a
    superstructure it is solved set by set (Bloch vector of the set) and the
    blocks are assembled; a layer on the superstructure lattice couples all
    beams at once.
    """

    rel = float(layer.rel_area)
    if n_sets == 1 or abs(rel - n_sets) < GEO_TOLERANCE:
        return composite_layer_matrices(
            layer, k_in, beams, tmatrices, epsilon=epsilon, l_max=l_max, inversion=inversion
        )
    if abs(rel - 1.0) >= GEO_TOLERANCE:
        raise InputValidationError(
            f"Layer with relative area {rel:g} fits neither the 1x1 lattice nor the {n_sets}-fold superstructure."
        )

    n_b = len(beams)
    blocks = {name: np.zeros((n_b, n_b), dtype=np.complex128) for name in ("tpp", "tmm", "rpm", "rmp")}
    for index in beams.set_groups():
        sub = beams.subset(index)
        k_bloch = np.array([sub.k_x[0], sub.k_y[0]])
        mats = composite_layer_matrices(
            layer, k_bloch, sub, tmatrices, epsilon=epsilon, l_max=l_max, inversion=inversion
        )
        sel = np.ix_(index, index)
        for name in blocks:
            blocks[name][sel] = getattr(mats, name)
    return LayerMatrices(**blocks)
