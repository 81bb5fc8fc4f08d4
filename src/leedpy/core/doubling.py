"""Layer doubling: combine the diffraction matrices of stacked layers.

Layer ``a`` lies below layer ``b``. ``vec`` points from the top reference
point of ``a`` to the bottom reference point of ``b`` and must have a
positive z-component.
"""

from __future__ import annotations

import logging

import numpy as np

from leedpy.core.linalg import invert
from leedpy.core.types import BeamSelection, LayerMatrices
from leedpy.errors import ConvergenceError


Array = np.ndarray

logger = logging.getLogger(__name__)


def propagators(beams: BeamSelection, vec: Array) -> tuple[Array, Array]:
    """Diagonal plane-wave propagators (P+, P-) across ``vec``."""

    v = np.asarray(vec, dtype=float)
    lateral = beams.k_x * v[0] + beams.k_y * v[1]
    vertical = beams.kz * v[2]
    return np.exp(1j * (lateral + vertical)), np.exp(1j * (vertical - lateral))


def double_layer(a: LayerMatrices, b: LayerMatrices, vec: Array, beams: BeamSelection) -> LayerMatrices:
    """All four matrices of the stack a+b."""

    p_plus, p_minus = propagators(beams, vec)
    eye = np.eye(a.n_beams, dtype=np.complex128)

    # P+ R_a^{+-} P- and P- R_b^{-+} P+
    ra = p_plus[:, None] * a.rpm * p_minus[None, :]
    rb = p_minus[:, None] * b.rmp * p_plus[None, :]

    inv_down = invert(eye - b.rmp @ ra)
    inv_up = invert(eye - a.rpm @ rb)

    rpm = b.rpm + b.tpp @ ra @ inv_down @ b.tmm
    tmm = (a.tmm * p_minus[None, :]) @ inv_down @ b.tmm
    tpp = (b.tpp * p_plus[None, :]) @ inv_up @ a.tpp
    rmp = a.rmp + a.tmm @ rb @ inv_up @ a.tpp
    return LayerMatrices(tpp=tpp, tmm=tmm, rpm=rpm, rmp=rmp)


def double_layer_rpm(rpm_a: Array, b: LayerMatrices, vec: Array, beams: BeamSelection) -> Array:
    """R^{+-} of the stack a+b when only R^{+-} of ``a`` is known."""

    p_plus, p_minus = propagators(beams, vec)
    eye = np.eye(rpm_a.shape[0], dtype=np.complex128)
    ra = p_plus[:, None] * rpm_a * p_minus[None, :]
    return b.rpm + b.tpp @ ra @ invert(eye - b.rmp @ ra) @ b.tmm


def bulk_reflection(
    layer: LayerMatrices,
    vec: Array,
    beams: BeamSelection,
    *,
    tol: float = 1e-6,
    max_iter: int = 16,
) -> LayerMatrices:
    """Matrices of a semi-infinite periodic stack by repeated self-doubling.

    Each step doubles the stack (1, 2, 4, ... layers); ``vec`` is the constant
    gap between consecutive copies. Stops once R^{+-} changes by less than
    ``tol`` relative to its largest element.
    """

    stack = layer
    for it in range(max_iter):
        new = double_layer(stack, stack, vec, beams)
        change = float(np.max(np.abs(new.rpm - stack.rpm)))
        scale = max(1.0, float(np.max(np.abs(new.rpm))))
        stack = new
        if change < tol * scale:
            logger.debug("Bulk doubling converged after %d steps (%d layers).", it + 1, 2 ** (it + 1))
            return stack
    raise ConvergenceError(f"Bulk layer doubling did not converge within {max_iter} doublings.")
