"""Dense complex matrix helpers shared by the scattering solvers."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

import numpy as np

from leedpy.errors import AllocationError, InputValidationError, SingularMatrixError


Array = np.ndarray

# Relative threshold below which off-diagonal elements count as zero.
_STRUCTURE_TOL = 1e-14


class MatrixKind(str, Enum):
    GENERAL = "general"
    SQUARE = "square"
    DIAGONAL = "diagonal"
    SCALAR = "scalar"


def lm_index(l: int, m: int) -> int:
    """Return the 0-based natural position of (l, m) in angular-momentum matrices."""

    if l < 0 or abs(m) > l:
        raise InputValidationError(f"Invalid angular momentum pair (l={l}, m={m}).")
    return l * (l + 1) + m


def n_lm(l_max: int) -> int:
    return (int(l_max) + 1) ** 2


@lru_cache(maxsize=None)
def _lm_arrays(l_max: int) -> tuple[Array, Array]:
    l_of = np.concatenate([np.full(2 * l + 1, l, dtype=int) for l in range(l_max + 1)])
    m_of = np.concatenate([np.arange(-l, l + 1, dtype=int) for l in range(l_max + 1)])
    l_of.setflags(write=False)
    m_of.setflags(write=False)
    return l_of, m_of


def lm_arrays(l_max: int) -> tuple[Array, Array]:
    """Return the (l, m) labels of every row of an l_max-indexed vector."""

    if l_max < 0:
        raise InputValidationError("l_max must be non-negative.")
    return _lm_arrays(int(l_max))


def matrix_kind(a: Array) -> MatrixKind:
    """Classify ``a`` by its structure (the tag of the original matrix type)."""

    a = np.asarray(a)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        return MatrixKind.GENERAL
    scale = float(np.max(np.abs(a))) if a.size else 0.0
    off = a - np.diag(np.diag(a))
    if scale == 0.0 or float(np.max(np.abs(off))) <= _STRUCTURE_TOL * scale:
        diag = np.diag(a)
        if np.allclose(diag, diag[0], rtol=_STRUCTURE_TOL, atol=0.0):
            return MatrixKind.SCALAR
        return MatrixKind.DIAGONAL
    return MatrixKind.SQUARE


def check_matrix(a: object, name: str) -> None:
    """Accept ``None`` or a numeric 2D array; reject anything else."""

    if a is None:
        return
    if not isinstance(a, np.ndarray):
        raise InputValidationError(f"{name} must be None or a numpy array, got {type(a).__name__}.")
    if a.ndim != 2:
        raise InputValidationError(f"{name} must be a 2D array, got ndim={a.ndim}.")
    if not (np.issubdtype(a.dtype, np.complexfloating) or np.issubdtype(a.dtype, np.floating)):
        raise InputValidationError(f"{name} must hold floating-point values, got dtype={a.dtype}.")


def borrow_or_allocate(out: Array | None, shape: tuple[int, ...], dtype: type = np.complex128) -> Array:
    """Return ``out`` zero-filled if it has exactly ``shape``, else a new array.

    A caller buffer of the wrong shape is left untouched; the result is a fresh
    allocation that the caller then owns.
    """

    if out is not None and out.shape == tuple(shape) and out.dtype == np.dtype(dtype):
        out.fill(0)
        return out
    try:
        return np.zeros(shape, dtype=dtype)
    except MemoryError as exc:
        raise AllocationError(f"Could not allocate a {shape} {np.dtype(dtype).name} array.") from exc


def insert_block(dst: Array, src: Array, row: int, col: int) -> Array:
    """Write ``src`` into ``dst`` with its top-left corner at (row, col)."""

    n_rows, n_cols = src.shape
    if row < 0 or col < 0 or row + n_rows > dst.shape[0] or col + n_cols > dst.shape[1]:
        raise InputValidationError(
            f"Block of shape {src.shape} at ({row}, {col}) does not fit into {dst.shape}."
        )
    dst[row : row + n_rows, col : col + n_cols] = src
    return dst


def invert(a: Array) -> Array:
    """Dense inverse of a square complex matrix."""

    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise InputValidationError(f"Only square matrices can be inverted, got {a.shape}.")
    try:
        with np.errstate(over="raise", invalid="raise", divide="raise"):
            inv = np.linalg.inv(a.astype(np.complex128, copy=False))
    except (np.linalg.LinAlgError, FloatingPointError) as exc:
        raise SingularMatrixError(f"Inversion of a {a.shape[0]}x{a.shape[1]} matrix failed.") from exc
    if not np.all(np.isfinite(inv)):
        raise SingularMatrixError(f"Inversion of a {a.shape[0]}x{a.shape[1]} matrix produced non-finite values.")
    return inv


def partitioned_inverse(a: Array, n_first: int) -> Array:
    """Invert ``a`` through the Schur complement of its leading n_first block.

    With ``a = [[A, B], [C, D]]``:
    ``inv(a) = [[A^-1 + A^-1 B S^-1 C A^-1, -A^-1 B S^-1], [-S^-1 C A^-1, S^-1]]``
    where ``S = D - C A^-1 B``.
    """

    n = a.shape[0]
    if n_first <= 0 or n_first >= n:
        return invert(a)
    a11 = a[:n_first, :n_first]
    a12 = a[:n_first, n_first:]
    a21 = a[n_first:, :n_first]
    a22 = a[n_first:, n_first:]

    a11_inv = invert(a11)
    a11_inv_a12 = a11_inv @ a12
    s_inv = invert(a22 - a21 @ a11_inv_a12)
    a21_a11_inv = a21 @ a11_inv

    out = np.empty((n, n), dtype=np.complex128)
    out[n_first:, n_first:] = s_inv
    out[:n_first, n_first:] = -a11_inv_a12 @ s_inv
    out[n_first:, :n_first] = -s_inv @ a21_a11_inv
    out[:n_first, :n_first] = a11_inv - out[:n_first, n_first:] @ a21_a11_inv
    return out


def invert_giant(a: Array, n_first: int = 0, method: str = "dense") -> Array:
    """Dispatch giant-matrix inversion by name; all methods agree numerically."""

    key = method.strip().lower().replace("-", "_")
    if key in {"dense", "full", "lu"}:
        return invert(a)
    if key in {"partitioned", "block", "schur"}:
        return partitioned_inverse(a, n_first)
    raise InputValidationError(f"Unknown inversion method '{method}'. Use 'dense' or 'partitioned'.")
