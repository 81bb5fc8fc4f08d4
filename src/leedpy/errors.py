"""Exception types raised by leedpy."""

from __future__ import annotations


class LEEDError(Exception):
    """Base class for all leedpy errors."""


class AllocationError(LEEDError, MemoryError):
    """A matrix or work array could not be allocated."""


class ConvergenceError(LEEDError, RuntimeError):
    """An iterative expansion exhausted its iteration bound."""


class InputValidationError(LEEDError, ValueError):
    """Malformed input: bad matrix handles, damping, energies or geometry."""


class FileIOError(LEEDError, OSError):
    """A phase-shift or IV-curve file is missing or malformed."""


class SingularMatrixError(LEEDError, RuntimeError):
    """Matrix inversion failed."""
