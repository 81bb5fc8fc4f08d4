"""Core data structures for layer-by-layer LEED multiple scattering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


Array = np.ndarray

GEO_TOLERANCE = 1e-4


def _as_float_array(value: object, shape: tuple[int, ...], name: str) -> Array:
    arr = np.array(value, dtype=float)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}.")
    arr.setflags(write=False)
    return arr


class TemperatureTreatment(str, Enum):
    """How thermal vibrations enter the atomic t-matrix."""

    DIAG = "diag"
    NOND = "nond"


@dataclass(frozen=True)
class PhaseShiftTable:
    """Phase shifts delta_l(E) on an ascending energy grid (Hartree)."""

    energies: Array
    shifts: Array
    source: str = ""

    def __post_init__(self) -> None:
        energies = np.array(self.energies, dtype=float)
        shifts = np.array(self.shifts, dtype=float)
        if energies.ndim != 1 or energies.size == 0:
            raise ValueError("energies must be a non-empty 1D array.")
        if shifts.ndim == 1:
            shifts = shifts[:, None]
        if shifts.ndim != 2 or shifts.shape[0] != energies.size:
            raise ValueError("shifts must have shape (n_energies, l_max + 1).")
        energies.setflags(write=False)
        shifts.setflags(write=False)
        object.__setattr__(self, "energies", energies)
        object.__setattr__(self, "shifts", shifts)

    @property
    def l_max(self) -> int:
        return int(self.shifts.shape[1] - 1)

    @property
    def n_energies(self) -> int:
        return int(self.energies.size)

    @property
    def e_min(self) -> float:
        return float(self.energies[0])

    @property
    def e_max(self) -> float:
        return float(self.energies[-1])


@dataclass(frozen=True)
class PhaseShiftSet:
    """Phase shifts of one atom type plus its vibrational parameters.

    ``displacement`` holds the root-mean-square vibration amplitudes
    (u_x, u_y, u_z) in bohr. The diagonal treatment uses their isotropic
    mean ``(u_x^2 + u_y^2 + u_z^2) / 3``.
    """

    table: PhaseShiftTable
    displacement: Array = field(default_factory=lambda: np.zeros(3))
    treatment: TemperatureTreatment = TemperatureTreatment.DIAG

    def __post_init__(self) -> None:
        object.__setattr__(self, "displacement", _as_float_array(self.displacement, (3,), "displacement"))
        object.__setattr__(self, "treatment", TemperatureTreatment(self.treatment))
        if np.any(self.displacement < 0.0):
            raise ValueError("Vibration amplitudes must be non-negative.")

    @property
    def mean_square_displacement(self) -> float:
        return float(np.mean(self.displacement**2))


@dataclass(frozen=True)
class Atom:
    type: int
    position: Array

    def __post_init__(self) -> None:
        if self.type < 0:
            raise ValueError("Atom type must be a non-negative index.")
        object.__setattr__(self, "position", _as_float_array(self.position, (3,), "position"))


@dataclass(frozen=True)
class Layer:
    """Atoms sharing one 2D lattice; positions are relative to the layer origin.

    ``lattice`` holds the real-space basis vectors a1, a2 as rows (bohr) and
    ``rel_area`` the unit-cell area in units of the 1x1 substrate cell.
    """

    atoms: tuple[Atom, ...]
    lattice: Array
    rel_area: float = 1.0

    def __post_init__(self) -> None:
        atoms = tuple(self.atoms)
        if not atoms:
            raise ValueError("A layer must contain at least one atom.")
        object.__setattr__(self, "atoms", atoms)
        object.__setattr__(self, "lattice", _as_float_array(self.lattice, (2, 2), "lattice"))
        if abs(float(np.linalg.det(self.lattice))) < GEO_TOLERANCE:
            raise ValueError("Layer lattice vectors must span a finite area.")
        if self.rel_area <= 0.0:
            raise ValueError("rel_area must be positive.")

    @property
    def n_atoms(self) -> int:
        return len(self.atoms)

    @property
    def positions(self) -> Array:
        return np.array([atom.position for atom in self.atoms], dtype=float)

    @property
    def z_min(self) -> float:
        return float(np.min(self.positions[:, 2]))

    @property
    def z_max(self) -> float:
        return float(np.max(self.positions[:, 2]))

    @property
    def thickness(self) -> float:
        return self.z_max - self.z_min

    @property
    def area(self) -> float:
        return float(abs(np.linalg.det(self.lattice)))


@dataclass(frozen=True)
class LayerMatrices:
    """Plane-wave diffraction matrices of a layer or stack.

    ``+`` denotes propagation towards the vacuum (+z). Up-going outputs and
    down-going inputs are referenced to the top of the layer, the other two
    to its bottom.
    """

    tpp: Array
    tmm: Array
    rpm: Array
    rmp: Array

    def __post_init__(self) -> None:
        shape = self.tpp.shape
        if len(shape) != 2 or shape[0] != shape[1]:
            raise ValueError("Layer matrices must be square.")
        for name in ("tmm", "rpm", "rmp"):
            if getattr(self, name).shape != shape:
                raise ValueError(f"{name} must have the same shape as tpp.")

    @property
    def n_beams(self) -> int:
        return int(self.tpp.shape[0])


@dataclass(frozen=True)
class Beam:
    """A single diffraction channel at one energy."""

    ind1: float
    ind2: float
    k_x: float
    k_y: float
    k_par: float
    kz: complex
    cos_theta: complex
    phi: float
    akz: complex
    set_id: int


@dataclass(frozen=True)
class BeamList:
    """All beams generated for an energy loop, grouped by beam set.

    Indices are fractional (in units of the 1x1 reciprocal lattice);
    ``g_x``/``g_y`` are the reciprocal vectors without the incident k_par and
    ``k_par_sq`` their squared length.
    """

    ind1: Array
    ind2: Array
    g_x: Array
    g_y: Array
    k_par_sq: Array
    set_id: Array
    n_sets: int = 1

    def __post_init__(self) -> None:
        n = np.asarray(self.ind1).size
        for name in ("ind1", "ind2", "g_x", "g_y", "k_par_sq", "set_id"):
            arr = np.asarray(getattr(self, name))
            if arr.shape != (n,):
                raise ValueError(f"{name} must be a 1D array of length {n}.")
            arr = arr.copy()
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return int(self.ind1.size)


@dataclass(frozen=True)
class BeamSelection:
    """Beams inside the cutoff at one energy, with their kinematic factors."""

    ind1: Array
    ind2: Array
    set_id: Array
    k_x: Array
    k_y: Array
    kz: Array
    k: complex
    akz: Array
    energy: complex

    def __post_init__(self) -> None:
        n = np.asarray(self.ind1).size
        for name in ("ind1", "ind2", "set_id", "k_x", "k_y", "kz", "akz"):
            if np.asarray(getattr(self, name)).shape != (n,):
                raise ValueError(f"{name} must be a 1D array of length {n}.")

    def __len__(self) -> int:
        return int(self.ind1.size)

    @property
    def k_par(self) -> Array:
        return np.hypot(self.k_x, self.k_y)

    @property
    def cos_theta(self) -> Array:
        return self.kz / self.k

    @property
    def phi(self) -> Array:
        return np.arctan2(self.k_y, self.k_x)

    def beam(self, i: int) -> Beam:
        return Beam(
            ind1=float(self.ind1[i]),
            ind2=float(self.ind2[i]),
            k_x=float(self.k_x[i]),
            k_y=float(self.k_y[i]),
            k_par=float(self.k_par[i]),
            kz=complex(self.kz[i]),
            cos_theta=complex(self.cos_theta[i]),
            phi=float(self.phi[i]),
            akz=complex(self.akz[i]),
            set_id=int(self.set_id[i]),
        )

    def index_of(self, ind1: float, ind2: float, tol: float = GEO_TOLERANCE) -> int:
        hit = np.nonzero((np.abs(self.ind1 - ind1) < tol) & (np.abs(self.ind2 - ind2) < tol))[0]
        if hit.size == 0:
            raise KeyError(f"Beam ({ind1:g}, {ind2:g}) is not in the selection.")
        return int(hit[0])

    def set_groups(self) -> list[Array]:
        """Index arrays of the beams of each beam set, in set order."""

        return [np.nonzero(self.set_id == s)[0] for s in np.unique(self.set_id)]

    def subset(self, index: Array) -> BeamSelection:
        index = np.asarray(index, dtype=int)
        return BeamSelection(
            ind1=self.ind1[index],
            ind2=self.ind2[index],
            set_id=self.set_id[index],
            k_x=self.k_x[index],
            k_y=self.k_y[index],
            kz=self.kz[index],
            k=self.k,
            akz=self.akz[index],
            energy=self.energy,
        )
