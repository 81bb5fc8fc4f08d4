"""Toy crystals and phase-shift tables for LEED benchmarks."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.special import spherical_jn, spherical_yn

from leedpy.core.types import Atom, Layer, PhaseShiftSet, PhaseShiftTable, TemperatureTreatment
from leedpy.modeling.schema import Crystal, StackedLayer


Array = np.ndarray


@dataclass(frozen=True)
class SquareCrystalParams:
    """Simple-cubic-like stack of square layers (bohr)."""

    a: float
    spacing: float
    n_overlayers: int = 0
    top_spacing: float | None = None


def square_layer(a: float, n_atoms_z: int = 1, dz: float = 0.0, atom_type: int = 0) -> Layer:
    # Atoms stacked along z inside one layer give a composite layer.
    atoms = tuple(Atom(type=atom_type, position=np.array([0.0, 0.0, i * dz])) for i in range(n_atoms_z))
    return Layer(atoms=atoms, lattice=np.array([[a, 0.0], [0.0, a]]))


def square_crystal(params: SquareCrystalParams) -> Crystal:
    bulk = Layer(atoms=(Atom(type=0, position=np.zeros(3)),), lattice=np.array([[params.a, 0.0], [0.0, params.a]]))
    overlayers = []
    for i in range(params.n_overlayers):
        last = i == params.n_overlayers - 1
        dz = params.top_spacing if (last and params.top_spacing is not None) else params.spacing
        overlayers.append(StackedLayer(layer=square_layer(params.a), offset=np.array([0.0, 0.0, dz])))
    return Crystal(
        a_1x1=np.array([[params.a, 0.0], [0.0, params.a]]),
        bulk_layer=bulk,
        bulk_vector=np.array([0.0, 0.0, params.spacing]),
        overlayers=tuple(overlayers),
    )


def c2x2_adsorbate_crystal(a: float, spacing: float, height: float) -> Crystal:
    """Square substrate (type 0) with a c(2x2) adsorbate layer (type 1)."""

    a_1x1 = np.array([[a, 0.0], [0.0, a]])
    sup = np.array([[1.0, 1.0], [-1.0, 1.0]])
    bulk = Layer(atoms=(Atom(type=0, position=np.zeros(3)),), lattice=a_1x1)
    adsorbate = Layer(atoms=(Atom(type=1, position=np.zeros(3)),), lattice=sup @ a_1x1, rel_area=2.0)
    return Crystal(
        a_1x1=a_1x1,
        bulk_layer=bulk,
        bulk_vector=np.array([0.0, 0.0, spacing]),
        overlayers=(StackedLayer(layer=adsorbate, offset=np.array([0.0, 0.0, height])),),
        superstructure=sup,
    )


def constant_phase_table(shifts: Array, e_min: float = 0.1, e_max: float = 10.0, n_energies: int = 2) -> PhaseShiftTable:
    energies = np.linspace(e_min, e_max, n_energies)
    return PhaseShiftTable(energies=energies, shifts=np.tile(np.asarray(shifts, dtype=float), (n_energies, 1)), source="constant")


def hard_sphere_phase_table(radius: float, l_max: int, energies: Array) -> PhaseShiftTable:
    """Phase shifts of an impenetrable sphere, tan(delta_l) = j_l(kR) / y_l(kR)."""

    energies = np.asarray(energies, dtype=float)
    x = np.sqrt(2.0 * energies)[:, None] * radius
    ls = np.arange(l_max + 1)[None, :]
    shifts = np.arctan(spherical_jn(ls, x) / spherical_yn(ls, x))
    return PhaseShiftTable(energies=energies, shifts=shifts, source=f"hard-sphere R={radius:g}")


def phase_set(table: PhaseShiftTable, u: float = 0.0, treatment: str = "diag") -> PhaseShiftSet:
    return PhaseShiftSet(table=table, displacement=np.full(3, u), treatment=TemperatureTreatment(treatment))
