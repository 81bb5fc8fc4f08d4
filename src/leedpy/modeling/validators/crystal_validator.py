"""Consistency checks for crystal models."""

from __future__ import annotations

import numpy as np

from leedpy.core.types import GEO_TOLERANCE, Layer
from leedpy.modeling.schema import Crystal


def _check_layer_lattice(layer: Layer, crystal: Crystal, name: str) -> None:
    lattices = {
        1: crystal.a_1x1,
        crystal.n_sets: crystal.superstructure @ crystal.a_1x1,
    }
    rel = int(round(layer.rel_area))
    if abs(layer.rel_area - rel) > GEO_TOLERANCE or rel not in lattices:
        raise ValueError(
            f"{name}: relative area {layer.rel_area:g} must be 1 or the superstructure area {crystal.n_sets}."
        )
    if abs(layer.area - layer.rel_area * crystal.area) > GEO_TOLERANCE * crystal.area:
        raise ValueError(f"{name}: lattice area {layer.area:.6g} does not match rel_area * 1x1 area.")
    # Lattice vectors may differ by a unimodular change of basis.
    coeff = layer.lattice @ np.linalg.inv(lattices[rel])
    if not np.allclose(coeff, np.round(coeff), atol=GEO_TOLERANCE):
        raise ValueError(f"{name}: lattice is not a sublattice of the 1x1 lattice with the expected basis.")


def validate_crystal(crystal: Crystal, n_types: int | None = None) -> None:
    _check_layer_lattice(crystal.bulk_layer, crystal, "bulk layer")
    if crystal.bulk_gap[2] <= GEO_TOLERANCE:
        raise ValueError("Bulk repeat vector must exceed the bulk layer thickness along z.")
    for idx, (item, gap) in enumerate(zip(crystal.overlayers, crystal.stacking_gaps())):
        name = f"overlayer {idx}"
        _check_layer_lattice(item.layer, crystal, name)
        if gap[2] <= GEO_TOLERANCE:
            raise ValueError(f"{name}: must lie above the layer below it (gap z={gap[2]:.4g} bohr).")

    if n_types is not None:
        for layer in crystal.layers:
            for atom in layer.atoms:
                if atom.type >= n_types:
                    raise ValueError(f"Atom type {atom.type} has no phase shifts ({n_types} types loaded).")
