"""Build :class:`Crystal` objects from JSON-style configuration dictionaries."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from leedpy.core.types import Atom, Layer
from leedpy.modeling.schema import Crystal, StackedLayer
from leedpy.modeling.units import length_scale
from leedpy.modeling.validators import validate_crystal


def _atom_type(value: Any, type_names: Sequence[str] | None) -> int:
    if isinstance(value, str):
        if type_names is None or value not in type_names:
            raise ValueError(f"Unknown atom type '{value}'.")
        return list(type_names).index(value)
    return int(value)


def _build_layer(
    cfg: dict[str, Any],
    *,
    scale: float,
    a_1x1: np.ndarray,
    superstructure: np.ndarray,
    type_names: Sequence[str] | None,
) -> Layer:
    atoms_cfg = cfg.get("atoms", [])
    if not atoms_cfg:
        raise ValueError("Each layer needs a non-empty 'atoms' list.")
    atoms = tuple(
        Atom(
            type=_atom_type(a.get("type", 0), type_names),
            position=np.asarray(a["position"], dtype=float) * scale,
        )
        for a in atoms_cfg
    )
    kind = str(cfg.get("lattice", "1x1")).lower()
    if kind == "1x1":
        lattice, rel_area = a_1x1, 1.0
    elif kind in {"super", "superstructure"}:
        lattice = superstructure @ a_1x1
        rel_area = abs(float(np.linalg.det(superstructure)))
    else:
        raise ValueError(f"Layer lattice must be '1x1' or 'super', got '{kind}'.")
    return Layer(atoms=atoms, lattice=lattice, rel_area=rel_area)


def build_crystal(cfg: dict[str, Any], type_names: Sequence[str] | None = None) -> Crystal:
    """Crystal from the ``lattice``, ``bulk`` and ``overlayers`` sections.

    Lengths are read in ``lattice.units`` (Angstrom by default) and stored in
    bohr. Atom ``type`` entries are indices or names from ``type_names``.
    """

    lcfg = dict(cfg.get("lattice", {}))
    if "a1" not in lcfg or "a2" not in lcfg:
        raise ValueError("lattice section must define 'a1' and 'a2'.")
    scale = length_scale(str(lcfg.get("units", "angstrom")))
    a_1x1 = np.array([lcfg["a1"], lcfg["a2"]], dtype=float) * scale
    superstructure = np.asarray(lcfg.get("superstructure", np.eye(2)), dtype=float)

    bcfg = dict(cfg.get("bulk", {}))
    if "repeat" not in bcfg:
        raise ValueError("bulk section must define the 'repeat' vector.")
    layer_kwargs = dict(scale=scale, a_1x1=a_1x1, superstructure=superstructure, type_names=type_names)
    bulk = _build_layer(bcfg, **layer_kwargs)

    overlayers = []
    for ocfg in cfg.get("overlayers", []):
        layer = _build_layer(ocfg, **layer_kwargs)
        offset = np.asarray(ocfg.get("offset", [0.0, 0.0, 0.0]), dtype=float) * scale
        overlayers.append(StackedLayer(layer=layer, offset=offset))

    crystal = Crystal(
        a_1x1=a_1x1,
        bulk_layer=bulk,
        bulk_vector=np.asarray(bcfg["repeat"], dtype=float) * scale,
        overlayers=tuple(overlayers),
        superstructure=superstructure,
    )
    validate_crystal(crystal, n_types=None if type_names is None else len(type_names))
    return crystal
