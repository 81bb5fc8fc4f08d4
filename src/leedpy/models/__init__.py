from .toy import (
    SquareCrystalParams,
    c2x2_adsorbate_crystal,
    constant_phase_table,
    hard_sphere_phase_table,
    phase_set,
    square_crystal,
    square_layer,
)

__all__ = [
    "SquareCrystalParams",
    "square_layer",
    "square_crystal",
    "c2x2_adsorbate_crystal",
    "constant_phase_table",
    "hard_sphere_phase_table",
    "phase_set",
]
