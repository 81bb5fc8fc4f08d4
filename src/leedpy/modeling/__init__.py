from .builders import build_crystal
from .schema import CalcConfig, Crystal, RFactorConfig, StackedLayer
from .units import angstrom_to_bohr, bohr_to_angstrom, energy_scale, ev_to_hartree, hartree_to_ev, length_scale
from .validators import validate_crystal

__all__ = [
    "CalcConfig",
    "RFactorConfig",
    "Crystal",
    "StackedLayer",
    "build_crystal",
    "validate_crystal",
    "angstrom_to_bohr",
    "bohr_to_angstrom",
    "energy_scale",
    "ev_to_hartree",
    "hartree_to_ev",
    "length_scale",
]
