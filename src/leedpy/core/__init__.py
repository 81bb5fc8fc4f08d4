from .beams import generate_beams, reciprocal_lattice, select_beams
from .composite import bravais_tmatrix, composite_layer_matrices, layer_matrices
from .doubling import bulk_reflection, double_layer, double_layer_rpm, propagators
from .iv import EnergyPoint, IVResult, beam_intensities, compute_iv_curves, energy_point, surface_reflection
from .lattice_sum import lattice_sum_ii, lattice_sum_ij, structure_constants
from .linalg import invert, invert_giant, lm_index, n_lm, partitioned_inverse
from .rfactor import IVCurve, RFactorObjective, RFactorResult, r_1, r_2, r_pendry, rfactor
from .tmatrix import CumulantCache, atomic_tmatrices, cumulant_tmatrix, temperature_tl
from .types import (
    Atom,
    BeamList,
    BeamSelection,
    Layer,
    LayerMatrices,
    PhaseShiftSet,
    PhaseShiftTable,
    TemperatureTreatment,
)

__all__ = [
    "Atom",
    "BeamList",
    "BeamSelection",
    "Layer",
    "LayerMatrices",
    "PhaseShiftSet",
    "PhaseShiftTable",
    "TemperatureTreatment",
    "EnergyPoint",
    "IVResult",
    "IVCurve",
    "RFactorObjective",
    "RFactorResult",
    "CumulantCache",
    "generate_beams",
    "reciprocal_lattice",
    "select_beams",
    "bravais_tmatrix",
    "composite_layer_matrices",
    "layer_matrices",
    "bulk_reflection",
    "double_layer",
    "double_layer_rpm",
    "propagators",
    "beam_intensities",
    "compute_iv_curves",
    "energy_point",
    "surface_reflection",
    "lattice_sum_ii",
    "lattice_sum_ij",
    "structure_constants",
    "invert",
    "invert_giant",
    "lm_index",
    "n_lm",
    "partitioned_inverse",
    "r_1",
    "r_2",
    "r_pendry",
    "rfactor",
    "atomic_tmatrices",
    "cumulant_tmatrix",
    "temperature_tl",
]
