"""Crystal structure: a periodic bulk with overlayers stacked on top."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from leedpy.core.types import Layer


Array = np.ndarray


@dataclass(frozen=True)
class StackedLayer:
    """An overlayer and the vector from the origin of the layer below to its own."""

    layer: Layer
    offset: Array

    def __post_init__(self) -> None:
        offset = np.array(self.offset, dtype=float)
        if offset.shape != (3,):
            raise ValueError("offset must have three components.")
        object.__setattr__(self, "offset", offset)


@dataclass(frozen=True)
class Crystal:
    """Semi-infinite crystal for an IV calculation (lengths in bohr).

    ``bulk_vector`` translates a bulk layer onto the next one above it.
    ``overlayers`` are listed from the bulk towards the vacuum.
    ``superstructure`` maps the 1x1 basis onto the overlayer basis
    (``a_super = M @ a_1x1``).
    """

    a_1x1: Array
    bulk_layer: Layer
    bulk_vector: Array
    overlayers: tuple[StackedLayer, ...] = ()
    superstructure: Array = field(default_factory=lambda: np.eye(2))

    def __post_init__(self) -> None:
        a = np.array(self.a_1x1, dtype=float)
        if a.shape != (2, 2):
            raise ValueError("a_1x1 must be a 2x2 array of row vectors.")
        vec = np.array(self.bulk_vector, dtype=float)
        if vec.shape != (3,):
            raise ValueError("bulk_vector must have three components.")
        sup = np.array(self.superstructure, dtype=float)
        if sup.shape != (2, 2):
            raise ValueError("superstructure must be a 2x2 matrix.")
        object.__setattr__(self, "a_1x1", a)
        object.__setattr__(self, "bulk_vector", vec)
        object.__setattr__(self, "superstructure", sup)
        object.__setattr__(self, "overlayers", tuple(self.overlayers))

    @property
    def area(self) -> float:
        return float(abs(np.linalg.det(self.a_1x1)))

    @property
    def n_sets(self) -> int:
        return int(round(abs(float(np.linalg.det(self.superstructure)))))

    @property
    def layers(self) -> tuple[Layer, ...]:
        return (self.bulk_layer,) + tuple(item.layer for item in self.overlayers)

    @property
    def bulk_gap(self) -> Array:
        """From the top of one bulk layer to the bottom of the next."""

        thickness = self.bulk_layer.thickness
        return self.bulk_vector - np.array([0.0, 0.0, thickness])

    def stacking_gaps(self) -> list[Array]:
        """Gap vectors between consecutive layers, starting with bulk -> first overlayer."""

        gaps = []
        lower = self.bulk_layer
        for item in self.overlayers:
            gap = item.offset + np.array([0.0, 0.0, item.layer.z_min - lower.z_max])
            gaps.append(gap)
            lower = item.layer
        return gaps

    @property
    def dmin(self) -> float:
        """Smallest vertical separation between neighbouring layers."""

        z = [float(self.bulk_gap[2])] + [float(g[2]) for g in self.stacking_gaps()]
        return min(z)
