"""Deduplicating registry of loaded phase-shift sets."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np

from leedpy.core.types import GEO_TOLERANCE, PhaseShiftSet, TemperatureTreatment
from leedpy.io.readers.phase_shift import resolve_phase_path
from leedpy.io.registry import read_phase_shifts


logger = logging.getLogger(__name__)


class PhaseShiftLibrary:
    """Phase-shift sets of one calculation, indexed by atom type.

    Loading the same file with the same vibration amplitudes (within
    ``GEO_TOLERANCE``) and temperature treatment returns the existing index.
    Files are parsed once even when several sets share them.
    """

    def __init__(self, reader: str | None = None) -> None:
        self.reader = reader
        self._sets: list[PhaseShiftSet] = []
        self._keys: list[tuple[str, np.ndarray, TemperatureTreatment]] = []
        self._tables: dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._sets)

    @property
    def sets(self) -> list[PhaseShiftSet]:
        return list(self._sets)

    def find(self, path: str, displacement: np.ndarray, treatment: TemperatureTreatment) -> int | None:
        for i, (p, u, t) in enumerate(self._keys):
            if p == path and t is treatment and np.all(np.abs(u - displacement) < GEO_TOLERANCE):
                return i
        return None

    def load(
        self,
        source: str | Path,
        displacement: Any = (0.0, 0.0, 0.0),
        treatment: TemperatureTreatment | str = TemperatureTreatment.DIAG,
    ) -> int:
        """Index of the set for ``source``; reads the file only when needed."""

        path = str(resolve_phase_path(source))
        u = np.asarray(displacement, dtype=float)
        treatment = TemperatureTreatment(treatment)
        found = self.find(path, u, treatment)
        if found is not None:
            logger.debug("Phase shifts '%s' already loaded as type %d.", path, found)
            return found
        if path not in self._tables:
            self._tables[path] = read_phase_shifts(path, reader=self.reader)
        self._sets.append(PhaseShiftSet(table=self._tables[path], displacement=u, treatment=treatment))
        self._keys.append((path, u, treatment))
        logger.info("Loaded phase shifts '%s' as type %d (%s).", path, len(self._sets) - 1, treatment.value)
        return len(self._sets) - 1
