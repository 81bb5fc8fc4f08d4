"""Plain-text IV curves: two-column files and multi-beam TSV tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np

from leedpy.core.iv import IVResult, beam_label
from leedpy.core.rfactor import IVCurve
from leedpy.errors import FileIOError


logger = logging.getLogger(__name__)


def _load_table(path: Path) -> tuple[list[str], np.ndarray]:
    header: list[str] = []
    rows: list[list[float]] = []
    try:
        with path.open("r", encoding="utf-8") as fh:
            for line in fh:
                text = line.strip()
                if not text:
                    continue
                if text.startswith("#"):
                    header = text.lstrip("#").split()
                    continue
                rows.append([float(tok) for tok in text.split()])
    except OSError as exc:
        raise FileIOError(f"Cannot read IV file '{path}': {exc}") from exc
    except ValueError as exc:
        raise FileIOError(f"Non-numeric data in IV file '{path}': {exc}") from exc
    if not rows:
        raise FileIOError(f"IV file '{path}' contains no data.")
    width = {len(r) for r in rows}
    if len(width) != 1 or width.pop() < 2:
        raise FileIOError(f"IV file '{path}' must have a constant number (>= 2) of columns.")
    return header, np.asarray(rows, dtype=float)


def read_iv_curve(source: Any, label: str | None = None) -> IVCurve:
    """Read a two-column (energy in eV, intensity) curve."""

    path = Path(source)
    _, data = _load_table(path)
    return IVCurve(data[:, 0], data[:, 1], label=path.stem if label is None else label)


def read_iv_curves(source: Any) -> list[IVCurve]:
    """Read every beam column of a table written by :func:`write_iv_curves`."""

    path = Path(source)
    header, data = _load_table(path)
    labels = header[1:] if len(header) == data.shape[1] else [f"beam{j}" for j in range(1, data.shape[1])]
    curves = []
    for j, label in enumerate(labels, start=1):
        ok = np.isfinite(data[:, j])
        if np.count_nonzero(ok) < 2:
            logger.debug("Skipping beam %s in '%s': fewer than two points.", label, path)
            continue
        curves.append(IVCurve(data[ok, 0], data[ok, j], label=label))
    return curves


def write_iv_curves(path: str | Path, result: IVResult, beams: list[tuple[float, float]] | None = None) -> Path:
    """Write energies and beam intensities as a whitespace-separated table."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    beams = result.emerging_beams() if beams is None else beams
    cols = [result.beam_index(a, b) for a, b in beams]
    labels = "\t".join(beam_label(a, b) for a, b in beams)
    with p.open("w", encoding="utf-8") as fh:
        fh.write(f"# E(eV)\t{labels}\n")
        for i, e in enumerate(result.energies):
            values = "\t".join(f"{float(result.intensities[i, j]):.10e}" for j in cols)
            fh.write(f"{float(e):.6f}\t{values}\n")
    return p
