"""Phase-shift reader registry.

Readers are registered under a name and, optionally, the file suffixes they
handle, so a reader can be picked from the file name when none is given.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from leedpy.core.types import PhaseShiftTable


Reader = Callable[[Any], PhaseShiftTable]
_READERS: dict[str, Reader] = {}
_SUFFIXES: dict[str, str] = {}

DEFAULT_READER = "cleed"


def _key(name: str) -> str:
    key = name.strip().lower()
    if not key:
        raise ValueError("Reader name must be non-empty.")
    return key


def register_reader(name: str, reader: Reader, suffixes: Iterable[str] = ()) -> None:
    key = _key(name)
    _READERS[key] = reader
    for suffix in suffixes:
        _SUFFIXES["." + suffix.strip().lower().lstrip(".")] = key


def get_reader(name: str) -> Reader:
    key = _key(name)
    if key not in _READERS:
        available = ", ".join(sorted(_READERS)) or "<none>"
        raise KeyError(f"Unknown phase-shift reader '{name}'. Available readers: {available}")
    return _READERS[key]


def list_readers() -> tuple[str, ...]:
    return tuple(sorted(_READERS))


def reader_for(source: Any) -> str:
    """Reader name registered for the suffix of ``source``, else the default."""

    suffix = Path(str(source)).suffix.lower()
    return _SUFFIXES.get(suffix, DEFAULT_READER)


def read_phase_shifts(source: Any, reader: str | None = None) -> PhaseShiftTable:
    name = reader_for(source) if reader is None else reader
    return get_reader(name)(source)
