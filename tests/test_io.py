import logging
from pathlib import Path

import numpy as np
import pytest

from leedpy.core.iv import IVResult
from leedpy.core.types import PhaseShiftTable, TemperatureTreatment
from leedpy.errors import FileIOError
from leedpy.io import (
    PhaseShiftLibrary,
    get_reader,
    list_readers,
    read_iv_curve,
    read_iv_curves,
    read_phase_shift_file,
    read_phase_shifts,
    reader_for,
    resolve_phase_path,
    write_iv_curves,
    write_phase_shift_file,
)
from leedpy.modeling.units import HARTREE_EV


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_cleed_reader_is_registered() -> None:
    assert "cleed" in list_readers()
    assert get_reader("CLEED") is read_phase_shift_file
    with pytest.raises(KeyError):
        get_reader("vasp")


def test_reads_ev_table_with_comments(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "Ni.phs",
        "# nickel\n2 2 eV\n20.0\n0.5 0.2 0.1\n40.0\n0.4 0.3\n0.15\n",
    )
    table = read_phase_shifts(path)
    assert table.l_max == 2
    assert np.allclose(table.energies, np.array([20.0, 40.0]) / HARTREE_EV)
    assert np.allclose(table.shifts, [[0.5, 0.2, 0.1], [0.4, 0.3, 0.15]])
    assert table.source == str(path)


def test_reads_fortran_number_formats(tmp_path: Path) -> None:
    path = _write(tmp_path / "Cu.phs", "1 3\n0.25\n0.12-0.34-5.0D-02 1.5E-03\n")
    table = read_phase_shift_file(path)
    assert np.allclose(table.shifts[0], [0.12, -0.34, -0.05, 0.0015])
    assert np.allclose(table.energies, [0.25])


def test_rydberg_energies_are_scaled(tmp_path: Path) -> None:
    path = _write(tmp_path / "O.phs", "1 0 Ry\n1.5\n0.3\n")
    assert np.allclose(read_phase_shift_file(path).energies, [3.0])


def test_truncated_file_warns_and_keeps_complete_records(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path / "short.phs", "3 1\n0.5\n0.1 0.2\n1.0\n0.3\n")
    with caplog.at_level(logging.WARNING, logger="leedpy.io.readers.phase_shift"):
        table = read_phase_shift_file(path)
    assert table.n_energies == 1
    assert "EOF found before reading all phase shifts" in caplog.text


@pytest.mark.parametrize(
    "text",
    ["", "two 1\n", "1 1 furlong\n0.5\n0.1 0.2\n", "2 0\n1.0\n0.1\n0.5\n0.2\n"],
)
def test_malformed_files_raise(tmp_path: Path, text: str) -> None:
    path = _write(tmp_path / "bad.phs", text)
    with pytest.raises(FileIOError):
        read_phase_shift_file(path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileIOError):
        read_phase_shift_file(tmp_path / "none.phs")


def test_bare_tag_resolves_against_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLEED_PHASE", str(tmp_path))
    assert resolve_phase_path("Ni") == tmp_path / "Ni.phs"
    assert resolve_phase_path("sub/Ni.phs") == Path("sub/Ni.phs")
    monkeypatch.delenv("CLEED_PHASE")
    with pytest.raises(FileIOError):
        resolve_phase_path("Ni")


def test_written_table_is_read_back(tmp_path: Path) -> None:
    table = PhaseShiftTable(energies=[0.5, 1.0, 2.0], shifts=[[0.1, -0.2], [0.3, -0.4], [0.5, 0.05]])
    path = tmp_path / "out" / "t.phs"
    write_phase_shift_file(path, table, unit="eV")
    back = read_phase_shift_file(path)
    assert np.allclose(back.energies, table.energies, rtol=1e-5)
    assert np.allclose(back.shifts, table.shifts)


def test_library_reuses_sets_and_tables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write(tmp_path / "Ni.phs", "1 1\n1.0\n0.2 0.1\n")
    _write(tmp_path / "O.phs", "1 0\n1.0\n0.4\n")
    monkeypatch.setenv("CLEED_PHASE", str(tmp_path))
    lib = PhaseShiftLibrary()
    first = lib.load("Ni", (0.1, 0.1, 0.1))
    assert lib.load(tmp_path / "Ni.phs", (0.1, 0.1, 0.10000001)) == first
    hot = lib.load("Ni", (0.2, 0.2, 0.2))
    nond = lib.load("Ni", (0.1, 0.1, 0.1), TemperatureTreatment.NOND)
    oxygen = lib.load("O")
    assert [first, hot, nond, oxygen] == [0, 1, 2, 3]
    assert len(lib) == 4
    assert lib.sets[1].table is lib.sets[0].table
    assert lib.sets[2].treatment is TemperatureTreatment.NOND


def test_iv_table_roundtrip_drops_non_emerging_points(tmp_path: Path) -> None:
    result = IVResult(
        energies=np.array([50.0, 60.0, 70.0]),
        ind1=np.array([0.0, 1.0, 0.5]),
        ind2=np.array([0.0, 0.0, 0.5]),
        intensities=np.array([[0.1, np.nan, np.nan], [0.2, 0.01, np.nan], [0.3, 0.02, np.nan]]),
    )
    path = write_iv_curves(tmp_path / "iv.tsv", result)
    curves = read_iv_curves(path)
    assert [c.label for c in curves] == ["(0,0)", "(1,0)"]
    assert np.allclose(curves[0].intensities, [0.1, 0.2, 0.3])
    assert np.allclose(curves[1].energies, [60.0, 70.0])


def test_two_column_curve(tmp_path: Path) -> None:
    path = _write(tmp_path / "beam10.dat", "# E I\n60 1.0\n50 2.0\n70 0.5\n")
    curve = read_iv_curve(path)
    assert curve.label == "beam10"
    assert np.allclose(curve.energies, [50.0, 60.0, 70.0])
    assert read_iv_curve(path, label="(1,0)").label == "(1,0)"
    with pytest.raises(FileIOError):
        read_iv_curve(_write(tmp_path / "bad.dat", "60 x\n"))


def test_reader_is_chosen_by_suffix(tmp_path: Path) -> None:
    assert reader_for(tmp_path / "Ni.phs") == "cleed"
    assert reader_for("Ni.PHS") == "cleed"
    assert reader_for("unknown.dat") == "cleed"
    path = _write(tmp_path / "Fe.phs", "1 0\n1.0\n0.2\n")
    assert read_phase_shifts(path).l_max == 0
