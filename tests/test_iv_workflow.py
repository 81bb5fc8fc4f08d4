import json
from pathlib import Path

import numpy as np
import pytest

from leedpy.io import read_iv_curves
from leedpy.workflows.iv_run import _load_phase_shifts, _remap_types, run_iv_curves, write_input_template
from leedpy.modeling import angstrom_to_bohr, build_crystal


def _write_config(tmp_path: Path, name: str, experiment: dict | None = None) -> Path:
    (tmp_path / "Ni.phs").write_text(
        "3 3 Hartree\n0.5\n0.8 0.4 0.1 0.02\n5.0\n0.7 0.45 0.12 0.03\n10.0\n0.6 0.5 0.15 0.04\n",
        encoding="utf-8",
    )
    cfg = {
        "run": {"name": name, "output_dir": "out", "write_plot": False},
        "phase_shifts": [{"name": "Ni", "path": "Ni.phs", "displacement": 0.05}],
        "lattice": {"units": "bohr", "a1": [4.7, 0.0], "a2": [0.0, 4.7]},
        "bulk": {"atoms": [{"type": "Ni", "position": [0.0, 0.0, 0.0]}], "repeat": [0.0, 0.0, 3.3]},
        "energy": {"min": 60.0, "max": 80.0, "step": 5.0},
        "calculation": {"l_max": 3, "epsilon": 1e-2},
        "experiment": experiment or {"enabled": False},
    }
    path = tmp_path / f"{name}.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")
    return path


def test_template_builds_a_valid_crystal(tmp_path: Path) -> None:
    path = write_input_template(tmp_path / "template.json")
    cfg = json.loads(path.read_text(encoding="utf-8"))
    assert cfg["run"]["name"] == "ni100_iv"
    assert cfg["experiment"]["rfactor"]["kind"] == "rp"
    crystal = build_crystal(_remap_types(cfg, ["Ni"], [0]))
    assert len(crystal.overlayers) == 1
    assert crystal.dmin == pytest.approx(float(angstrom_to_bohr(1.76)))


def test_remap_rejects_unknown_type() -> None:
    cfg = {"bulk": {"atoms": [{"type": "Cu", "position": [0, 0, 0]}]}}
    with pytest.raises(ValueError):
        _remap_types(cfg, ["Ni"], [0])


def test_run_writes_table_and_report(tmp_path: Path) -> None:
    report = run_iv_curves(_write_config(tmp_path, "toy"))
    data = Path(report["outputs"]["data"])
    assert data.exists()
    assert "plot" not in report["outputs"]
    assert Path(report["outputs"]["report"]).exists()
    assert report["energies"] == {"min": 60.0, "max": 80.0, "n_points": 5}
    assert report["rfactor"] is None
    assert report["phase_shifts"][0]["index"] == 0
    assert report["phase_shifts"][0]["displacement_bohr"] == pytest.approx([0.05, 0.05, 0.05])

    curves = read_iv_curves(data)
    assert curves[0].label == "(0,0)"
    assert np.allclose(curves[0].energies, [60.0, 65.0, 70.0, 75.0, 80.0])
    assert all(np.all(c.intensities > 0.0) for c in curves)


def test_run_compares_against_experiment(tmp_path: Path) -> None:
    first = run_iv_curves(_write_config(tmp_path, "theory"))
    experiment = {
        "enabled": True,
        "table": first["outputs"]["data"],
        "rfactor": {"kind": "rp", "shift_range": 2.0},
    }
    report = run_iv_curves(_write_config(tmp_path, "fit", experiment))
    assert report["rfactor"]["kind"] == "rp"
    assert report["rfactor"]["value"] == pytest.approx(0.0, abs=1e-6)
    assert "(0,0)" in report["rfactor"]["per_beam"]
    saved = json.loads(Path(report["outputs"]["report"]).read_text(encoding="utf-8"))
    assert saved["rfactor"]["value"] == pytest.approx(report["rfactor"]["value"])


def test_displacements_follow_the_lattice_length_unit(tmp_path: Path) -> None:
    cfg = json.loads(_write_config(tmp_path, "units").read_text(encoding="utf-8"))
    library, _, indices = _load_phase_shifts(cfg, tmp_path)
    assert np.allclose(library.sets[indices[0]].displacement, 0.05)

    cfg["lattice"]["units"] = "angstrom"
    library, _, indices = _load_phase_shifts(cfg, tmp_path)
    assert np.allclose(library.sets[indices[0]].displacement, float(angstrom_to_bohr(0.05)))

    del cfg["lattice"]["units"]
    library, _, indices = _load_phase_shifts(cfg, tmp_path)
    assert np.allclose(library.sets[indices[0]].displacement, float(angstrom_to_bohr(0.05)))
