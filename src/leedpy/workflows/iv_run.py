"""LEED IV-curve calculations driven by a JSON input file."""

from __future__ import annotations

import argparse
import hashlib
import json
import logging
import re
import socket
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from leedpy.core import IVResult, compute_iv_curves, rfactor
from leedpy.core.rfactor import IVCurve, remove_negative_data, smooth_curve
from leedpy.io import PhaseShiftLibrary, read_iv_curve, read_iv_curves, write_iv_curves
from leedpy.modeling import CalcConfig, RFactorConfig, build_crystal, length_scale, validate_crystal


logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sanitize_token(value: str) -> str:
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip())
    return token if token else "unnamed"


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _resolve_path(base_dir: Path, path_like: str | Path) -> Path:
    p = Path(path_like)
    return p if p.is_absolute() else (base_dir / p)


def _to_builtin(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (np.floating, np.integer)):
        return value.item()
    if isinstance(value, dict):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_builtin(v) for v in value]
    return value


def _load_json_config(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8-sig") as fh:
        cfg = json.load(fh)
    if not isinstance(cfg, dict):
        raise ValueError("Input config must be a JSON object.")
    return cfg


def _save_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(_to_builtin(payload), fh, indent=2, sort_keys=True)
        fh.write("\n")


def _build_energy_grid(cfg: dict[str, Any]) -> np.ndarray:
    ecfg = dict(cfg.get("energy", {}))
    if "values" in ecfg:
        energies = np.asarray(ecfg["values"], dtype=float)
    else:
        e_min = float(ecfg.get("min", 50.0))
        e_max = float(ecfg.get("max", 200.0))
        step = float(ecfg.get("step", 4.0))
        if step <= 0.0:
            raise ValueError("energy.step must be positive.")
        if e_max < e_min:
            raise ValueError("energy.max must not be smaller than energy.min.")
        n = int(np.floor((e_max - e_min) / step + 1e-9)) + 1
        energies = e_min + step * np.arange(n)
    if energies.size == 0 or np.any(energies <= 0.0):
        raise ValueError("Energies must be positive (eV).")
    return energies


def _build_calc_config(cfg: dict[str, Any]) -> CalcConfig:
    ccfg = dict(cfg.get("calculation", {}))
    return CalcConfig(
        l_max=int(ccfg.get("l_max", 8)),
        epsilon=float(ccfg.get("epsilon", 1e-3)),
        vr=float(ccfg.get("vr", -10.0)),
        vi=float(ccfg.get("vi", 4.0)),
        theta=float(ccfg.get("theta", 0.0)),
        phi=float(ccfg.get("phi", 0.0)),
        inversion=str(ccfg.get("inversion", "dense")),
        doubling_tol=float(ccfg.get("doubling_tol", 1e-6)),
        doubling_max_iter=int(ccfg.get("doubling_max_iter", 16)),
    )


def _load_phase_shifts(cfg: dict[str, Any], base_dir: Path) -> tuple[PhaseShiftLibrary, list[str], list[int]]:
    entries = cfg.get("phase_shifts", [])
    if not entries:
        raise ValueError("phase_shifts must list at least one atom type.")
    reader = cfg.get("phase_reader")
    library = PhaseShiftLibrary(reader=None if reader is None else str(reader))
    # Displacements share the length unit of the lattice block.
    scale = length_scale(str(cfg.get("lattice", {}).get("units", "angstrom")))
    names: list[str] = []
    indices: list[int] = []
    for entry in entries:
        name = str(entry["name"])
        source = str(entry["path"])
        # Bare tags are resolved through CLEED_PHASE by the library.
        if Path(source).suffix or len(Path(source).parts) > 1:
            source = str(_resolve_path(base_dir, source))
        u = np.asarray(entry.get("displacement", [0.0, 0.0, 0.0]), dtype=float)
        if u.size == 1:
            u = np.full(3, float(u.ravel()[0]))
        idx = library.load(
            source,
            displacement=scale * u,
            treatment=str(entry.get("treatment", "diag")),
        )
        names.append(name)
        indices.append(idx)
    return library, names, indices


def _remap_types(cfg: dict[str, Any], names: list[str], indices: list[int]) -> dict[str, Any]:
    # Atom types in the config name entries of phase_shifts; map them to library indices.
    table = dict(zip(names, indices))

    def _map_layer(lcfg: dict[str, Any]) -> dict[str, Any]:
        out = dict(lcfg)
        atoms = []
        for atom in lcfg.get("atoms", []):
            a = dict(atom)
            t = a.get("type", names[0])
            if isinstance(t, str):
                if t not in table:
                    raise ValueError(f"Atom type '{t}' is not listed in phase_shifts.")
                a["type"] = table[t]
            else:
                a["type"] = indices[int(t)]
            atoms.append(a)
        out["atoms"] = atoms
        return out

    out = dict(cfg)
    out["bulk"] = _map_layer(dict(cfg.get("bulk", {})))
    out["overlayers"] = [_map_layer(dict(o)) for o in cfg.get("overlayers", [])]
    return out


def _load_experiment(ecfg: dict[str, Any], base_dir: Path) -> list[IVCurve]:
    curves: list[IVCurve] = []
    if "table" in ecfg:
        curves.extend(read_iv_curves(_resolve_path(base_dir, ecfg["table"])))
    for item in ecfg.get("curves", []):
        curves.append(read_iv_curve(_resolve_path(base_dir, item["path"]), label=str(item["beam"])))
    mode = str(ecfg.get("negative_data", "cut"))
    sigma = float(ecfg.get("smooth_sigma", 0.0))
    return [smooth_curve(remove_negative_data(c, mode=mode), sigma) for c in curves]


def _build_rfactor_config(ecfg: dict[str, Any]) -> RFactorConfig:
    rcfg = dict(ecfg.get("rfactor", {}))
    return RFactorConfig(
        kind=str(rcfg.get("kind", "rp")).lower(),
        shift_range=float(rcfg.get("shift_range", 10.0)),
        shift_step=float(rcfg.get("shift_step", 0.25)),
        grid_step=float(rcfg.get("grid_step", 0.5)),
        vi=float(rcfg.get("vi", 4.0)),
    )


def _plot_iv_curves(path: Path, result: IVResult, beams: list[tuple[float, float]], *, title: str) -> None:
    import matplotlib.pyplot as plt

    path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(7.2, 4.6))
    offset = 0.0
    for beam in beams:
        curve = result.curve(*beam)
        if len(curve) == 0:
            continue
        scale = float(np.max(curve.intensities)) or 1.0
        ax.plot(curve.energies, curve.intensities / scale + offset, lw=1.4, label=curve.label)
        offset += 1.1
    ax.set_xlabel("Energy (eV)")
    ax.set_ylabel("Intensity (normalised, offset)")
    ax.set_title(title)
    ax.grid(alpha=0.3)
    ax.legend(fontsize=8, loc="upper right")
    fig.tight_layout()
    fig.savefig(path, dpi=220)
    plt.close(fig)


def _default_template() -> dict[str, Any]:
    return {
        "run": {
            "name": "ni100_iv",
            "output_dir": "outputs/iv_runs",
            "write_plot": True,
            "write_data": True,
            "write_report": True,
            "plot_beams": 6,
        },
        "phase_shifts": [
            {"name": "Ni", "path": "Ni.phs", "displacement": [0.1, 0.1, 0.1], "treatment": "diag"},
        ],
        "phase_reader": "cleed",
        "lattice": {
            "units": "angstrom",
            "a1": [2.49, 0.0],
            "a2": [0.0, 2.49],
            "superstructure": [[1.0, 0.0], [0.0, 1.0]],
        },
        "bulk": {
            "lattice": "1x1",
            "atoms": [{"type": "Ni", "position": [0.0, 0.0, 0.0]}],
            "repeat": [1.245, 1.245, 1.76],
        },
        "overlayers": [
            {
                "lattice": "1x1",
                "atoms": [{"type": "Ni", "position": [0.0, 0.0, 0.0]}],
                "offset": [1.245, 1.245, 1.76],
            },
        ],
        "energy": {"min": 50.0, "max": 200.0, "step": 4.0},
        "calculation": {
            "l_max": 8,
            "epsilon": 1e-3,
            "vr": -10.0,
            "vi": 4.0,
            "theta": 0.0,
            "phi": 0.0,
            "inversion": "dense",
            "doubling_tol": 1e-6,
            "doubling_max_iter": 16,
        },
        "experiment": {
            "enabled": False,
            "table": "experiment.tsv",
            "curves": [],
            "negative_data": "cut",
            "smooth_sigma": 0.0,
            "rfactor": {"kind": "rp", "shift_range": 10.0, "shift_step": 0.25, "grid_step": 0.5, "vi": 4.0},
        },
    }


def write_input_template(path: str | Path) -> Path:
    out = Path(path)
    _save_json(out, _default_template())
    return out


def run_iv_curves(config_path: str | Path) -> dict[str, Any]:
    cfg_path = Path(config_path)
    cfg_dir = cfg_path.parent if cfg_path.parent != Path("") else Path(".")
    cfg = _load_json_config(cfg_path)
    run_cfg = dict(cfg.get("run", {}))
    run_name = str(run_cfg.get("name", f"iv_{cfg_path.stem}"))
    run_name_safe = _sanitize_token(run_name)
    output_dir = _resolve_path(cfg_dir, run_cfg.get("output_dir", "outputs/iv_runs"))
    write_plot = bool(run_cfg.get("write_plot", True))
    write_data = bool(run_cfg.get("write_data", True))
    write_report = bool(run_cfg.get("write_report", True))
    n_plot = int(run_cfg.get("plot_beams", 6))

    started = _utc_now_iso()
    t0 = time.perf_counter()

    library, names, indices = _load_phase_shifts(cfg, cfg_dir)
    crystal = build_crystal(_remap_types(cfg, names, indices))
    n_types = len(library)
    validate_crystal(crystal, n_types=n_types)
    calc = _build_calc_config(cfg)
    energies = _build_energy_grid(cfg)
    logger.info(
        "Run %s: %d energies %.1f-%.1f eV, %d overlayer(s), %d phase-shift set(s).",
        run_name,
        energies.size,
        energies[0],
        energies[-1],
        len(crystal.overlayers),
        n_types,
    )

    result = compute_iv_curves(crystal, library.sets, energies, calc)
    beams = result.emerging_beams()

    outputs: dict[str, Any] = {}
    if write_data:
        data_path = output_dir / f"{run_name_safe}_iv.tsv"
        write_iv_curves(data_path, result, beams)
        outputs["data"] = str(data_path)
    if write_plot and beams:
        plot_path = output_dir / f"{run_name_safe}_iv.png"
        _plot_iv_curves(plot_path, result, beams[:n_plot], title=f"LEED IV curves: {run_name}")
        outputs["plot"] = str(plot_path)

    rfactor_info: dict[str, Any] | None = None
    ecfg = dict(cfg.get("experiment", {}))
    if bool(ecfg.get("enabled", False)):
        experiment = _load_experiment(ecfg, cfg_dir)
        rcfg = _build_rfactor_config(ecfg)
        theory = [result.curve(*b) for b in beams]
        best = rfactor(
            theory,
            experiment,
            kind=rcfg.kind,
            vi=rcfg.vi,
            shift_range=rcfg.shift_range,
            shift_step=rcfg.shift_step,
            grid_step=rcfg.grid_step,
        )
        rfactor_info = {
            "kind": best.kind,
            "value": best.value,
            "shift_ev": best.shift,
            "overlap_ev": best.overlap,
            "per_beam": best.per_beam,
        }
        logger.info("R-factor %s = %.4f at shift %.2f eV.", best.kind, best.value, best.shift)

    runtime = time.perf_counter() - t0
    report: dict[str, Any] = {
        "run": {
            "name": run_name,
            "started_utc": started,
            "finished_utc": _utc_now_iso(),
            "runtime_seconds": runtime,
            "config_path": str(cfg_path),
            "config_sha256": _sha256_file(cfg_path),
            "hostname": socket.gethostname(),
        },
        "calculation": {
            "l_max": calc.l_max,
            "epsilon": calc.epsilon,
            "vr": calc.vr,
            "vi": calc.vi,
            "theta": calc.theta,
            "phi": calc.phi,
            "inversion": calc.inversion,
        },
        "crystal": {
            "n_overlayers": len(crystal.overlayers),
            "n_beam_sets": crystal.n_sets,
            "area_bohr2": crystal.area,
        },
        "phase_shifts": [
            {
                "name": n,
                "index": i,
                "source": library.sets[i].table.source,
                "displacement_bohr": library.sets[i].displacement.tolist(),
            }
            for n, i in zip(names, indices)
        ],
        "energies": {"min": float(energies[0]), "max": float(energies[-1]), "n_points": int(energies.size)},
        "beams": [list(b) for b in beams],
        "rfactor": rfactor_info,
        "outputs": outputs,
    }

    if write_report:
        report_path = output_dir / run_cfg.get("report_filename", f"{run_name_safe}_report.json")
        _save_json(report_path, report)
        report["outputs"]["report"] = str(report_path)
    return report


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--input", type=Path, default=None, help="Path to JSON run configuration.")
    parser.add_argument("--write-template", type=Path, default=None, help="Write template config and exit.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO), format="%(levelname)s %(name)s: %(message)s")

    if args.write_template is not None:
        out = write_input_template(args.write_template)
        print(f"Wrote template: {out}")
        return
    if args.input is None:
        raise ValueError("Provide --input <config.json> or --write-template <path>.")

    report = run_iv_curves(args.input)
    print(f"Run complete: {report['run']['name']}")
    print(f"runtime_seconds={report['run']['runtime_seconds']:.3f}")
    if report["rfactor"] is not None:
        print(f"rfactor={report['rfactor']['value']:.4f} shift={report['rfactor']['shift_ev']:.2f} eV")
    print(f"outputs={report['outputs']}")


if __name__ == "__main__":
    main()
