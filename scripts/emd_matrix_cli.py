#!/usr/bin/env python3
"""
Build monthly chlorophyll signatures, compute their pairwise Wasserstein
distances, and derive a dendrogram and an MDS layout.

This CLI is a thin driver around `chloro_wasserstein`. It resolves a run
configuration (TOML files under config/, plus command-line overrides), loads
one CSV table per data source, builds one unit-mass grid signature per
(source, month), assembles the symmetric distance matrix with the exact EMD
solver, and writes a TSV report (plus optional PNG plots) under --outdir.

-------------------------------------------------------------------------------
Key features
-------------------------------------------------------------------------------
- Layered TOML configuration: region file -> run file -> --set overrides.
- Discovery mode: --data scans a directory for <source>_<resolution>.csv files
  and uses every matching table as a data source.
- Only n(n-1)/2 solver calls; optional parallel map with --jobs.
- Progress lines: `[OK] NN/N: <label>` per signature, then matrix summary.
- Display the docstring usage examples with `--examples`.

-------------------------------------------------------------------------------
Input / output conventions
-------------------------------------------------------------------------------
- CSV columns: lon, lat, month (1..12) and a value column (default "chl").
- Output: <outdir>/distance_matrix.tsv with a commented metadata block,
  and with --plots: maps/<label>.png, dendrogram.png, mds.png and one
  transport vector-flow plot for the first two signatures.

-------------------------------------------------------------------------------
Command-line usage examples
-------------------------------------------------------------------------------
1) Run a stored configuration (config/runs/benguela.toml):
   python scripts/emd_matrix_cli.py --run benguela

2) Same run with parallel solver calls and plots:
   python scripts/emd_matrix_cli.py --run benguela --jobs 4 --plots

3) Override single values without editing the files:
   python scripts/emd_matrix_cli.py --run benguela \
       --set analysis.linkage=complete --set analysis.months=1,4,7,10

4) Discover tables in a directory, 1 degree tiles only:
   python scripts/emd_matrix_cli.py --data data/ --tile 1deg \
       --bbox 5 20 -35 -15 --value-col chl

5) Drop a padding row present in some resolution tiles:
   python scripts/emd_matrix_cli.py --run benguela --set grid.trim_last_rows=1

6) Print the effective configuration and exit:
   python scripts/emd_matrix_cli.py --run benguela --print-config

7) Show only this example block and exit:
   python scripts/emd_matrix_cli.py --examples

-------------------------------------------------------------------------------
Notes
-------------------------------------------------------------------------------
- A month with no observation inside the bounding box, or with zero total
  mass, aborts the run with an [ERROR] line naming the signature.
- Two observations in one grid cell abort the run as well; check that
  --resolution matches the data and that the box edges fall on cell edges.
- Solver failures abort the run; no distance is ever replaced by a sentinel.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional

from chloro_wasserstein.core.config_loader import (
    apply_sets,
    dump_effective_config,
    load_run_config,
)
from chloro_wasserstein.core.discovery import discover_tables, parse_resolution_deg
from chloro_wasserstein.core.errors import ChloroWassersteinError
from chloro_wasserstein.core.model import PipelineConfig
from chloro_wasserstein.pipeline import PipelineResult, run_pipeline, write_outputs


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Pairwise Wasserstein distances between monthly chlorophyll "
            "distributions, with clustering and MDS."
        )
    )
    p.add_argument(
        "--examples", action="store_true", help="Show usage examples and exit."
    )
    p.add_argument(
        "--run", type=str, default=None, help="Run name (loads config/runs/<name>.toml)."
    )
    p.add_argument(
        "--run-config", type=str, default=None, help="Path to a run TOML file."
    )
    p.add_argument(
        "--project-root",
        type=str,
        default=None,
        help="Root used to resolve config/ and relative paths (default: cwd).",
    )
    p.add_argument(
        "--set",
        dest="sets",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config value, e.g. --set analysis.p=1 (repeatable).",
    )
    p.add_argument(
        "--data",
        default=None,
        help="Directory with <source>_<resolution>.csv tables (discovery mode).",
    )
    p.add_argument(
        "--tile",
        default=None,
        help="Resolution token to keep in discovery mode (e.g. 1deg, 0p25deg).",
    )
    p.add_argument(
        "--recursive",
        action="store_true",
        help="Search --data recursively.",
    )
    p.add_argument(
        "--value-col",
        default=None,
        help="Value column name for discovered tables (default: chl).",
    )
    p.add_argument(
        "--bbox",
        nargs=4,
        type=float,
        default=None,
        metavar=("LON_MIN", "LON_MAX", "LAT_MIN", "LAT_MAX"),
        help="Bounding box in degrees (overrides [region]).",
    )
    p.add_argument(
        "--resolution",
        type=float,
        default=None,
        help="Grid resolution in degrees (overrides [grid]).",
    )
    p.add_argument(
        "--jobs",
        type=int,
        default=None,
        help="Parallel workers for solver calls (1 = sequential, -1 = all cores).",
    )
    p.add_argument(
        "--outdir",
        default=None,
        help="Directory for the report and plots (default: ./results).",
    )
    p.add_argument("--plots", action="store_true", help="Also write PNG plots.")
    p.add_argument(
        "--print-config",
        action="store_true",
        help="Print the effective configuration as TOML and exit.",
    )
    return p


def extract_examples_from_docstring() -> tuple[str, str]:
    """
    Extract the 'Command-line usage examples' section from the module docstring.

    The section begins at the line containing the exact title and ends at the
    next separator line (at least 10 consecutive '-' characters).

    Returns a tuple (title, body)
    """
    doc = __doc__ or ""
    title = "Command-line usage examples"

    start_idx = doc.find(title)
    if start_idx == -1:
        return title, "No examples available."

    block = doc[start_idx:].splitlines()
    hyphens = "-" * 10
    body_lines = []
    # Skip the title and its underline
    for line in block[2:]:
        if hyphens in line:
            break
        body_lines.append(line.rstrip())
    return title, "\n".join(body_lines).strip()


def _effective_config(args, project_root: str):
    """Compose the config dict from files and CLI switches."""
    config_file = None
    if args.run or args.run_config:
        cfg, summary = load_run_config(
            project_root, args.run, args.run_config, args.sets
        )
        config_file = summary["run_path"]
        print(f"[INFO] Loaded config: {config_file}")
        if summary["region_path"]:
            print(f"[INFO] Region: {summary['region_path']}")
    else:
        cfg = apply_sets({"grid": {}, "analysis": {}, "output": {}}, args.sets)

    if args.bbox is not None:
        lon_min, lon_max, lat_min, lat_max = args.bbox
        cfg["region"] = dict(
            cfg.get("region", {}),
            lon_min=lon_min, lon_max=lon_max, lat_min=lat_min, lat_max=lat_max,
        )
    if args.data:
        root = Path(args.data).expanduser()
        if not root.is_absolute():
            root = Path(project_root) / root
        tables = discover_tables(str(root), resolution=args.tile, recursive=args.recursive)
        if not tables:
            raise FileNotFoundError(
                f"No <source>_<resolution>.csv tables found under {root}"
            )
        print(f"[INFO] Discovered {len(tables)} table(s) under {root}")
        value_col = args.value_col or "chl"
        cfg["sources"] = [
            {"name": t.source, "path": t.path, "value_col": value_col} for t in tables
        ]
        if "resolution_deg" not in cfg["grid"] and args.resolution is None:
            tokens = {t.resolution for t in tables}
            if len(tokens) > 1:
                raise ValueError(
                    f"Tables with mixed resolutions {sorted(tokens)}; use --tile"
                )
            cfg["grid"]["resolution_deg"] = parse_resolution_deg(tokens.pop())
    elif args.value_col:
        for s in cfg.get("sources", []):
            s["value_col"] = args.value_col

    if args.resolution is not None:
        cfg["grid"]["resolution_deg"] = args.resolution
    if args.jobs is not None:
        cfg["analysis"]["n_jobs"] = args.jobs
    if args.outdir is not None:
        out = Path(args.outdir).expanduser()
        cfg["output"]["outdir"] = str(out if out.is_absolute() else Path.cwd() / out)
    if args.plots:
        cfg["output"]["plots"] = True
    return cfg, config_file


def _run(cfg: PipelineConfig, config_file: Optional[str], region_name) -> PipelineResult:
    result = run_pipeline(cfg, progress=print)
    for path in write_outputs(result, cfg, config_file=config_file, region_name=region_name):
        print(f"[DRIVER] Wrote {path}")
    return result


# ---------------------------------------------------------------------------
# Main entry
# ---------------------------------------------------------------------------
def main(argv: Optional[list[str]] = None) -> Optional[PipelineResult]:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.examples:
        title, body = extract_examples_from_docstring()
        line = "-" * len(title)
        print(f"\n{line}\n{title}\n{line}\n")
        print(f"{body}\n")
        return None

    if not (args.run or args.run_config or args.data):
        parser.error("one of --run, --run-config or --data is required.")

    project_root = os.path.abspath(args.project_root or os.getcwd())

    try:
        cfg_dict, config_file = _effective_config(args, project_root)
        if args.print_config:
            print(dump_effective_config(cfg_dict))
            return None
        cfg = PipelineConfig.from_dict(cfg_dict)
    except (ValueError, FileNotFoundError) as e:
        raise SystemExit(f"[ERROR] {e}")

    region_name = cfg_dict.get("region", {}).get("name")
    try:
        return _run(cfg, config_file, region_name)
    except (ChloroWassersteinError, ValueError, FileNotFoundError) as e:
        raise SystemExit(f"[ERROR] {e}")


if __name__ == "__main__":
    main()
