from __future__ import annotations

import os
import tomllib
from typing import Dict, Any, Iterable, Tuple

import tomli_w


def load_toml(path: str) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_dicts(out[k], v)
        else:
            out[k] = v
    return out


def apply_sets(cfg: Dict[str, Any], sets: Iterable[str]) -> Dict[str, Any]:
    for item in sets:
        if "=" not in item:
            raise ValueError(f"--set requires key=value, got: {item}")
        key, val = item.split("=", 1)
        path = key.strip().split(".")
        cursor = cfg
        for p in path[:-1]:
            if p not in cursor or not isinstance(cursor[p], dict):
                cursor[p] = {}
            cursor = cursor[p]
        cursor[path[-1]] = parse_scalar(val.strip())
    return cfg


def parse_scalar(s: str):
    """Parse bool, int, float, or a comma-separated list of those; else keep str."""
    sl = s.lower()
    if sl in ("true", "false"):
        return sl == "true"
    if "," in s:
        return [parse_scalar(x.strip()) for x in s.split(",") if x.strip()]
    try:
        if "." in s or "e" in sl:
            return float(s)
        return int(s)
    except ValueError:
        return s


def _resolve(project_root: str, ref: str) -> str:
    if os.path.isabs(ref):
        return ref
    return os.path.normpath(os.path.join(project_root, ref))


def load_run_config(
    project_root: str,
    run_name: str | None,
    run_path: str | None,
    set_overrides: Iterable[str] = (),
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Load config by composing region and run, then apply --set.
    Returns (effective_cfg, summary_paths).
    summary_paths contains keys: run_path, region_path.
    """
    summary = {"run_path": None, "region_path": None}

    if run_name and run_path:
        raise ValueError("Use either --run or --run-config, not both.")

    if run_name:
        run_path = os.path.join(project_root, "config", "runs", f"{run_name}.toml")

    if not run_path:
        raise ValueError("Missing --run or --run-config")

    run_path = _resolve(project_root, run_path)
    if not os.path.exists(run_path):
        raise FileNotFoundError(
            f"Run file not found: {run_path}. Expected in config/runs for --run."
        )
    run_cfg = load_toml(run_path)
    summary["run_path"] = run_path

    region_cfg: Dict[str, Any] = {}
    region_ref = run_cfg.pop("include_region", None)
    if region_ref:
        region_path = _resolve(project_root, region_ref)
        if not os.path.exists(region_path):
            raise FileNotFoundError(f"Region file not found: {region_path}")
        region_cfg = load_toml(region_path)
        summary["region_path"] = region_path

    # Merge order: region -> run
    cfg = merge_dicts(region_cfg, run_cfg)

    # Apply --set overrides last
    cfg = apply_sets(cfg, set_overrides)

    # Source paths are relative to the project root, like include_region
    for src in cfg.get("sources", []):
        if src.get("path"):
            src["path"] = _resolve(project_root, src["path"])

    cfg.setdefault("grid", {})
    cfg.setdefault("analysis", {})
    cfg.setdefault("output", {})

    return cfg, summary


def dump_effective_config(cfg: Dict[str, Any]) -> str:
    return tomli_w.dumps(cfg)
