from __future__ import annotations

"""
discovery.py
============

Utilities to discover input tables from a data directory. Each data source
ships one CSV per spatial resolution tile, named ``<source>_<resolution>.csv``.
The resolution token is everything after the **last** underscore, so source
names may themselves contain underscores.

Examples:
  "modis_1deg.csv"          → source = "modis",       resolution = "1deg"
  "cmip6_esm_0p25deg.csv"   → source = "cmip6_esm",   resolution = "0p25deg"
  "notes.csv"               → ignored (no resolution token)

Supports **recursive** discovery through subdirectories.
"""

import os
import re
from typing import List, Optional, Tuple

from .model import TableInput

_NAME_RE = re.compile(r'^(?P<source>.+)_(?P<res>\d+(?:p\d+)?deg)$')


def parse_resolution_deg(token: str) -> float:
    """
    Convert a resolution token like '1deg', '0p25deg' into degrees.

    Raises
    ------
    ValueError
        If the format is not as expected.
    """
    m = re.fullmatch(r'(\d+)(?:p(\d+))?deg', token)
    if not m:
        raise ValueError(f"Unexpected resolution token: {token}")
    whole, frac = m.group(1), m.group(2)
    return float(f"{whole}.{frac}") if frac else float(whole)


def _split_name(root: str) -> Optional[Tuple[str, str]]:
    """
    Split a basename (without extension) into (source, resolution).
    Return None if it does not follow the naming convention.
    """
    m = _NAME_RE.match(root)
    if not m:
        return None
    return m.group("source"), m.group("res")


def _scan_files(data_dir: str, recursive: bool) -> List[str]:
    out: List[str] = []
    if recursive:
        for dirpath, _dirs, files in os.walk(data_dir):
            for fname in files:
                if fname.lower().endswith(".csv"):
                    out.append(os.path.join(dirpath, fname))
    else:
        for fname in os.listdir(data_dir):
            if fname.lower().endswith(".csv"):
                out.append(os.path.join(data_dir, fname))
    return out


def discover_tables(data_dir: str,
                    resolution: Optional[str] = None,
                    recursive: bool = False) -> List[TableInput]:
    """
    Return the TableInput records found in `data_dir`, sorted by
    (source, resolution, path).

    Parameters
    ----------
    data_dir : str
        Directory containing ``<source>_<resolution>.csv`` files.
    resolution : str or None
        Keep only tables with this resolution token (e.g. "1deg").
    recursive : bool
        If True, search recursively below `data_dir`.
    """
    if not os.path.isdir(data_dir):
        raise FileNotFoundError(f"Data directory not found: {data_dir}")

    items: List[TableInput] = []
    for full in _scan_files(data_dir, recursive=recursive):
        root = os.path.splitext(os.path.basename(full))[0]
        parts = _split_name(root)
        if parts is None:
            continue
        source, res = parts
        if resolution is not None and res != resolution:
            continue
        items.append(TableInput(source=source, resolution=res, path=full))

    items.sort(key=lambda t: (t.source, t.resolution, t.path))
    return items
