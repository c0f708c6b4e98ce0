"""
Distance-matrix TSV report (with optional MDS coordinates).

This module writes the result of one EMD run as a text file with:
  1) A *commented* metadata block in English (lines starting with '#').
  2) A single *header* line with the column names.
  3) One data line per signature.

The header is:

  label\t<label_1>\t...\t<label_n>[\tmds_1\t...\tmds_k]

so the square block of the table is the distance matrix in row order, and the
optional trailing columns hold the MDS coordinates of each row.

Metadata block
--------------
The block records the context passed through the `Metadata` dataclass:
region (bounding box), grid (resolution, trimmed rows), analysis parameters
(ground-cost exponent, linkage, number of oracle calls) and run information
(config file, creation time).

Formatting
----------
- Distances and coordinates are serialized with six decimals.
- Missing values (NaN / None) are serialized as "NaN".
- Writes are atomic: the table goes to a temporary file which then replaces
  the target.

The report is an export for plotting tools; the pipeline never reads it back
to skip computation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, TextIO

import pandas as pd

from ..analysis.derived import MdsResult
from ..transport.matrix import DistanceMatrix


__all__ = [
    "Metadata",
    "SchemaMismatchError",
    "write_matrix_tsv",
    "read_matrix_tsv",
]


class SchemaMismatchError(ValueError):
    """Raised when a report file does not have the expected layout."""


@dataclass
class Metadata:
    """
    File-level metadata written as a commented block at the top of the file.

    Parameters
    ----------
    region_name : Optional[str]
        Human readable region name (e.g. "Benguela upwelling").
    lon_min, lon_max, lat_min, lat_max : Optional[float]
        Bounding box in degrees.
    resolution_deg : Optional[float]
        Grid resolution in degrees.
    trim_last_rows : Optional[int]
        Trailing latitude rows removed from each grid.
    sources : Optional[str]
        Comma-separated data source names.
    p : Optional[float]
        Ground-cost exponent of the Wasserstein distance.
    linkage : Optional[str]
        Linkage rule used for the dendrogram.
    oracle_calls : Optional[int]
        Number of solver invocations.
    config_file : Optional[str]
        Run configuration used.
    created_at_iso : Optional[str]
        ISO-8601 UTC timestamp string for file creation. If None, current UTC is used.
    """

    region_name: Optional[str] = None
    lon_min: Optional[float] = None
    lon_max: Optional[float] = None
    lat_min: Optional[float] = None
    lat_max: Optional[float] = None
    resolution_deg: Optional[float] = None
    trim_last_rows: Optional[int] = None
    sources: Optional[str] = None
    p: Optional[float] = None
    linkage: Optional[str] = None
    oracle_calls: Optional[int] = None
    config_file: Optional[str] = None
    created_at_iso: Optional[str] = None

    def created_iso_or_now(self) -> str:
        """Return created_at_iso if provided, else now in UTC as ISO-8601."""
        if self.created_at_iso:
            return self.created_at_iso
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _write_metadata_block(f: TextIO, md: Metadata) -> None:
    """Write the commented metadata block."""
    metadata_title = "# === Metadata " + 70 * "=" + "\n"
    f.write(metadata_title)

    f.write("# [Region]\n")
    if md.region_name:
        f.write(f"#  Name: {md.region_name}\n")
    if md.lon_min is not None and md.lon_max is not None:
        f.write(f"#  Longitude (deg): {md.lon_min} .. {md.lon_max}\n")
    if md.lat_min is not None and md.lat_max is not None:
        f.write(f"#  Latitude (deg): {md.lat_min} .. {md.lat_max}\n")
    f.write("#\n")

    f.write("# [Grid]\n")
    if md.resolution_deg is not None:
        f.write(f"#  Resolution (deg): {md.resolution_deg}\n")
    if md.trim_last_rows is not None:
        f.write(f"#  Trimmed last rows: {md.trim_last_rows}\n")
    if md.sources:
        f.write(f"#  Sources: {md.sources}\n")
    f.write("#\n")

    f.write("# [Analysis]\n")
    if md.p is not None:
        f.write(f"#  Ground-cost exponent p: {md.p}\n")
    if md.linkage:
        f.write(f"#  Linkage: {md.linkage}\n")
    if md.oracle_calls is not None:
        f.write(f"#  Oracle calls: {md.oracle_calls}\n")
    f.write("#\n")

    f.write("# [Run]\n")
    if md.config_file:
        f.write(f"#  Config file: {md.config_file}\n")
    f.write(f"#  Created at (UTC): {md.created_iso_or_now()}\n")
    f.write("# " + (len(metadata_title) - 2) * "=" + "\n")


def _expected_columns(labels: List[str], n_mds: int = 0) -> List[str]:
    """Return the expected header token list."""
    return ["label", *labels, *[f"mds_{k + 1}" for k in range(n_mds)]]


def _fmt_6dec_or_nan(x: Optional[float]) -> str:
    """Format a float with 6 decimals, or 'NaN' if None/NaN."""
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return "NaN"
    return f"{float(x):.6f}"


def _row_to_line(label: str, dists, coords=None) -> str:
    fields = [label] + [_fmt_6dec_or_nan(float(d)) for d in dists]
    if coords is not None:
        fields += [_fmt_6dec_or_nan(float(c)) for c in coords]
    return "\t".join(fields) + "\n"


def write_matrix_tsv(
    path: str | Path,
    metadata: Metadata,
    dm: DistanceMatrix,
    mds: Optional[MdsResult] = None,
) -> Path:
    """
    Write a distance matrix (and optional MDS coordinates) as a TSV report.

    Parameters
    ----------
    path : str or Path
        Output path; parent directories are created.
    metadata : Metadata
        File-level metadata.
    dm : DistanceMatrix
        Matrix to serialize, in its own row order.
    mds : MdsResult, optional
        Coordinates appended as ``mds_1..mds_k`` columns; labels must match.

    Raises
    ------
    SchemaMismatchError
        If `mds` does not describe the same labels as `dm`.
    """
    if mds is not None and list(mds.labels) != list(dm.labels):
        raise SchemaMismatchError(
            f"MDS labels {mds.labels} do not match matrix labels {dm.labels}"
        )

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    n_mds = mds.coords.shape[1] if mds is not None else 0

    tmp = p.with_suffix(p.suffix + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8", newline="\n") as f:
            _write_metadata_block(f, metadata)
            f.write("\t".join(_expected_columns(dm.labels, n_mds)) + "\n")
            for k, label in enumerate(dm.labels):
                coords = mds.coords[k] if mds is not None else None
                f.write(_row_to_line(label, dm.values[k], coords))
        tmp.replace(p)
    finally:
        if tmp.exists() and p.exists():
            try:
                tmp.unlink()
            except OSError:
                pass
    return p


def read_matrix_tsv(path: str | Path) -> pd.DataFrame:
    """
    Read a report back into a DataFrame indexed by label.

    Raises
    ------
    SchemaMismatchError
        If the header does not start with ``label`` or the square block is not
        labelled consistently.
    """
    df = pd.read_csv(
        path, sep="\t", comment="#", na_values=["NaN"], dtype={"label": str}
    )
    if not len(df.columns) or df.columns[0] != "label":
        raise SchemaMismatchError(f"No 'label' header column in {path}")
    df = df.set_index("label")
    labels = list(df.index)
    matrix_cols = [c for c in df.columns if not str(c).startswith("mds_")]
    if matrix_cols != labels:
        raise SchemaMismatchError(
            f"Matrix columns {matrix_cols} do not match row labels {labels}"
        )
    return df
