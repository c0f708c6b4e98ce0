"""
Readers for tabulated geospatial observations (one CSV per resolution tile).

Each file must include at least the columns:
  - lon    longitude in decimal degrees (east positive)
  - lat    latitude in decimal degrees (south negative)
  - month  integer month, 1..12
  - <value column>  e.g. "chl" (chlorophyll concentration, mg m^-3)

Notes
-----
- The delimiter is auto-detected when the file is not comma-separated.
- Lines starting with '#' are treated as comments and ignored.
- The value column is renamed to ``value`` so downstream stages do not need
  to know the source-specific name.
- Missing or non-numeric values become NaN (zero mass downstream).
"""

from __future__ import annotations

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = ("lon", "lat", "month")

__all__ = ["REQUIRED_COLUMNS", "read_observations", "validate_observations"]


def validate_observations(df: pd.DataFrame, source: str = "<frame>") -> pd.DataFrame:
    """
    Coerce dtypes and check the value domain of an observation frame.

    Expects columns ``lon``, ``lat``, ``month`` and ``value``. Returns a new
    frame with float coordinates, integer months and float values.

    Raises
    ------
    ValueError
        On missing columns, missing coordinates, months outside 1..12 or
        negative finite values.
    """
    missing = [c for c in (*REQUIRED_COLUMNS, "value") if c not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required columns {missing} in '{source}'. "
            f"Found columns: {list(df.columns)}"
        )

    out = df.loc[:, ["lon", "lat", "month", "value"]].copy()
    for c in ("lon", "lat", "month", "value"):
        out[c] = pd.to_numeric(out[c], errors="coerce")

    if out[["lon", "lat", "month"]].isna().any().any():
        raise ValueError(f"Missing or non-numeric lon/lat/month values in '{source}'")

    months = out["month"].to_numpy()
    if np.any((months < 1) | (months > 12)) or np.any(months != np.round(months)):
        raise ValueError(f"month must be an integer in 1..12 in '{source}'")
    out["month"] = out["month"].astype(int)

    vals = out["value"].to_numpy(dtype=float)
    if np.any(np.isfinite(vals) & (vals < 0)):
        raise ValueError(f"Negative values found in '{source}'")
    out["value"] = vals
    return out.reset_index(drop=True)


def read_observations(path: str, value_col: str = "chl") -> pd.DataFrame:
    """
    Read a CSV of observations and return a validated frame with columns
    ``lon``, ``lat``, ``month``, ``value``.

    Parameters
    ----------
    path : str
        CSV file path.
    value_col : str
        Column holding the measured quantity; renamed to ``value``.
    """
    try:
        df = pd.read_csv(path, comment="#")
    except pd.errors.ParserError:
        # Auto-detect delimiter (Python engine supports 'sep=None').
        df = pd.read_csv(path, sep=None, engine="python", comment="#")

    if len(df.columns) == 1 and value_col not in df.columns:
        # Single column usually means a different delimiter.
        df = pd.read_csv(path, sep=None, engine="python", comment="#")

    # Normalize column names (strip spaces)
    df.columns = [str(c).strip() for c in df.columns]

    if value_col not in df.columns:
        raise ValueError(
            f"Missing value column '{value_col}' in '{path}'. "
            f"Found columns: {list(df.columns)}"
        )
    if value_col != "value":
        df = df.drop(columns=["value"], errors="ignore")
        df = df.rename(columns={value_col: "value"})
    return validate_observations(df, source=path)
