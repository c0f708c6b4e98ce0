from __future__ import annotations

import pandas as pd
import pytest

from chloro_wasserstein.core.model import BoundingBox, GridSpec

# ---------- Shared fixtures ----------


@pytest.fixture
def bbox() -> BoundingBox:
    """A 3x3-cell window at 1 degree resolution (integer cell edges)."""
    return BoundingBox(lon_min=10.0, lon_max=13.0, lat_min=-20.0, lat_max=-17.0)


@pytest.fixture
def grid() -> GridSpec:
    return GridSpec(resolution_deg=1.0)


def _monthly_rows(months=(1, 2, 3), shift=0.0) -> pd.DataFrame:
    """Cell-centred rows on the `bbox` grid whose mass drifts east each month."""
    rows = []
    for m in months:
        for lat in (-19.5, -18.5, -17.5):
            for k, lon in enumerate((10.5, 11.5, 12.5)):
                value = 1.0 + (k == (m - 1) % 3) * (4.0 + shift)
                rows.append((lon, lat, m, value))
    # A point outside the window that must be ignored
    rows.append((30.0, 0.0, 1, 100.0))
    return pd.DataFrame(rows, columns=["lon", "lat", "month", "value"])


@pytest.fixture
def monthly_rows() -> pd.DataFrame:
    return _monthly_rows()


@pytest.fixture
def make_rows():
    """Factory for monthly observation frames (months, shift)."""
    return _monthly_rows


@pytest.fixture
def write_csv(tmp_path):
    """Write observation rows as CSV with a custom value column name."""

    def _writer(name: str, df: pd.DataFrame, value_col: str = "chl", sep=","):
        p = tmp_path / name
        df.rename(columns={"value": value_col}).to_csv(p, index=False, sep=sep)
        return p

    return _writer

