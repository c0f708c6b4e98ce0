"""
Grid signatures: dense 2-D weight grids normalized to unit mass.

A signature is the input unit of the optimal-transport oracle. It is built
once per (data source, month) pair from tabulated ``lon/lat/month/value`` rows
and never mutated afterwards (the weight array is flagged read-only).

Layout
------
- ``weights[i, j]`` is the mass of the cell centred at ``(lon[j], lat[i])``.
- The bounding box edges are cell edges: with resolution ``r`` the cell
  centres are ``lon_min + (k + 0.5) * r`` (1 degree products centred on
  x.5 fit a bounding box with integer edges).
- An observation belongs to the cell whose half-open interval
  ``[edge, edge + r)`` contains it; points on the upper box edge go to the
  last cell.
- Rows follow ascending latitude, columns ascending longitude. The trailing
  rows dropped by ``GridSpec.trim_last_rows`` are therefore the northernmost.
- Cells with no observation, or a NaN observation, carry zero mass.

Failure modes
-------------
- No rows inside the bounding box (or month): ``EmptySignatureError``.
- Two rows in the same cell: ``GridCollisionError``. This usually means the
  resolution does not match the data or the box edges cut through cells.
- Rows present but zero total mass: ``DegenerateSignatureError``. The check
  happens *before* dividing, so NaNs never leak into a signature.

Quickstart
----------
>>> import numpy as np
>>> sig = signature_from_array(np.array([[1.0, 1.0], [1.0, 1.0]]), label="u")
>>> float(sig.weights.sum())
1.0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..core.errors import (
    DegenerateSignatureError,
    EmptySignatureError,
    GridCollisionError,
)
from ..core.model import BoundingBox, GridSpec

__all__ = [
    "Signature",
    "grid_axes",
    "normalize_grid",
    "signature_from_array",
    "build_signature",
    "build_monthly_signatures",
    "signature_label",
]


@dataclass(frozen=True, eq=False)
class Signature:
    """
    Unit-mass weight grid with its coordinate axes.

    Parameters
    ----------
    weights : np.ndarray
        2-D array (n_lat, n_lon) of non-negative masses summing to 1.
    lon : np.ndarray
        Cell-centre longitudes, length n_lon.
    lat : np.ndarray
        Cell-centre latitudes, length n_lat.
    label : str
        Identifier used in matrix rows/columns (e.g. "modis-03").
    """

    weights: np.ndarray
    lon: np.ndarray
    lat: np.ndarray
    label: str = ""

    def __post_init__(self) -> None:
        w = np.array(self.weights, dtype=float)
        if w.ndim != 2:
            raise ValueError(f"weights must be 2-D, got shape {w.shape}")
        lon = np.array(self.lon, dtype=float)
        lat = np.array(self.lat, dtype=float)
        if lon.shape != (w.shape[1],) or lat.shape != (w.shape[0],):
            raise ValueError(
                f"axes do not match weights {w.shape}: lon {lon.shape}, lat {lat.shape}"
            )
        for arr in (w, lon, lat):
            arr.setflags(write=False)
        object.__setattr__(self, "weights", w)
        object.__setattr__(self, "lon", lon)
        object.__setattr__(self, "lat", lat)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.weights.shape

    @property
    def total_mass(self) -> float:
        return float(self.weights.sum())

    def support(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(points, masses)`` for the cells with positive mass.

        ``points`` has shape (k, 2) with columns (lon, lat).
        """
        ii, jj = np.nonzero(self.weights > 0)
        points = np.column_stack([self.lon[jj], self.lat[ii]])
        return points, self.weights[ii, jj].copy()


_EDGE_EPS = 1e-9


def _n_cells(span: float, res: float) -> int:
    return max(1, int(np.ceil(span / res - _EDGE_EPS)))


def grid_axes(bbox: BoundingBox, grid: GridSpec) -> Tuple[np.ndarray, np.ndarray]:
    """Cell-centre axes (lon, lat) of the cells tiling `bbox`."""
    res = grid.resolution_deg
    n_lon = _n_cells(bbox.lon_max - bbox.lon_min, res)
    n_lat = _n_cells(bbox.lat_max - bbox.lat_min, res)
    lon = bbox.lon_min + res * (np.arange(n_lon) + 0.5)
    lat = bbox.lat_min + res * (np.arange(n_lat) + 0.5)
    return lon, lat


def _cell_index(coord: np.ndarray, origin: float, res: float, n: int) -> np.ndarray:
    idx = np.floor((coord - origin) / res + _EDGE_EPS).astype(int)
    return np.clip(idx, 0, n - 1)


def signature_label(source: str, month: int) -> str:
    """Label of a monthly signature, e.g. ``"modis-03"``."""
    return f"{source}-{int(month):02d}"


def normalize_grid(values: np.ndarray, label: str = "") -> np.ndarray:
    """
    Return `values` divided by its finite total, with NaN cells set to zero.

    Raises
    ------
    ValueError
        If a finite value is negative.
    DegenerateSignatureError
        If the finite total mass is zero.
    """
    v = np.asarray(values, dtype=float)
    finite = np.isfinite(v)
    if np.any(v[finite] < 0):
        raise ValueError(f"Signature {label!r} has negative weights")
    w = np.where(finite, v, 0.0)
    mass = float(w.sum())
    if not mass > 0:
        raise DegenerateSignatureError(
            f"Signature {label!r} has zero total mass and cannot be normalized"
        )
    return w / mass


def signature_from_array(
    weights,
    label: str = "",
    lon: Optional[Iterable[float]] = None,
    lat: Optional[Iterable[float]] = None,
) -> Signature:
    """
    Normalize an already-gridded array into a Signature.

    Without explicit axes the grid uses index coordinates ``0..n-1`` (a unit
    grid), so two cells at opposite corners of a 2×2 grid are ``sqrt(2)`` apart.
    """
    w = np.atleast_2d(np.asarray(weights, dtype=float))
    n_lat, n_lon = w.shape
    lon_ax = np.arange(n_lon, dtype=float) if lon is None else np.asarray(list(lon))
    lat_ax = np.arange(n_lat, dtype=float) if lat is None else np.asarray(list(lat))
    return Signature(normalize_grid(w, label), lon_ax, lat_ax, label)


def _restrict(rows: pd.DataFrame, bbox: BoundingBox, month: Optional[int]) -> pd.DataFrame:
    lon = rows["lon"].to_numpy(dtype=float)
    lat = rows["lat"].to_numpy(dtype=float)
    mask = bbox.contains(lon, lat)
    if month is not None:
        mask &= rows["month"].to_numpy() == int(month)
    return rows.loc[mask]


def build_signature(
    rows: pd.DataFrame,
    bbox: BoundingBox,
    grid: GridSpec,
    month: Optional[int] = None,
    label: str = "",
) -> Signature:
    """
    Build a unit-mass signature from observation rows.

    Parameters
    ----------
    rows : pandas.DataFrame
        Columns ``lon``, ``lat``, ``value`` (and ``month`` when `month` is set),
        as returned by :func:`chloro_wasserstein.io.tables.read_observations`.
    bbox : BoundingBox
        Inclusive window; rows outside are ignored.
    grid : GridSpec
        Resolution and number of trailing latitude rows to drop.
    month : int or None
        If given, keep only rows of this month.
    label : str
        Signature label.
    """
    sub = _restrict(rows, bbox, month)
    if sub.empty:
        where = f" for month {month}" if month is not None else ""
        raise EmptySignatureError(
            f"No observations inside the bounding box{where} (signature {label!r})"
        )

    lon_ax, lat_ax = grid_axes(bbox, grid)
    res = grid.resolution_deg
    jj = _cell_index(sub["lon"].to_numpy(dtype=float), bbox.lon_min, res, lon_ax.size)
    ii = _cell_index(sub["lat"].to_numpy(dtype=float), bbox.lat_min, res, lat_ax.size)

    flat = ii * lon_ax.size + jj
    cells, counts = np.unique(flat, return_counts=True)
    if np.any(counts > 1):
        i0, j0 = divmod(int(cells[counts > 1][0]), lon_ax.size)
        raise GridCollisionError(
            f"{int(np.sum(counts > 1))} grid cell(s) of signature {label!r} hold "
            f"more than one observation (first: lon {lon_ax[j0]:g}, "
            f"lat {lat_ax[i0]:g}); check resolution_deg and that the bounding "
            "box edges fall on cell edges"
        )

    values = np.full((lat_ax.size, lon_ax.size), np.nan)
    values[ii, jj] = sub["value"].to_numpy(dtype=float)

    if grid.trim_last_rows:
        if grid.trim_last_rows >= values.shape[0]:
            raise EmptySignatureError(
                f"trim_last_rows={grid.trim_last_rows} removes every row "
                f"of signature {label!r}"
            )
        values = values[: -grid.trim_last_rows]
        lat_ax = lat_ax[: -grid.trim_last_rows]

    return Signature(normalize_grid(values, label), lon_ax, lat_ax, label)


def build_monthly_signatures(
    rows: pd.DataFrame,
    bbox: BoundingBox,
    grid: GridSpec,
    months: Iterable[int],
    source: str,
) -> List[Signature]:
    """One signature per month, labelled ``"<source>-<MM>"``, in `months` order."""
    return [
        build_signature(rows, bbox, grid, month=m, label=signature_label(source, m))
        for m in months
    ]
