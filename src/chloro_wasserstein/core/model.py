from __future__ import annotations

"""
model.py
========
Configuration and record types shared across the EMD pipeline.

Every stage receives one of these objects explicitly; there is no module-level
bounding box or grid resolution. All dataclasses are frozen.

All identifiers and comments are in English, and lines are <= 88 chars.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


LINKAGE_METHODS = ("average", "complete", "single", "weighted")


# Geographic window that restricts observations.
@dataclass(frozen=True)
class BoundingBox:
    # Western edge in decimal degrees (east positive).
    lon_min: float
    # Eastern edge in decimal degrees.
    lon_max: float
    # Southern edge in decimal degrees (south negative).
    lat_min: float
    # Northern edge in decimal degrees.
    lat_max: float

    def __post_init__(self) -> None:
        if self.lon_min > self.lon_max:
            raise ValueError(
                f"lon_min ({self.lon_min}) must not exceed lon_max ({self.lon_max})"
            )
        if self.lat_min > self.lat_max:
            raise ValueError(
                f"lat_min ({self.lat_min}) must not exceed lat_max ({self.lat_max})"
            )

    def contains(self, lon, lat):
        """Inclusive membership test; works on scalars and numpy arrays."""
        return (
            (lon >= self.lon_min)
            & (lon <= self.lon_max)
            & (lat >= self.lat_min)
            & (lat <= self.lat_max)
        )


# Regular lon/lat grid whose cells tile the bounding box.
@dataclass(frozen=True)
class GridSpec:
    # Cell size in degrees (same along lon and lat).
    resolution_deg: float = 1.0
    # Trailing latitude rows dropped before normalization (padding rows of
    # some resolution tiles).
    trim_last_rows: int = 0

    def __post_init__(self) -> None:
        if not self.resolution_deg > 0:
            raise ValueError(f"resolution_deg must be > 0, got {self.resolution_deg}")
        if self.trim_last_rows < 0:
            raise ValueError(f"trim_last_rows must be >= 0, got {self.trim_last_rows}")


# One tabular data source (one CSV file per resolution tile).
@dataclass(frozen=True)
class SourceSpec:
    # Short name used in signature labels (e.g., "modis").
    name: str
    # Path to the CSV file.
    path: str
    # Name of the value column in the CSV (e.g., "chl").
    value_col: str = "chl"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("source name must be a non-empty string")


@dataclass(frozen=True)
class AnalysisSpec:
    # Months to compare (1..12), in output order.
    months: Tuple[int, ...] = tuple(range(1, 13))
    # Ground-cost exponent (2 -> squared Euclidean).
    p: float = 2.0
    # Worker count for the pairwise map; 1 runs sequentially.
    n_jobs: int = 1
    # Agglomerative linkage rule.
    linkage: str = "average"
    # Optional flat cut of the dendrogram.
    n_clusters: Optional[int] = None
    # Number of MDS coordinates.
    mds_components: int = 2

    def __post_init__(self) -> None:
        bad = [m for m in self.months if not 1 <= int(m) <= 12]
        if bad:
            raise ValueError(f"months must be in 1..12, got {bad}")
        if not self.months:
            raise ValueError("at least one month is required")
        dup = sorted({m for m in self.months if list(self.months).count(m) > 1})
        if dup:
            raise ValueError(f"months must not repeat, got {dup} more than once")
        if not self.p >= 1:
            raise ValueError(f"p must be >= 1, got {self.p}")
        if self.linkage not in LINKAGE_METHODS:
            raise ValueError(
                f"linkage must be one of {LINKAGE_METHODS}, got {self.linkage!r}"
            )
        if self.mds_components < 1:
            raise ValueError("mds_components must be >= 1")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero (1 = sequential, -1 = all cores)")
        if self.n_clusters is not None and self.n_clusters < 1:
            raise ValueError(f"n_clusters must be >= 1, got {self.n_clusters}")


@dataclass(frozen=True)
class OutputSpec:
    # Directory for the TSV report and plots.
    outdir: str = "results"
    # Whether PNG plots are produced.
    plots: bool = False


@dataclass(frozen=True)
class PipelineConfig:
    bbox: BoundingBox
    grid: GridSpec = field(default_factory=GridSpec)
    sources: Tuple[SourceSpec, ...] = ()
    analysis: AnalysisSpec = field(default_factory=AnalysisSpec)
    output: OutputSpec = field(default_factory=OutputSpec)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "PipelineConfig":
        """Build a config from the merged TOML dictionary.

        Expected tables: ``[region]``, ``[grid]``, ``[[sources]]``,
        ``[analysis]`` and ``[output]``. Only ``[region]`` is mandatory.
        """
        region = cfg.get("region")
        if not isinstance(region, dict):
            raise ValueError("Missing [region] table with the bounding box")
        try:
            bbox = BoundingBox(
                lon_min=float(region["lon_min"]),
                lon_max=float(region["lon_max"]),
                lat_min=float(region["lat_min"]),
                lat_max=float(region["lat_max"]),
            )
        except KeyError as e:
            raise ValueError(f"[region] is missing key {e}") from e

        g = cfg.get("grid", {})
        grid = GridSpec(
            resolution_deg=float(g.get("resolution_deg", 1.0)),
            trim_last_rows=int(g.get("trim_last_rows", 0)),
        )

        sources: List[SourceSpec] = []
        for s in cfg.get("sources", []):
            sources.append(
                SourceSpec(
                    name=str(s.get("name", "")),
                    path=str(s.get("path", "")),
                    value_col=str(s.get("value_col", "chl")),
                )
            )

        a = cfg.get("analysis", {})
        months = a.get("months", range(1, 13))
        # --set analysis.months=7 yields a scalar
        if isinstance(months, (int, float)):
            months = [months]
        n_clusters = a.get("n_clusters")
        analysis = AnalysisSpec(
            months=tuple(int(m) for m in months),
            p=float(a.get("p", 2.0)),
            n_jobs=int(a.get("n_jobs", 1)),
            linkage=str(a.get("linkage", "average")),
            n_clusters=int(n_clusters) if n_clusters is not None else None,
            mds_components=int(a.get("mds_components", 2)),
        )

        o = cfg.get("output", {})
        output = OutputSpec(
            outdir=str(o.get("outdir", "results")),
            plots=bool(o.get("plots", False)),
        )
        return cls(
            bbox=bbox,
            grid=grid,
            sources=tuple(sources),
            analysis=analysis,
            output=output,
        )


# A CSV table discovered under the data directory.
@dataclass(frozen=True)
class TableInput:
    # Data source name (file stem before the last underscore).
    source: str
    # Resolution token (file stem after the last underscore, e.g. "1deg").
    resolution: str
    # Full path to the CSV file.
    path: str


__all__ = [
    "LINKAGE_METHODS",
    "BoundingBox",
    "GridSpec",
    "SourceSpec",
    "AnalysisSpec",
    "OutputSpec",
    "PipelineConfig",
    "TableInput",
]
