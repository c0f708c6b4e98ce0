"""
PNG figures for signatures, transport plans, dendrograms and MDS layouts.

All functions draw on a fresh figure, save it with ``dpi=150`` and close it,
returning the output path. The Agg backend is selected so the module works
on headless machines.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
from scipy.cluster.hierarchy import dendrogram  # noqa: E402

from ..signatures.builder import Signature  # noqa: E402
from ..transport.oracle import TransportResult  # noqa: E402
from .derived import ClusteringResult, MdsResult  # noqa: E402

__all__ = [
    "plot_signature",
    "plot_transport_flow",
    "plot_dendrogram",
    "plot_mds",
]

_DPI = 150


def _save(fig, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out, dpi=_DPI, bbox_inches="tight")
    plt.close(fig)
    return out


def _edges(centres: np.ndarray) -> np.ndarray:
    """Cell edges from evenly or unevenly spaced centres."""
    c = np.asarray(centres, dtype=float)
    if c.size == 1:
        return np.array([c[0] - 0.5, c[0] + 0.5])
    mid = (c[:-1] + c[1:]) / 2.0
    return np.concatenate(([c[0] - (mid[0] - c[0])], mid, [c[-1] + (c[-1] - mid[-1])]))


def plot_signature(sig: Signature, path: str | Path, title: Optional[str] = None) -> Path:
    """Map of the signature weights over longitude/latitude."""
    fig, ax = plt.subplots(figsize=(6, 4.5))
    w = np.where(sig.weights > 0, sig.weights, np.nan)
    mesh = ax.pcolormesh(_edges(sig.lon), _edges(sig.lat), w, cmap="viridis")
    fig.colorbar(mesh, ax=ax, label="mass fraction")
    ax.set_xlabel("longitude (deg)")
    ax.set_ylabel("latitude (deg)")
    ax.set_title(title or sig.label)
    return _save(fig, path)


def plot_transport_flow(
    result: TransportResult,
    path: str | Path,
    top: int = 200,
    title: Optional[str] = None,
) -> Path:
    """
    Vector-flow plot of a transport plan.

    One arrow per flow from its source cell to its target cell; only the
    `top` heaviest flows are drawn, with width proportional to the flow.
    Zero-length flows (mass that stays in place) are skipped.
    """
    plan = result.plan
    si, ti = np.nonzero(plan > 0)
    flows = plan[si, ti]
    moved = np.any(result.source_points[si] != result.target_points[ti], axis=1)
    si, ti, flows = si[moved], ti[moved], flows[moved]
    order = np.argsort(flows)[::-1][:top]
    si, ti, flows = si[order], ti[order], flows[order]

    fig, ax = plt.subplots(figsize=(6, 4.5))
    ax.scatter(*result.source_points.T, s=6, c="tab:blue", label="source")
    ax.scatter(*result.target_points.T, s=6, c="tab:red", label="target")
    if flows.size:
        src = result.source_points[si]
        dst = result.target_points[ti]
        width = 0.4 + 1.6 * flows / flows.max()
        for (x0, y0), (x1, y1), lw in zip(src, dst, width):
            ax.annotate(
                "",
                xy=(x1, y1),
                xytext=(x0, y0),
                arrowprops=dict(arrowstyle="->", lw=lw, color="0.3"),
            )
    ax.set_xlabel("longitude (deg)")
    ax.set_ylabel("latitude (deg)")
    ax.legend(loc="best", fontsize=8)
    ax.set_title(title or f"transport plan (W = {result.distance:.4f})")
    return _save(fig, path)


def plot_dendrogram(
    clustering: ClusteringResult,
    path: str | Path,
    labels: Optional[Sequence[str]] = None,
) -> Path:
    fig, ax = plt.subplots(figsize=(8, 4))
    dendrogram(
        clustering.linkage_matrix,
        labels=list(labels) if labels is not None else clustering.labels,
        leaf_rotation=90,
        ax=ax,
    )
    ax.set_ylabel("Wasserstein distance")
    ax.set_title(f"{clustering.method} linkage")
    return _save(fig, path)


def plot_mds(mds: MdsResult, path: str | Path, title: Optional[str] = None) -> Path:
    fig, ax = plt.subplots(figsize=(6, 5))
    x = mds.coords[:, 0]
    y = mds.coords[:, 1] if mds.coords.shape[1] > 1 else np.zeros_like(x)
    ax.scatter(x, y, s=20)
    for xi, yi, lab in zip(x, y, mds.labels):
        ax.annotate(lab, (xi, yi), fontsize=7, xytext=(3, 3), textcoords="offset points")
    ax.axhline(0.0, color="0.8", lw=0.5)
    ax.axvline(0.0, color="0.8", lw=0.5)
    ax.set_xlabel("MDS 1")
    ax.set_ylabel("MDS 2")
    ax.set_title(title or "classical MDS")
    return _save(fig, path)
