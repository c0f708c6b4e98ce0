"""
Derived analyses of a completed distance matrix.

- Hierarchical agglomerative clustering (scipy.cluster.hierarchy).
- Classical (metric) multidimensional scaling.

Both are read-only consumers and call ``DistanceMatrix.require_complete()``
first: a partially filled matrix is never clustered or projected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.cluster.hierarchy import dendrogram, fcluster, linkage

from ..core.model import LINKAGE_METHODS
from ..transport.matrix import DistanceMatrix

__all__ = [
    "ClusteringResult",
    "MdsResult",
    "hierarchical_clustering",
    "classical_mds",
]


@dataclass
class ClusteringResult:
    """Output from hierarchical clustering"""

    method: str
    linkage_matrix: np.ndarray          # scipy (n-1, 4) merge table
    dendrogram_order: List[int]         # leaf order, left to right
    labels: List[str]                   # signature labels, matrix order
    clusters: Optional[np.ndarray] = None  # flat cut, 1-based (if requested)

    @property
    def ordered_labels(self) -> List[str]:
        return [self.labels[k] for k in self.dendrogram_order]


@dataclass
class MdsResult:
    """Output from classical MDS"""

    coords: np.ndarray          # (n, k)
    eigenvalues: np.ndarray     # all eigenvalues, descending
    labels: List[str]

    @property
    def explained(self) -> np.ndarray:
        """Share of the positive eigenvalue sum captured by each kept axis."""
        ev = np.clip(self.eigenvalues, 0.0, None)
        out = np.zeros(self.coords.shape[1])
        total = float(ev.sum())
        if total == 0.0:
            return out
        m = min(out.size, ev.size)
        out[:m] = ev[:m] / total
        return out


def hierarchical_clustering(
    dm: DistanceMatrix,
    method: str = "average",
    n_clusters: Optional[int] = None,
) -> ClusteringResult:
    """
    Agglomerative clustering of the signatures in `dm`.

    Args:
        dm: Completed distance matrix
        method: Linkage rule ('average', 'complete', 'single', 'weighted')
        n_clusters: If given, also cut the tree into at most this many clusters

    Returns:
        ClusteringResult
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"method must be one of {LINKAGE_METHODS}, got {method!r}")
    dm.require_complete()
    if dm.n < 2:
        raise ValueError("Hierarchical clustering needs at least two signatures")

    Z = linkage(dm.condensed(), method=method)
    order = list(dendrogram(Z, no_plot=True)["leaves"])

    clusters = None
    if n_clusters is not None:
        clusters = fcluster(Z, min(int(n_clusters), dm.n), criterion="maxclust")

    return ClusteringResult(
        method=method,
        linkage_matrix=Z,
        dendrogram_order=order,
        labels=list(dm.labels),
        clusters=clusters,
    )


def classical_mds(dm: DistanceMatrix, n_components: int = 2) -> MdsResult:
    """
    Torgerson classical scaling.

    Double-centre the squared distances, ``B = -1/2 J D^2 J``, take the
    eigenpairs in decreasing order and scale the top eigenvectors by
    ``sqrt(max(lambda, 0))``. Each axis is signed so that its largest
    absolute coordinate is positive.
    """
    dm.require_complete()
    n = dm.n
    if n_components < 1:
        raise ValueError("n_components must be >= 1")

    D2 = dm.values ** 2
    J = np.eye(n) - np.full((n, n), 1.0 / n)
    B = -0.5 * J @ D2 @ J
    B = (B + B.T) / 2.0

    evals, evecs = np.linalg.eigh(B)
    idx = np.argsort(evals)[::-1]
    evals = evals[idx]
    evecs = evecs[:, idx]

    k = min(n_components, n)
    V = evecs[:, :k]
    for c in range(k):
        if V[np.argmax(np.abs(V[:, c])), c] < 0:
            V[:, c] = -V[:, c]
    coords = V * np.sqrt(np.clip(evals[:k], 0.0, None))

    if k < n_components:
        coords = np.hstack([coords, np.zeros((n, n_components - k))])

    return MdsResult(coords=coords, eigenvalues=evals, labels=list(dm.labels))
