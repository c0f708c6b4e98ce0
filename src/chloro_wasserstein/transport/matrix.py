"""
Pairwise distance matrix over an ordered list of signatures.

Only unordered pairs ``(i, j)`` with ``i > j`` reach the oracle; each result is
written to ``(i, j)`` and mirrored to ``(j, i)``, and the diagonal is zero.
Symmetry therefore holds by construction and the oracle runs exactly
``n * (n - 1) / 2`` times.

Each oracle call is a pure function of two read-only signatures, so the
pairs form an embarrassingly parallel map. With ``n_jobs != 1`` the map runs
through ``joblib.Parallel``; results land in disjoint cells and the matrix is
only returned once every call has finished.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.spatial.distance import squareform

from ..core.errors import IncompleteMatrixError, OracleError
from ..signatures.builder import Signature
from .oracle import EmdOracle, TransportOracle

__all__ = [
    "DistanceMatrix",
    "lower_triangle_pairs",
    "pairwise_distance_matrix",
]


@dataclass
class DistanceMatrix:
    """Labelled square distance matrix.

    Off-diagonal cells start as NaN and are filled pair by pair.
    """

    values: np.ndarray
    labels: List[str]
    oracle_calls: int = 0
    p: Optional[float] = None

    @classmethod
    def empty(cls, labels: Sequence[str], p: Optional[float] = None) -> "DistanceMatrix":
        n = len(labels)
        values = np.full((n, n), np.nan)
        np.fill_diagonal(values, 0.0)
        return cls(values=values, labels=list(labels), p=p)

    @property
    def n(self) -> int:
        return len(self.labels)

    @property
    def is_complete(self) -> bool:
        return not bool(np.isnan(self.values).any())

    def set_pair(self, i: int, j: int, d: float) -> None:
        if i == j:
            raise ValueError("diagonal cells are fixed at zero")
        self.values[i, j] = d
        self.values[j, i] = d

    def require_complete(self) -> None:
        if not self.is_complete:
            missing = int(np.isnan(self.values).sum()) // 2
            raise IncompleteMatrixError(
                f"Distance matrix has {missing} unfilled pair(s); "
                "derived analyses need every entry"
            )

    def condensed(self) -> np.ndarray:
        """Condensed (upper-triangle) vector as used by scipy.cluster."""
        self.require_complete()
        return squareform(self.values, checks=False)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=self.labels, columns=self.labels)


def lower_triangle_pairs(n: int) -> Iterator[Tuple[int, int]]:
    """Yield ``(i, j)`` with ``i > j`` in row-major order."""
    for i in range(n):
        for j in range(i):
            yield i, j


def _cell_distance(
    oracle: TransportOracle,
    a: Signature,
    b: Signature,
    i: int,
    j: int,
) -> float:
    try:
        return float(oracle(a, b).distance)
    except OracleError as e:
        raise OracleError(f"cell ({i}, {j}) [{a.label} vs {b.label}]: {e}") from e


def pairwise_distance_matrix(
    signatures: Sequence[Signature],
    oracle: Optional[TransportOracle] = None,
    n_jobs: int = 1,
    labels: Optional[Sequence[str]] = None,
    backend: Optional[str] = None,
) -> DistanceMatrix:
    """
    Assemble the symmetric distance matrix of `signatures`.

    Parameters
    ----------
    signatures : sequence of Signature
        Ordered inputs; the order defines rows and columns.
    oracle : callable, optional
        ``oracle(a, b) -> TransportResult``. Defaults to ``EmdOracle(p=2)``.
    n_jobs : int
        1 runs sequentially; any other value is passed to ``joblib.Parallel``.
    labels : sequence of str, optional
        Row/column labels; defaults to the signature labels.
    backend : str, optional
        joblib backend for the parallel map ("loky", "threading", ...).

    Raises
    ------
    ValueError
        If `signatures` is empty or `labels` has the wrong length.
    OracleError
        If any oracle call fails; the message names the cell.
    """
    sigs = list(signatures)
    if not sigs:
        raise ValueError("At least one signature is required")
    if labels is None:
        labels = [s.label or str(k) for k, s in enumerate(sigs)]
    if len(labels) != len(sigs):
        raise ValueError(
            f"Got {len(labels)} labels for {len(sigs)} signatures"
        )
    oracle = oracle if oracle is not None else EmdOracle()

    dm = DistanceMatrix.empty(labels, p=getattr(oracle, "p", None))
    pairs = list(lower_triangle_pairs(len(sigs)))

    if n_jobs == 1:
        for i, j in pairs:
            dm.set_pair(i, j, _cell_distance(oracle, sigs[i], sigs[j], i, j))
            dm.oracle_calls += 1
        return dm

    results = Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(_cell_distance)(oracle, sigs[i], sigs[j], i, j) for i, j in pairs
    )
    for (i, j), d in zip(pairs, results):
        dm.set_pair(i, j, d)
    dm.oracle_calls = len(pairs)
    return dm
