"""
Optimal-transport oracle between two grid signatures.

The solver itself is not implemented here: the exact network-simplex solver
of the POT library (``ot.emd``) is treated as a black box. This module only
prepares its inputs (support points, masses, ground-cost matrix), checks its
outputs and turns them into a normalized Wasserstein-p distance:

    distance = (sum(flow * ground_distance**p) / sum(flow)) ** (1/p)

With unit-mass signatures the total flow is 1, so no further averaging is
needed downstream. For ``p = 2`` the ground cost is the squared Euclidean
distance between cell centres.

Any solver warning (iteration limit, infeasible or unbounded problem), a
non-finite cost or a plan whose marginals disagree with the inputs raises
``OracleError``; the caller never receives a sentinel value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

import numpy as np
import ot

from ..core.errors import OracleError
from ..signatures.builder import Signature, signature_from_array

__all__ = [
    "TransportResult",
    "TransportOracle",
    "EmdOracle",
    "compute_wasserstein",
]


@dataclass(frozen=True)
class TransportResult:
    """
    Outcome of one oracle call.

    Parameters
    ----------
    distance : float
        Normalized Wasserstein-p distance.
    cost : float
        Total transport cost, sum of flow times ground cost.
    total_flow : float
        Sum of the plan entries (1 for unit-mass signatures).
    plan : np.ndarray
        Flow matrix (k_source, k_target) between support points.
    source_points, target_points : np.ndarray
        Support coordinates (lon, lat) of both signatures, shape (k, 2).
    """

    distance: float
    cost: float
    total_flow: float
    plan: np.ndarray
    source_points: np.ndarray
    target_points: np.ndarray


class TransportOracle(Protocol):
    """Callable that returns the transport result between two signatures."""

    def __call__(self, a: Signature, b: Signature) -> TransportResult: ...


@dataclass(frozen=True)
class EmdOracle:
    """Exact earth mover's distance via ``ot.emd``.

    Instances are picklable, so they can be shipped to joblib workers.
    """

    # Ground-cost exponent; 2 -> squared Euclidean.
    p: float = 2.0
    # Network-simplex iteration limit.
    num_itermax: int = 100000
    # Absolute tolerance for the marginal check of the returned plan.
    atol: float = 1e-7

    def ground_cost(self, xa: np.ndarray, xb: np.ndarray) -> np.ndarray:
        if self.p == 2:
            return ot.dist(xa, xb, metric="sqeuclidean")
        return ot.dist(xa, xb, metric="euclidean") ** self.p

    def __call__(self, a: Signature, b: Signature) -> TransportResult:
        xa, wa = a.support()
        xb, wb = b.support()
        if wa.size == 0 or wb.size == 0:
            raise OracleError(
                f"Empty support in transport between {a.label!r} and {b.label!r}"
            )
        # Re-close the marginals so rounding never trips POT's mass check.
        wa = wa / wa.sum()
        wb = wb / wb.sum()
        M = self.ground_cost(xa, xb)

        try:
            plan, log = ot.emd(wa, wb, M, numItermax=self.num_itermax, log=True)
        except (AssertionError, ValueError) as e:
            raise OracleError(
                f"Transport solver rejected {a.label!r} -> {b.label!r}: {e}"
            ) from e

        if log.get("warning"):
            raise OracleError(
                f"Transport solver did not converge for {a.label!r} -> {b.label!r}: "
                f"{log['warning']}"
            )

        plan = np.asarray(plan, dtype=float)
        total_flow = float(plan.sum())
        cost = float(np.sum(plan * M))
        if not np.isfinite(cost) or not total_flow > 0:
            raise OracleError(
                f"Invalid transport plan for {a.label!r} -> {b.label!r} "
                f"(cost={cost}, flow={total_flow})"
            )
        if not (
            np.allclose(plan.sum(axis=1), wa, atol=self.atol)
            and np.allclose(plan.sum(axis=0), wb, atol=self.atol)
        ):
            raise OracleError(
                f"Transport plan marginals do not match for {a.label!r} -> {b.label!r}"
            )

        distance = (max(cost, 0.0) / total_flow) ** (1.0 / self.p)
        return TransportResult(
            distance=float(distance),
            cost=cost,
            total_flow=total_flow,
            plan=plan,
            source_points=xa,
            target_points=xb,
        )


def compute_wasserstein(
    p1: Union[Signature, np.ndarray],
    p2: Union[Signature, np.ndarray],
    p: float = 2.0,
) -> float:
    """
    Wasserstein-p distance between two grids.

    Bare arrays are normalized first and placed on a unit grid (index
    coordinates), so both inputs must have the same meaning per cell.

    >>> import numpy as np
    >>> round(compute_wasserstein(np.array([[1, 0], [0, 0]]),
    ...                           np.array([[0, 0], [0, 1]])), 6)
    1.414214
    """
    a = p1 if isinstance(p1, Signature) else signature_from_array(p1, label="p1")
    b = p2 if isinstance(p2, Signature) else signature_from_array(p2, label="p2")
    return EmdOracle(p=p)(a, b).distance
