from __future__ import annotations

"""
errors.py
=========
Exception types shared across the EMD pipeline.

Library modules raise these; only the CLI driver turns them into a
``SystemExit`` with an ``[ERROR]`` line.
"""


class ChloroWassersteinError(Exception):
    """Base class for all pipeline errors."""


class EmptySignatureError(ChloroWassersteinError, ValueError):
    """Raised when no observation falls inside the bounding box (or month)."""


class DegenerateSignatureError(ChloroWassersteinError, ValueError):
    """Raised when a grid has zero total mass and cannot be normalized."""


class GridCollisionError(ChloroWassersteinError, ValueError):
    """Raised when several observations of one signature fall in the same grid cell."""


class OracleError(ChloroWassersteinError, RuntimeError):
    """Raised when the optimal-transport solver fails or returns an invalid plan."""


class IncompleteMatrixError(ChloroWassersteinError, RuntimeError):
    """Raised when a derived analysis is requested on a partially filled matrix."""


__all__ = [
    "ChloroWassersteinError",
    "EmptySignatureError",
    "DegenerateSignatureError",
    "GridCollisionError",
    "OracleError",
    "IncompleteMatrixError",
]
