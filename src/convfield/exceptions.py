"""
Exception types raised by convfield.

The hierarchy separates data problems from solver problems so that callers
can tell a malformed input apart from a failed refinement:

- :class:`ShapeError`: array shapes or dimensions do not fit together.
- :class:`NonFiniteDataError`: lattice data contains NaN or infinite values.
- :class:`ConvergenceError`: an iterative solver gave up.

``ShapeError`` and ``NonFiniteDataError`` are also ``ValueError`` subclasses,
and ``ConvergenceError`` is a ``RuntimeError``, so generic handlers keep working.

License: BSD-3-Clause
"""

import numpy as np


class ConvfieldError(Exception):
    """Base class for all convfield errors."""


class ShapeError(ConvfieldError, ValueError):
    """Input arrays have incompatible shapes or an unsupported dimension."""


class NonFiniteDataError(ConvfieldError, ValueError):
    """Lattice data contains non-finite values."""


class ConvergenceError(ConvfieldError, RuntimeError):
    """
    An iterative solver failed to converge.

    Attributes
    ----------
    point : ndarray or None
        Last iterate reached by the solver.
    diverged : bool
        True if the iterate became non-finite.
    """

    def __init__(self, message: str, point: np.ndarray | None = None, diverged: bool = False):
        super().__init__(message)
        self.point = point
        self.diverged = diverged


def check_finite(data: np.ndarray) -> None:
    """Raise :class:`NonFiniteDataError` if ``data`` has NaN or infinite entries."""
    if not np.all(np.isfinite(data)):
        n_bad = int(np.size(data) - np.count_nonzero(np.isfinite(data)))
        raise NonFiniteDataError(
            f"Cannot process missing values: lattice data has {n_bad} non-finite entries"
        )
