"""
Multivariate Newton-Raphson root finder.

Finds a zero of a gradient function given its Jacobian (the Hessian of the
underlying field), which locates the critical points of a smooth field.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from ..exceptions import ConvergenceError


def newton_raphson(
    fprime: Callable,
    x0: np.ndarray | float,
    fprime2: Callable,
    tol: float = 1e-6,
    max_iter: int = 100,
) -> np.ndarray:
    """
    Solve ``fprime(x) = 0`` by Newton-Raphson iteration.

    Each step updates ``x <- x - H(x)^{-1} g(x)`` with ``g = fprime(x)`` and
    ``H = fprime2(x)``. The iteration stops when ``|g| <= tol`` or when the
    step length falls below ``tol``.

    Parameters
    ----------
    fprime : callable
        Gradient function of a point with shape ``(D,)``.
    x0 : array_like or float
        Starting point.
    fprime2 : callable
        Jacobian of ``fprime`` with shape ``(D, D)``.
    tol : float, optional
        Convergence tolerance. Default is 1e-6.
    max_iter : int, optional
        Maximum number of iterations. Default is 100.

    Returns
    -------
    x : ndarray
        The converged point, shape ``(D,)``.

    Raises
    ------
    ConvergenceError
        If the iterate becomes non-finite (``diverged=True``), the Jacobian is
        singular, or ``max_iter`` iterations pass without convergence.
    """
    x = np.atleast_1d(np.asarray(x0, dtype=float)).copy()
    D = x.size

    for _ in range(max_iter):
        g = np.asarray(fprime(x), dtype=float).reshape(D)
        if not np.all(np.isfinite(g)):
            raise ConvergenceError("Newton-Raphson diverged: non-finite gradient", x, diverged=True)
        if np.linalg.norm(g) <= tol:
            return x

        H = np.asarray(fprime2(x), dtype=float).reshape(D, D)
        try:
            step = np.linalg.solve(H, g)
        except np.linalg.LinAlgError as exc:
            raise ConvergenceError(f"Newton-Raphson failed: singular Hessian at {x}", x) from exc

        x_new = x - step
        if not np.all(np.isfinite(x_new)):
            raise ConvergenceError(
                "Newton-Raphson diverged: non-finite iterate", x_new, diverged=True
            )
        # a step below the floating point resolution of x is a fixed point
        if np.linalg.norm(step) <= tol or np.array_equal(x_new, x):
            return x_new
        x = x_new

    raise ConvergenceError(
        f"Newton-Raphson did not converge within {max_iter} iterations (tol = {tol:.3e})", x
    )
