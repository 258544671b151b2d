"""
Peak refinement strategies.

Two ways of moving a lattice-based initial estimate onto a local maximum of a
continuous field:

1. **Root finding** (:func:`refine_newton`):
   Newton-Raphson on the gradient, driven by a small state machine. If the
   solver diverges, wanders more than ``max_distance`` from the estimate or
   lands on a critical point that is not a maximum, a dense grid around the
   estimate supplies a new seed. Repeated solver failures perturb the seed by
   ``perturbation`` per axis, up to ``max_attempts`` times.

2. **Constrained optimization** (:func:`refine_optimize`):
   Direct maximization with L-BFGS-B, boxed by the first and last coordinate
   of each axis. More robust next to the domain boundary and under masking.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

import numpy as np
from scipy.optimize import minimize

from ..exceptions import ConvergenceError
from ..numerics.lattice import xvals_to_voxels
from ..numerics.newton import newton_raphson


class RefineState(Enum):
    """States of the Newton-Raphson refinement of one peak."""

    SEEDED = "seeded"
    CONVERGED = "converged"
    DIVERGED = "diverged"
    GRID_FALLBACK = "grid_fallback"
    FAILED = "failed"


def is_local_maximum(hessian: np.ndarray, rtol: float = 1e-6) -> bool:
    """True if no eigenvalue of ``hessian`` exceeds ``rtol`` times its largest entry."""
    H = np.atleast_2d(np.asarray(hessian, dtype=float))
    if not np.all(np.isfinite(H)):
        return False
    H = 0.5 * (H + H.T)
    return bool(np.max(np.linalg.eigvalsh(H)) <= rtol * np.max(np.abs(H)))


def default_tolerance(fprime: Callable, estimate: np.ndarray) -> float:
    """Per-peak tolerance: min(|grad(x0)| / 1e5, 1e-4)."""
    g0 = np.asarray(fprime(estimate), dtype=float)
    return min(float(np.linalg.norm(g0)) / 1e5, 1e-4)


def grid_search_seed(
    field: Callable,
    estimate: np.ndarray,
    halfwidth: float = 1.0,
    step: float = 0.25,
) -> np.ndarray:
    """
    Arg-max of ``field`` on a grid in the open window estimate ± halfwidth.

    Parameters
    ----------
    field : callable
        Field evaluated at points of shape ``(D, M)``, returning ``(M,)``.
    estimate : ndarray
        Centre of the window, shape ``(D,)``.
    halfwidth : float, optional
        Half-width of the window on each axis. Default is 1.
    step : float, optional
        Grid resolution. Default is 0.25.
    """
    n = int(round(halfwidth / step))
    offsets = step * np.arange(-n + 1, n)
    grid = xvals_to_voxels([c + offsets for c in estimate])
    values = np.asarray(field(grid), dtype=float)
    values = np.where(np.isfinite(values), values, -np.inf)
    return grid[:, int(np.argmax(values))]


def _peak_label(index: int | None, estimate: np.ndarray) -> str:
    if index is None:
        return f"Peak refinement from {estimate}"
    return f"Peak {index} (initial estimate {estimate})"


def refine_newton(
    field,
    estimate: np.ndarray,
    fprime: Callable,
    fprime2: Callable,
    config,
    index: int | None = None,
) -> np.ndarray:
    """
    Refine one peak estimate by Newton-Raphson with grid-search fallback.

    Parameters
    ----------
    field : TField or ConvField
        The continuous field; used for the grid-search fallback.
    estimate : ndarray
        Initial estimate, shape ``(D,)``.
    fprime, fprime2 : callable
        Gradient and Hessian of the field at a point of shape ``(D,)``.
    config : PeakConfig
        Refinement settings.
    index : int, optional
        Peak number, used in error messages.

    Returns
    -------
    location : ndarray
        Shape ``(D,)``.

    Raises
    ------
    ConvergenceError
        If neither the seeded runs nor the grid fallback converge.
    """
    tol = config.tol if config.tol is not None else default_tolerance(fprime, estimate)

    state = RefineState.SEEDED
    seed = estimate
    attempts = 0
    fallback_used = False
    location = estimate
    reason = ""

    # two rounds of attempts plus the fallback and terminal transitions
    for _ in range(2 * config.max_attempts + 6):
        if state is RefineState.SEEDED:
            try:
                location = newton_raphson(
                    fprime, seed + attempts * config.perturbation, fprime2, tol, config.max_iter
                )
            except ConvergenceError as exc:
                reason = str(exc)
                location = exc.point if exc.point is not None else location
                if exc.diverged:
                    state = RefineState.DIVERGED
                else:
                    attempts += 1
                    if attempts >= config.max_attempts:
                        state = RefineState.DIVERGED
                continue
            distance = float(np.linalg.norm(location - estimate))
            D = np.size(location)
            if distance > config.max_distance:
                reason = f"moved {distance:.3f} away from the initial estimate"
                state = RefineState.DIVERGED
            elif not is_local_maximum(np.reshape(fprime2(location), (D, D))):
                reason = f"critical point at {location} is not a local maximum"
                state = RefineState.DIVERGED
            else:
                state = RefineState.CONVERGED

        elif state is RefineState.DIVERGED:
            state = RefineState.FAILED if fallback_used else RefineState.GRID_FALLBACK

        elif state is RefineState.GRID_FALLBACK:
            seed = grid_search_seed(field, estimate, config.grid_halfwidth, config.grid_step)
            attempts = 0
            fallback_used = True
            state = RefineState.SEEDED
            if config.verbose:
                print(f"    grid fallback: new seed {seed}")

        elif state is RefineState.CONVERGED:
            return location

        else:  # RefineState.FAILED
            break

    raise ConvergenceError(
        f"{_peak_label(index, estimate)} did not converge after grid fallback: {reason}",
        location,
    )


def refine_optimize(
    field,
    estimate: np.ndarray,
    config,
    weight: Callable | None = None,
    index: int | None = None,
) -> np.ndarray:
    """
    Refine one peak estimate by box-constrained maximization.

    Parameters
    ----------
    field : TField or ConvField
        The continuous field.
    estimate : ndarray
        Initial estimate, shape ``(D,)``.
    config : PeakConfig
        Refinement settings; ``config.gradient`` is used as the analytic
        gradient when given and no weight is applied.
    weight : callable, optional
        Multiplicative weight of a point (e.g. the smoothed mask coverage).
    index : int, optional
        Peak number, used in error messages.

    Returns
    -------
    location : ndarray
        Shape ``(D,)``, within the coordinate bounds.
    """
    bounds = field.lattice.bounds()
    lower = np.array([b[0] for b in bounds])
    upper = np.array([b[1] for b in bounds])
    x0 = np.clip(np.asarray(estimate, dtype=float), lower, upper)

    if weight is None:

        def objective(x):
            return -field.at(x)

    else:

        def objective(x):
            return -field.at(x) * weight(x)

    jac = None
    if config.gradient is not None and weight is None:
        D = x0.size

        def jac(x):
            return -np.asarray(config.gradient(x), dtype=float).reshape(D)

    result = minimize(objective, x0, jac=jac, method="L-BFGS-B", bounds=bounds)

    if not np.all(np.isfinite(result.x)):
        raise ConvergenceError(
            f"{_peak_label(index, estimate)}: optimization returned a non-finite point",
            result.x,
            diverged=True,
        )
    if config.verbose and not result.success:
        print(f"    optimizer message: {result.message}")

    return np.asarray(result.x, dtype=float)
