"""
Finite-difference derivative generator.

Turns any scalar- or vector-valued function of a 1D/2D/3D argument into a
pair of functions returning its forward-difference first and second
derivatives. This is how a continuous field without analytic derivatives is
given a gradient and a Hessian.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from ..exceptions import ShapeError


def make_derivatives(
    f: Callable,
    dim: int | None = None,
    h: float = 1e-4,
) -> tuple[Callable, Callable]:
    """
    Build forward-difference first and second derivatives of a function.

    For ``dim == 1``:

        f'(x)  = (f(x + h) - f(x)) / h
        f''(x) = (f'(x + h) - f'(x)) / h

    For ``dim >= 2`` each partial derivative is obtained by perturbing one
    coordinate at a time, and the partials are stacked along a new last axis.

    Parameters
    ----------
    f : callable
        Function of a point. For ``dim == 1`` the point may be a float or a
        length-1 array; otherwise it is an array of shape ``(dim,)``.
    dim : int, optional
        Dimension of the argument of ``f`` (1, 2, or 3). If None, ``f`` must
        expose a ``dim`` attribute (as :class:`convfield.TField` does).
    h : float, optional
        Step size. Default is 1e-4.

    Returns
    -------
    fprime : callable
        Gradient. For a scalar ``f`` of dimension ``dim >= 2`` this returns an
        array of shape ``(dim,)``; for a vector ``f`` with output shape ``(m,)``
        it returns the Jacobian with shape ``(m, dim)``.
    fprime2 : callable
        Derivative of ``fprime``. For a scalar ``f`` this is the Hessian with
        shape ``(dim, dim)``.

    Raises
    ------
    ShapeError
        If the dimension is not given and cannot be read from ``f``, or is not
        1, 2, or 3.
    ValueError
        If ``h`` is not positive.

    Examples
    --------
    >>> from convfield import make_derivatives
    >>> fprime, fprime2 = make_derivatives(lambda x: x**2, dim=1)
    >>> round(fprime(5.0), 3)
    10.0
    """
    if dim is None:
        dim = getattr(f, "dim", None)
        if dim is None:
            raise ShapeError(
                "Cannot infer the dimension of f: pass dim or give f a 'dim' attribute"
            )
    if dim not in (1, 2, 3):
        raise ShapeError(f"Dimension must be 1, 2, or 3, got {dim}")
    if h <= 0:
        raise ValueError(f"Step size h must be > 0, got {h}")

    if dim == 1:

        def fprime(x):
            return (f(x + h) - f(x)) / h

        def fprime2(x):
            return (fprime(x + h) - fprime(x)) / h

        return fprime, fprime2

    steps = h * np.eye(dim)

    def _partials(g: Callable) -> Callable:
        def dg(x):
            x = np.asarray(x, dtype=float)
            g0 = np.asarray(g(x))
            return np.stack([(np.asarray(g(x + step)) - g0) / h for step in steps], axis=-1)

        return dg

    fprime = _partials(f)
    fprime2 = _partials(fprime)

    return fprime, fprime2
