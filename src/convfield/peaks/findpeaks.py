"""
Peak localization in continuous fields.

Finds the locations (and values) of local maxima of the continuous t-field of
multi-subject lattice data, or of the convolution field of a single lattice
field, to sub-voxel accuracy.

Initial estimates come either from the caller or from the largest local
maxima on the lattice. Each estimate is then refined by one of two
strategies, selected with :attr:`PeakConfig.method`:

1. **Root finding** (``method="newton"``):
   Newton-Raphson on the gradient of the field, with a grid-search fallback
   and bounded retries.

2. **Constrained optimization** (``method="optimize"``):
   L-BFGS-B maximization within the bounding box of the coordinate vectors,
   optionally weighted by the smoothed mask.

Derivatives of a t-field are forward differences (step ``h``); derivatives
of a single convolution field are analytic. Explicit derivatives can be given
through :attr:`PeakConfig.gradient` and :attr:`PeakConfig.hessian`.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from ..exceptions import ShapeError, check_finite
from ..fields.convolution import ConvField
from ..fields.kernel import Kernel
from ..fields.tfield import TField
from ..numerics.derivatives import make_derivatives
from .refine import refine_newton, refine_optimize
from .seeding import initial_estimates


@dataclass
class PeakConfig:
    """
    Settings of :func:`find_peaks`.

    Attributes
    ----------
    method : {"newton", "optimize"}
        Refinement strategy. Default is ``"newton"``.
    field : {"t", "smooth"}
        ``"t"``: one-sample t-field of data with shape ``(L1, ..., LD, nsubj)``.
        ``"smooth"``: convolution field of a single field ``(L1, ..., LD)``.
        Default is ``"t"``.
    seed_field : {"lattice", "smooth"}
        Statistic used for automatic initial estimates: the untouched lattice
        (default) or the continuous field evaluated at every voxel.
    h : float
        Finite-difference step for numerical derivatives. Default is 1e-4.
    tol : float or None
        Newton-Raphson tolerance. None (default) uses, per peak,
        min(|grad(x0)| / 1e5, 1e-4).
    max_distance : float
        A Newton-Raphson result farther than this from its initial estimate
        triggers the grid fallback. Default is 3.
    grid_halfwidth, grid_step : float
        Window half-width and resolution of the grid fallback. Defaults are 1
        and 0.25.
    max_attempts : int
        Newton-Raphson attempts per seed before giving up on it. Default is 10.
    perturbation : float
        Per-axis shift added to the seed at each new attempt. Default is 0.1.
    max_iter : int
        Newton-Raphson iterations per attempt. Default is 100.
    gradient, hessian : callable or None
        Explicit derivatives of the field at a point of shape ``(D,)``.
    mask_weighted : bool
        With ``method="optimize"``, maximize the field times the smoothed
        mask coverage. Default is False.
    verbose : bool
        Print per-peak diagnostics. Default is False.
    """

    method: str = "newton"
    field: str = "t"
    seed_field: str = "lattice"
    h: float = 1e-4
    tol: float | None = None
    max_distance: float = 3.0
    grid_halfwidth: float = 1.0
    grid_step: float = 0.25
    max_attempts: int = 10
    perturbation: float = 0.1
    max_iter: int = 100
    gradient: Callable | None = None
    hessian: Callable | None = None
    mask_weighted: bool = False
    verbose: bool = False

    def __post_init__(self):
        if self.method not in ("newton", "optimize"):
            raise ValueError(f"method must be 'newton' or 'optimize', got {self.method!r}")
        if self.field not in ("t", "smooth"):
            raise ValueError(f"field must be 't' or 'smooth', got {self.field!r}")
        if self.h <= 0:
            raise ValueError(f"Step size h must be > 0, got {self.h}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")


class PeakResult(NamedTuple):
    """Peaks of a continuous field."""

    locations: np.ndarray
    """Peak locations, shape (D, K)."""
    values: np.ndarray
    """Field values at the peaks, shape (K,)."""


def _derivatives(field, config: PeakConfig) -> tuple[Callable, Callable]:
    if config.gradient is not None:
        fprime = config.gradient
        if config.hessian is not None:
            return fprime, config.hessian
        return fprime, make_derivatives(fprime, field.dim, config.h)[0]
    if isinstance(field, ConvField):
        return field.gradient_at, field.hessian_at
    return make_derivatives(field.at, field.dim, config.h)


def _mask_coverage(field) -> Callable:
    """Fraction of the kernel mass that falls inside the mask at a point."""
    lattice = field.lattice
    kernel, truncation = field.kernel, field.truncation
    inside = ConvField(lattice.mask.astype(float), kernel, truncation, lattice.xvals_vecs)
    total = ConvField(np.ones(lattice.shape), kernel, truncation, lattice.xvals_vecs)

    def coverage(x):
        denom = total.at(x)
        return inside.at(x) / denom if denom > 0 else 0.0

    return coverage


def find_peaks(
    lat_data: np.ndarray,
    kernel: float | Sequence[float] | Callable | Kernel,
    peak_est_locs: int | np.ndarray = 1,
    mask: np.ndarray | None = None,
    xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
    truncation: float = 0,
    config: PeakConfig | None = None,
) -> PeakResult:
    """
    Locate local maxima of a continuous t-field or convolution field.

    Parameters
    ----------
    lat_data : ndarray
        Lattice data with shape ``(L1, ..., LD, nsubj)`` (``config.field="t"``)
        or ``(L1, ..., LD)`` (``config.field="smooth"``), D in {1, 2, 3}.
    kernel : float, sequence of float, callable or Kernel
        Smoothing kernel. A number is the FWHM of an isotropic Gaussian.
    peak_est_locs : int or array_like, optional
        An integer K finds the K largest lattice maxima and refines them
        (default 1). Otherwise explicit initial estimates of shape ``(D, K)``;
        for D = 1 non-finite entries are dropped.
    mask : ndarray, optional
        Boolean mask with shape ``(L1, ..., LD)``. Default: all True.
    xvals_vecs : sequence of ndarray, optional
        Coordinate vectors. Default: unit spacing starting at 1.
    truncation : float, optional
        Kernel truncation radius: 0 (default) for none, negative for 4σ.
    config : PeakConfig, optional
        Refinement settings. Default: ``PeakConfig()``.

    Returns
    -------
    PeakResult
        ``locations`` with shape ``(D, K)`` and ``values`` with shape ``(K,)``.

    Raises
    ------
    NonFiniteDataError
        If the lattice data contains NaN or infinite values.
    ShapeError
        If the coordinate vectors or mask do not match the data.
    ConvergenceError
        If a peak cannot be refined.
    NotImplementedError
        If D > 3.

    Examples
    --------
    >>> import numpy as np
    >>> from convfield import find_peaks
    >>> rng = np.random.default_rng(0)
    >>> data = rng.standard_normal((100, 20))
    >>> data[50] += 3.0
    >>> peaks = find_peaks(data, 3.0, 1)
    """
    if config is None:
        config = PeakConfig()

    lat_data = np.asarray(lat_data, dtype=float)
    check_finite(lat_data)

    if config.field == "t":
        if lat_data.ndim < 2:
            raise ShapeError(
                f"Lattice data must have shape (L1, ..., LD, nsubj), got {lat_data.shape}"
            )
        field = TField(lat_data, kernel, truncation, xvals_vecs, mask)
    else:
        field = ConvField(lat_data, kernel, truncation, xvals_vecs, mask)

    estimates = initial_estimates(field, peak_est_locs, config.seed_field)
    D, npeaks = estimates.shape

    if config.verbose:
        print(f"Peak finding ({config.method}, {config.field} field):")
        print(f"    dim = {D}")
        print(f"    npeaks = {npeaks}")

    if config.method == "newton":
        fprime, fprime2 = _derivatives(field, config)
    else:
        weight = _mask_coverage(field) if config.mask_weighted else None

    locations = np.zeros((D, npeaks))
    values = np.zeros(npeaks)
    for i in range(npeaks):
        estimate = estimates[:, i]
        if config.method == "newton":
            location = refine_newton(field, estimate, fprime, fprime2, config, index=i + 1)
        else:
            location = refine_optimize(field, estimate, config, weight, index=i + 1)
        locations[:, i] = location
        values[i] = field.at(location)

        if config.verbose:
            print(f"    peak {i + 1}: estimate = {estimate}, location = {location}")
            print(f"        value = {values[i]:.4f}")

    return PeakResult(locations, values)
