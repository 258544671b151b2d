"""
Lipschitz-Killing curvature estimation for Gaussian convolution fields.

The LKCs of a smooth random field are intrinsic volumes of its domain under
the Riemannian metric induced by the field. For a field Y the metric is

    g_ij = Cov(∂_i Y, ∂_j Y) / Var(Y) - Cov(Y, ∂_i Y) · Cov(Y, ∂_j Y) / Var(Y)²

and the volume form is sqrt(det g). Because derivatives of a convolution
field are convolutions with the derivative of the kernel, all the required
moments can be estimated from an ensemble of lattice fields by smoothing
each sample with the Gaussian kernel and its partial derivatives.

The resolution is increased by inserting ``res_add`` zeros between adjacent
lattice points before smoothing, so that the smoothed fields are sampled on a
grid of step dx = 1 / (res_add + 1).

Implemented cases:

- D = 1: L1 is the trapezoidal integral of the volume form.
- D = 2: L1 is half the boundary length in the induced metric, L2 is the
  integral of the volume form over a Delaunay triangulation of the grid.
- D = 3: only the volume form is computed; the LKCs are reported as NaN.

Reference:
    Adler, R.J. and Taylor, J.E., 2007. Random Fields and Geometry.
    Springer Monographs in Mathematics. Chapter 12.

License: BSD-3-Clause
"""

from __future__ import annotations

import math
import warnings
from collections.abc import Sequence

import numpy as np
from scipy.integrate import trapezoid
from scipy.signal import fftconvolve

from ..exceptions import ShapeError, check_finite
from ..fields.kernel import fwhm_to_sigma, gaussian_kernel
from ..numerics.lattice import xvals_to_voxels
from ..numerics.triangulation import integrate_over_triangulation, triangulate

_AXES = "xyz"


def upsample(Y: np.ndarray, res_add: int, dim: int) -> np.ndarray:
    """
    Insert ``res_add`` zeros between adjacent lattice points on the first
    ``dim`` axes of ``Y``.
    """
    step = res_add + 1
    shape_hr = tuple((n - 1) * step + 1 for n in Y.shape[:dim]) + Y.shape[dim:]
    Y2 = np.zeros(shape_hr)
    Y2[(slice(None, None, step),) * dim] = Y
    return Y2


def kernel_grids(
    fwhm: float | Sequence[float],
    dim: int,
    res_add: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Gaussian kernel and its partial derivatives sampled at step 1/(res_add+1).

    The grid on axis d spans ±ceil(4σ_d).

    Returns
    -------
    h : ndarray
        Kernel values, shape ``(n_1, ..., n_D)``.
    dh : ndarray
        Partial derivatives, shape ``(D, n_1, ..., n_D)``; ``dh[d]`` is the
        derivative along axis d.
    """
    kernel = gaussian_kernel(fwhm, dim)
    step = res_add + 1
    grids = []
    for s in fwhm_to_sigma(kernel.fwhm):
        n = math.ceil(4 * s) * step
        grids.append(np.arange(-n, n + 1) / step)

    shape = tuple(len(g) for g in grids)
    coords = xvals_to_voxels(grids)
    h = kernel.value(coords).reshape(shape)
    dh = kernel.gradient(coords).reshape((dim,) + shape)
    return h, dh


def _cov(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Sample covariance over the last axis, divisor n - 1."""
    n = a.shape[-1]
    ac = a - a.mean(axis=-1, keepdims=True)
    bc = b - b.mean(axis=-1, keepdims=True)
    return np.sum(ac * bc, axis=-1) / (n - 1)


def _empirical_moments(Y2: np.ndarray, h: np.ndarray, dh: np.ndarray, dim: int) -> dict:
    """Sample (co)variances of the smoothed field and its derivatives."""
    axes = tuple(range(dim))

    def smooth(kernel):
        return fftconvolve(Y2, kernel[..., None], mode="same", axes=axes)

    smY = smooth(h)
    smdY = [smooth(dh[d]) for d in range(dim)]

    moments = {"VY": _cov(smY, smY)}
    for a in range(dim):
        moments[f"Vd{_AXES[a]}Y"] = _cov(smdY[a], smdY[a])
        moments[f"CYd{_AXES[a]}Y"] = _cov(smY, smdY[a])
    for a in range(dim):
        for b in range(a + 1, dim):
            moments[f"Cd{_AXES[a]}Yd{_AXES[b]}Y"] = _cov(smdY[a], smdY[b])
    return moments


def _theoretical_moments(ones: np.ndarray, h: np.ndarray, dh: np.ndarray, dim: int) -> dict:
    """Exact (co)variances of smoothed unit-variance white noise on the lattice."""

    def conv(kernel):
        return fftconvolve(ones, kernel, mode="same")

    moments = {"VY": conv(h**2)}
    for a in range(dim):
        moments[f"Vd{_AXES[a]}Y"] = conv(dh[a] ** 2)
        moments[f"CYd{_AXES[a]}Y"] = conv(h * dh[a])
    for a in range(dim):
        for b in range(a + 1, dim):
            moments[f"Cd{_AXES[a]}Yd{_AXES[b]}Y"] = conv(dh[a] * dh[b])
    return moments


def _trim(moments: dict, trim: int, dim: int) -> dict:
    if trim == 0:
        return moments
    window = (slice(trim, -trim),) * dim
    return {key: value[window] for key, value in moments.items()}


def riemannian_metric(moments: dict, dim: int) -> np.ndarray:
    """
    Induced Riemannian metric from field moments.

    Diagonal entries are floored at 0.

    Returns
    -------
    g : ndarray
        Shape ``(D, D) + grid_shape``.
    """
    VY = moments["VY"]
    g = np.empty((dim, dim) + VY.shape)
    with np.errstate(divide="ignore", invalid="ignore"):
        for a in range(dim):
            xa = _AXES[a]
            g[a, a] = np.maximum(
                moments[f"Vd{xa}Y"] / VY - moments[f"CYd{xa}Y"] ** 2 / VY**2, 0
            )
            for b in range(a + 1, dim):
                xb = _AXES[b]
                g[a, b] = (
                    moments[f"Cd{xa}Yd{xb}Y"] / VY
                    - moments[f"CYd{xa}Y"] * moments[f"CYd{xb}Y"] / VY**2
                )
                g[b, a] = g[a, b]
    return g


def volume_form(g: np.ndarray) -> np.ndarray:
    """sqrt(max(det g, 0)) with closed-form 1x1, 2x2 and 3x3 determinants."""
    dim = g.shape[0]
    if dim == 1:
        det = g[0, 0]
    elif dim == 2:
        det = g[0, 0] * g[1, 1] - g[0, 1] ** 2
    elif dim == 3:
        det = (
            g[0, 0] * g[1, 1] * g[2, 2]
            + 2 * g[0, 1] * g[1, 2] * g[0, 2]
            - g[0, 2] ** 2 * g[1, 1]
            - g[0, 1] ** 2 * g[2, 2]
            - g[0, 0] * g[1, 2] ** 2
        )
    else:
        raise NotImplementedError(f"Volume form is not implemented for D = {dim} > 3")
    return np.sqrt(np.maximum(det, 0))


def _edge_sum(values: np.ndarray) -> float:
    return float(np.sum(values[:-1] + values[1:]))


def lkc_from_metric(g: np.ndarray, dx: float) -> tuple[np.ndarray, np.ndarray]:
    """
    LKCs from the metric on a rectangular grid of step ``dx``.

    Returns
    -------
    L : ndarray
        Length-D LKC vector; NaN where not implemented (D = 3).
    vol_form : ndarray
        The volume form on the grid.
    """
    dim = g.shape[0]
    vol_form = volume_form(g)
    L = np.full(dim, np.nan)

    if dim == 1:
        L[0] = trapezoid(vol_form, dx=dx)
    elif dim == 2:
        # axis-1 edges (first/last row) use g_11, axis-0 edges use g_00
        sqrt_g00 = np.sqrt(g[0, 0])
        sqrt_g11 = np.sqrt(g[1, 1])
        L[0] = (
            _edge_sum(sqrt_g11[0, :])
            + _edge_sum(sqrt_g11[-1, :])
            + _edge_sum(sqrt_g00[:, 0])
            + _edge_sum(sqrt_g00[:, -1])
        ) * dx / 4

        n0, n1 = vol_form.shape
        points = xvals_to_voxels([np.arange(n0) * dx, np.arange(n1) * dx]).T
        L[1] = integrate_over_triangulation(triangulate(points), vol_form.ravel())

    return L, vol_form


def estimate_lkc(
    Y: np.ndarray,
    fwhm: float | Sequence[float],
    res_add: int = 1,
    remove: int = 0,
    theory: bool = False,
    verbose: bool = False,
) -> tuple[np.ndarray, dict]:
    """
    Estimate the LKCs of a Gaussian convolution field from an ensemble.

    Parameters
    ----------
    Y : ndarray
        Lattice samples with shape ``(L1, ..., LD, nsubj)``, D in {1, 2, 3}.
        Voxels are assumed to be spaced 1 apart.
    fwhm : float or sequence of float
        FWHM of the Gaussian kernel, isotropic or one per axis.
    res_add : int, optional
        Number of points inserted between adjacent lattice points. Default is 1.
    remove : int, optional
        Number of original voxels removed at each edge before integration.
        Only meant to cancel boundary effects in simulations. Default is 0.
    theory : bool, optional
        If True, also compute the exact LKCs of smoothed white noise on the
        same lattice, stored as ``geom["trueL"]``. Default is False.
    verbose : bool, optional
        If True, print estimation parameters and results. Default is False.

    Returns
    -------
    L : ndarray
        Estimated LKCs, length D. Entries that are not implemented are NaN.
    geom : dict
        Geometric quantities on the trimmed grid: ``vol_form``, ``metric``,
        ``VY``, ``Vd{a}Y``, ``CYd{a}Y`` and ``Cd{a}Yd{b}Y`` for axes a, b in
        x, y, z; with ``theory`` also ``trueL`` and ``true_vol_form``.

    Raises
    ------
    NotImplementedError
        If D > 3.
    ShapeError
        If there are fewer than 2 samples or the trimmed domain is too small.
    NonFiniteDataError
        If ``Y`` contains non-finite values.
    ValueError
        If ``res_add`` or ``remove`` is negative.

    Warns
    -----
    RuntimeWarning
        For D = 3, where only the volume form is estimated.

    Examples
    --------
    >>> import numpy as np
    >>> from convfield import estimate_lkc
    >>> rng = np.random.default_rng(0)
    >>> L, geom = estimate_lkc(rng.standard_normal((50, 100)), 3.0, res_add=1)
    """
    Y = np.asarray(Y, dtype=float)
    if Y.ndim < 2:
        raise ShapeError(f"Y must have shape (L1, ..., LD, nsubj), got {Y.shape}")
    dim = Y.ndim - 1
    if dim > 3:
        raise NotImplementedError(f"LKC estimation is not implemented for D = {dim} > 3")
    nsubj = Y.shape[-1]
    if nsubj < 2:
        raise ShapeError(f"At least 2 samples are needed to estimate covariances, got {nsubj}")
    if res_add < 0 or int(res_add) != res_add:
        raise ValueError(f"res_add must be a non-negative integer, got {res_add}")
    if remove < 0 or int(remove) != remove:
        raise ValueError(f"remove must be a non-negative integer, got {remove}")
    check_finite(Y)

    res_add = int(res_add)
    dx = 1.0 / (res_add + 1)
    trim = int(remove) * (res_add + 1)
    dom_dim = Y.shape[:dim]

    if any(n - 2 * int(remove) < 2 for n in dom_dim):
        raise ShapeError(f"Removing {remove} voxels per edge leaves no domain for shape {dom_dim}")

    if verbose:
        print("LKC estimation (Gaussian convolution):")
        print(f"    dim = {dim}")
        print(f"    domain = {dom_dim}")
        print(f"    nsubj = {nsubj}")
        print(f"    fwhm = {fwhm}")
        print(f"    res_add = {res_add}")
        print(f"    remove = {remove}")

    h, dh = kernel_grids(fwhm, dim, res_add)
    Y2 = upsample(Y, res_add, dim)

    moments = _trim(_empirical_moments(Y2, h, dh, dim), trim, dim)
    g = riemannian_metric(moments, dim)
    L, vol_form = lkc_from_metric(g, dx)

    geom = {"vol_form": vol_form, "metric": g}
    geom.update(moments)

    if theory:
        ones = upsample(np.ones(dom_dim), res_add, dim)
        true_moments = _trim(_theoretical_moments(ones, h, dh, dim), trim, dim)
        trueL, true_vol_form = lkc_from_metric(riemannian_metric(true_moments, dim), dx)
        geom["trueL"] = trueL
        geom["true_vol_form"] = true_vol_form

    if dim == 3:
        warnings.warn(
            "LKC boundary terms are not implemented for D = 3: only the volume form is estimated",
            RuntimeWarning,
            stacklevel=2,
        )

    if verbose:
        print(f"    L = {L}")
        if theory:
            print(f"    trueL = {geom['trueL']}")

    return L, geom
