"""
Smoothing kernels.

A kernel is either a positive FWHM (isotropic Gaussian, or anisotropic with
one FWHM per axis) or an explicit function of the displacement. Both are
resolved once, at the entry point of each operation, into a :class:`Kernel`
record carrying the value, gradient and Hessian functions, so that the rest
of the code never branches on the kind of kernel it was given.

All kernel functions act on a batch of displacements ``x`` of shape
``(D, N)``: the value has shape ``(N,)``, the gradient ``(D, N)`` and the
Hessian ``(D, D, N)``.

The Gaussian density with per-axis standard deviations σ_d is:

    K(x) = Π_d exp(-x_d² / (2σ_d²)) / sqrt(2π σ_d²)

and the FWHM relates to σ via FWHM = σ · sqrt(8 ln 2).

License: BSD-3-Clause
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from numbers import Real

import numpy as np

from ..exceptions import ShapeError

FWHM_PER_SIGMA = math.sqrt(8 * math.log(2))


def fwhm_to_sigma(fwhm: float | np.ndarray) -> float | np.ndarray:
    """Convert a full width at half maximum to a Gaussian standard deviation."""
    if np.ndim(fwhm):
        return np.asarray(fwhm, dtype=float) / FWHM_PER_SIGMA
    return float(fwhm) / FWHM_PER_SIGMA


def sigma_to_fwhm(sigma: float | np.ndarray) -> float | np.ndarray:
    """Convert a Gaussian standard deviation to a full width at half maximum."""
    if np.ndim(sigma):
        return np.asarray(sigma, dtype=float) * FWHM_PER_SIGMA
    return float(sigma) * FWHM_PER_SIGMA


def _per_axis_sigma(fwhm: float | Sequence[float], dim: int) -> np.ndarray:
    """Validate an isotropic or per-axis FWHM and return σ with shape (dim, 1)."""
    fwhm = np.asarray(fwhm, dtype=float)
    if fwhm.ndim == 0:
        fwhm = np.full(dim, float(fwhm))
    elif fwhm.shape != (dim,):
        raise ShapeError(f"FWHM must be a scalar or have {dim} entries, got shape {fwhm.shape}")
    if np.any(fwhm <= 0) or not np.all(np.isfinite(fwhm)):
        raise ValueError(f"FWHM must be positive and finite, got {fwhm}")
    return fwhm_to_sigma(fwhm)[:, None]


def _as_batch(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return x.reshape(1, -1) if x.ndim < 2 else x


def gaussian(x: np.ndarray, fwhm: float | Sequence[float]) -> np.ndarray:
    """
    Gaussian kernel density.

    Parameters
    ----------
    x : ndarray
        Displacements with shape ``(D, N)``. A 1D array is read as N points in
        one dimension.
    fwhm : float or sequence of float
        FWHM, either isotropic or one per axis.

    Returns
    -------
    K : ndarray
        Kernel values with shape ``(N,)``.
    """
    x = _as_batch(x)
    sigma = _per_axis_sigma(fwhm, x.shape[0])
    z = x / sigma
    norm = np.prod(np.sqrt(2 * np.pi) * sigma)
    return np.exp(-0.5 * np.sum(z**2, axis=0)) / norm


def gaussian_grad(x: np.ndarray, fwhm: float | Sequence[float]) -> np.ndarray:
    """Gradient of :func:`gaussian`, shape ``(D, N)``."""
    x = _as_batch(x)
    sigma = _per_axis_sigma(fwhm, x.shape[0])
    return -(x / sigma**2) * gaussian(x, fwhm)


def gaussian_hessian(x: np.ndarray, fwhm: float | Sequence[float]) -> np.ndarray:
    """Hessian of :func:`gaussian`, shape ``(D, D, N)``."""
    x = _as_batch(x)
    D = x.shape[0]
    sigma = _per_axis_sigma(fwhm, D)
    u = x / sigma**2
    H = u[:, None, :] * u[None, :, :]
    H -= np.eye(D)[:, :, None] / (sigma**2)[:, :, None]
    return H * gaussian(x, fwhm)


@dataclass(frozen=True)
class Kernel:
    """
    Resolved smoothing kernel.

    Attributes
    ----------
    value : callable
        Maps displacements ``(D, N)`` to weights ``(N,)``.
    gradient : callable
        Maps displacements ``(D, N)`` to gradients ``(D, N)``.
    hessian : callable
        Maps displacements ``(D, N)`` to Hessians ``(D, D, N)``.
    dim : int
        Dimension of the domain.
    fwhm : ndarray or None
        Per-axis FWHM for Gaussian kernels, None for explicit kernels.
    """

    value: Callable[[np.ndarray], np.ndarray]
    gradient: Callable[[np.ndarray], np.ndarray]
    hessian: Callable[[np.ndarray], np.ndarray]
    dim: int
    fwhm: np.ndarray | None = None

    @property
    def is_gaussian(self) -> bool:
        return self.fwhm is not None

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return self.value(x)


def gaussian_kernel(fwhm: float | Sequence[float], dim: int) -> Kernel:
    """Gaussian :class:`Kernel` with analytic derivatives."""
    sigma = _per_axis_sigma(fwhm, dim)
    fwhm = (sigma * FWHM_PER_SIGMA).ravel()
    return Kernel(
        value=lambda x: gaussian(x, fwhm),
        gradient=lambda x: gaussian_grad(x, fwhm),
        hessian=lambda x: gaussian_hessian(x, fwhm),
        dim=dim,
        fwhm=fwhm,
    )


def _fd_gradient(value: Callable, dim: int, h: float) -> Callable:
    """Batched forward-difference gradient of a kernel function."""
    steps = h * np.eye(dim)[:, :, None]

    def gradient(x):
        x = _as_batch(x)
        base = np.asarray(value(x), dtype=float)
        return np.stack([(np.asarray(value(x + step)) - base) / h for step in steps])

    return gradient


def resolve_kernel(
    kernel: float | Sequence[float] | Callable | Kernel,
    dim: int,
    h: float = 1e-4,
) -> Kernel:
    """
    Resolve any accepted kernel argument into a :class:`Kernel`.

    Parameters
    ----------
    kernel : float, sequence of float, callable or Kernel
        A positive number is the FWHM of an isotropic Gaussian; a sequence of
        ``dim`` numbers gives one FWHM per axis; a callable is an explicit
        kernel taking displacements of shape ``(dim, N)``; a :class:`Kernel`
        is returned unchanged.
    dim : int
        Dimension of the domain.
    h : float, optional
        Finite-difference step used for the derivatives of explicit kernels.

    Returns
    -------
    Kernel
    """
    if isinstance(kernel, Kernel):
        if kernel.dim != dim:
            raise ShapeError(f"Kernel is {kernel.dim}-dimensional but the data is {dim}-dimensional")
        return kernel
    if isinstance(kernel, Real) or (
        isinstance(kernel, (Sequence, np.ndarray)) and not callable(kernel)
    ):
        return gaussian_kernel(kernel, dim)
    if callable(kernel):
        gradient = _fd_gradient(kernel, dim, h)
        return Kernel(
            value=kernel,
            gradient=gradient,
            hessian=_fd_gradient(gradient, dim, h),
            dim=dim,
        )
    raise TypeError(f"Kernel must be a FWHM, a callable or a Kernel, got {type(kernel).__name__}")


def default_truncation(kernel: Kernel) -> float:
    """Default truncation radius: 4σ of the widest axis of a Gaussian kernel."""
    if not kernel.is_gaussian:
        raise ValueError("Default truncation (truncation < 0) requires a Gaussian kernel")
    return 4.0 * float(np.max(fwhm_to_sigma(kernel.fwhm)))
