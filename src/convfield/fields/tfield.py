"""
Continuous t-statistic fields.

Each subject's lattice field is turned into a convolution field, and the
one-sample t-statistic across subjects is computed pointwise. The result is a
t-field that can be evaluated at any point of the continuous domain, which is
what sub-voxel peak localization needs.

Subjects are evaluated with one shared matrix of kernel weights, so every
subject's value at a point is an independent weighted sum over that subject's
voxels; the t-statistic then only reduces over the subject axis.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import NamedTuple

import numpy as np

from ..exceptions import ShapeError, check_finite
from .convolution import _apply, as_points
from .domain import resolve_lattice
from .kernel import Kernel, resolve_kernel
from .tstat import mvtstat


class TFieldResult(NamedTuple):
    """Value of a continuous t-field at M query points."""

    T: np.ndarray
    """t-statistic, shape (M,)."""
    mean: np.ndarray
    """Mean of the subject fields, shape (M,)."""
    sd: np.ndarray
    """Standard deviation of the subject fields, shape (M,)."""
    cohens_d: np.ndarray
    """Cohen's d, shape (M,)."""
    fields: np.ndarray
    """Subject convolution fields, shape (M, nsubj)."""


class TField:
    """
    Continuous one-sample t-field of multi-subject lattice data.

    Parameters
    ----------
    lat_data : ndarray
        Lattice data with shape ``(L1, ..., LD, nsubj)``, D in {1, 2, 3}.
    kernel : float, sequence of float, callable or Kernel
        Smoothing kernel. A number is the FWHM of an isotropic Gaussian.
    truncation : float, optional
        Truncation radius: 0 (default) for none, negative for 4σ of a
        Gaussian kernel.
    xvals_vecs : sequence of ndarray, optional
        Coordinate vectors. Default: unit spacing starting at 1.
    mask : ndarray, optional
        Boolean mask with shape ``(L1, ..., LD)``. Default: all True.

    Examples
    --------
    >>> import numpy as np
    >>> from convfield import TField
    >>> rng = np.random.default_rng(0)
    >>> tf = TField(rng.standard_normal((50, 20)), 3.0)
    >>> T = tf(np.array([[10.5, 20.25]]))
    """

    def __init__(
        self,
        lat_data: np.ndarray,
        kernel: float | Sequence[float] | Callable | Kernel,
        truncation: float = 0,
        xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
        mask: np.ndarray | None = None,
    ):
        lat_data = np.asarray(lat_data, dtype=float)
        if lat_data.ndim < 2:
            raise ShapeError(
                f"Lattice data must have shape (L1, ..., LD, nsubj), got {lat_data.shape}"
            )
        D = lat_data.ndim - 1
        if D > 3:
            raise NotImplementedError(f"t-fields are not implemented for D = {D} > 3")
        check_finite(lat_data)

        self.lat_data = lat_data
        self.nsubj = lat_data.shape[-1]
        self.lattice = resolve_lattice(lat_data.shape[:-1], xvals_vecs, mask)
        self.kernel = resolve_kernel(kernel, D)
        self.truncation = truncation

    @property
    def dim(self) -> int:
        return self.lattice.dim

    def subject_fields(self, points: np.ndarray) -> np.ndarray:
        """Convolution field of every subject at ``points``, shape ``(M, nsubj)``."""
        points = as_points(points, self.dim)
        return _apply(points, self.lat_data, self.kernel, self.lattice, self.truncation)

    def evaluate(self, points: np.ndarray) -> TFieldResult:
        """Full :class:`TFieldResult` at query points of shape ``(D, M)``."""
        fields = self.subject_fields(points)
        T, mean, sd, d = mvtstat(fields, axis=1)
        return TFieldResult(T, mean, sd, d, fields)

    def __call__(self, points: np.ndarray) -> np.ndarray:
        """t-statistic at query points of shape ``(D, M)``, shape ``(M,)``."""
        return self.evaluate(points).T

    def at(self, x: np.ndarray | float) -> float:
        """t-statistic at a single point ``x`` of shape ``(D,)``."""
        x = np.asarray(x, dtype=float).reshape(self.dim, 1)
        return float(self(x)[0])


def evaluate_t_field(
    lat_data: np.ndarray,
    kernel: float | Sequence[float] | Callable | Kernel,
    points: np.ndarray | float,
    truncation: float = 0,
    xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
    mask: np.ndarray | None = None,
) -> TFieldResult:
    """
    Evaluate the continuous t-field of multi-subject lattice data.

    Parameters
    ----------
    lat_data : ndarray
        Lattice data with shape ``(L1, ..., LD, nsubj)``, D in {1, 2, 3}.
    kernel : float, sequence of float, callable or Kernel
        Smoothing kernel. A number is the FWHM of an isotropic Gaussian; a
        callable takes displacements of shape ``(D, N)`` and returns ``(N,)``
        weights.
    points : ndarray
        Query points, shape ``(D, M)``. For D = 1 a 1D array or a scalar.
    truncation : float, optional
        Truncation radius: 0 (default) for none, negative for 4σ of a
        Gaussian kernel.
    xvals_vecs : sequence of ndarray, optional
        Coordinate vectors. If fewer than D are given the remaining axes are
        extrapolated from the first. Default: 1, 2, ..., L_d.
    mask : ndarray, optional
        Boolean mask with shape ``(L1, ..., LD)``. Default: all True.

    Returns
    -------
    TFieldResult
        ``(T, mean, sd, cohens_d, fields)``, in the order of the query points.

    Raises
    ------
    ShapeError
        If the coordinate vectors, mask or query points do not match the data.
    NonFiniteDataError
        If the lattice data contains NaN or infinite values.
    NotImplementedError
        If D > 3.
    """
    return TField(lat_data, kernel, truncation, xvals_vecs, mask).evaluate(points)
