"""
Convolution fields evaluated at arbitrary points.

A convolution field is the continuous function obtained by convolving lattice
samples Y_v, located at coordinates x_v, with a kernel K:

    Y(t) = Σ_v K(t - x_v) · m_v · Y_v

where m_v is the mask. It can be evaluated anywhere in the continuous domain,
not only at the lattice points. Derivatives of the field are obtained by
replacing K with its gradient or Hessian.

With a truncation radius r > 0 only voxels with |t_d - x_{v,d}| <= r on every
axis contribute, which trades a negligible error for light-tailed kernels for
speed on large lattices.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import numpy as np

from ..exceptions import ShapeError
from ..numerics.lattice import xvals_to_voxels
from .domain import Lattice, resolve_lattice
from .kernel import Kernel, default_truncation, resolve_kernel

# Upper bound on the number of kernel evaluations held in memory at once
_CHUNK_ELEMENTS = 2_000_000


def as_points(points: np.ndarray | float, dim: int) -> np.ndarray:
    """
    Promote query points to an array of shape ``(dim, M)``.

    For ``dim == 1`` a scalar or a 1D array of M points is accepted.
    """
    points = np.asarray(points, dtype=float)
    if dim == 1 and points.ndim <= 1:
        return points.reshape(1, -1)
    if points.ndim == 1 and points.size == dim:
        return points.reshape(dim, 1)
    if points.ndim != 2 or points.shape[0] != dim:
        raise ShapeError(f"Query points must have shape ({dim}, M), got {points.shape}")
    return points


def _kernel_function(kernel: Kernel, derivative: int) -> tuple[Callable, tuple[int, ...]]:
    if derivative == 0:
        return kernel.value, ()
    if derivative == 1:
        return kernel.gradient, (kernel.dim,)
    if derivative == 2:
        return kernel.hessian, (kernel.dim, kernel.dim)
    raise ValueError(f"derivative must be 0, 1, or 2, got {derivative}")


def _convolve_points(
    points: np.ndarray,
    coords: np.ndarray,
    values: np.ndarray,
    func: Callable,
    lead: tuple[int, ...],
) -> np.ndarray:
    """Σ_v func(t - x_v) · values_v for every column t of ``points``."""
    D, M = points.shape
    N = coords.shape[1]
    out = np.empty(lead + (M, values.shape[1]))
    chunk = max(1, _CHUNK_ELEMENTS // max(1, N * D))

    for start in range(0, M, chunk):
        stop = min(start + chunk, M)
        diffs = points[:, start:stop, None] - coords[:, None, :]  # (D, c, N)
        weights = np.asarray(func(diffs.reshape(D, -1)), dtype=float)
        weights = weights.reshape(lead + (stop - start, N))
        out[..., start:stop, :] = weights @ values

    return out


def _convolve_truncated(
    points: np.ndarray,
    lattice: Lattice,
    field: np.ndarray,
    func: Callable,
    lead: tuple[int, ...],
    truncation: float,
) -> np.ndarray:
    """Per-point evaluation restricted to the truncation window."""
    D, M = points.shape
    nfields = field.shape[-1]
    out = np.zeros(lead + (M, nfields))

    for m in range(M):
        t = points[:, m]
        window = []
        for x, td in zip(lattice.xvals_vecs, t):
            lo = np.searchsorted(x, td - truncation, side="left")
            hi = np.searchsorted(x, td + truncation, side="right")
            window.append(slice(lo, hi))
        if any(s.stop <= s.start for s in window):
            continue
        coords = xvals_to_voxels([x[s] for x, s in zip(lattice.xvals_vecs, window)])
        block = field[tuple(window)].reshape(-1, nfields)
        out[..., m : m + 1, :] = _convolve_points(t[:, None], coords, block, func, lead)

    return out


def apply_conv_field(
    points: np.ndarray | float,
    lat_field: np.ndarray,
    kernel: float | Sequence[float] | Callable | Kernel,
    truncation: float = 0,
    xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
    mask: np.ndarray | None = None,
    derivative: int = 0,
    n_subjects: int | None = None,
) -> np.ndarray:
    """
    Evaluate a convolution field (or its derivatives) at arbitrary points.

    Parameters
    ----------
    points : ndarray
        Query points with shape ``(D, M)``; for D = 1 a 1D array or a scalar.
    lat_field : ndarray
        Lattice field with shape ``(L1, ..., LD)``, or ``(L1, ..., LD, nsubj)``
        when ``n_subjects`` is given.
    kernel : float, sequence of float, callable or Kernel
        Smoothing kernel, see :func:`convfield.fields.kernel.resolve_kernel`.
    truncation : float, optional
        Truncation radius. 0 (default) means no truncation; a negative value
        selects the default radius of a Gaussian kernel (4σ).
    xvals_vecs : sequence of ndarray, optional
        Coordinate vectors. Default: unit spacing starting at 1.
    mask : ndarray, optional
        Boolean mask of in-domain voxels. Default: all voxels.
    derivative : int, optional
        0 for the field (default), 1 for its gradient, 2 for its Hessian.
    n_subjects : int, optional
        If given, the last axis of ``lat_field`` indexes ``n_subjects``
        independent fields which are all evaluated with the same weights.

    Returns
    -------
    values : ndarray
        Shape ``lead + (M,)`` or ``lead + (M, nsubj)`` where ``lead`` is ``()``,
        ``(D,)`` or ``(D, D)`` for ``derivative`` 0, 1 or 2.

    Examples
    --------
    >>> import numpy as np
    >>> from convfield import apply_conv_field
    >>> Y = np.zeros(11); Y[5] = 1.0
    >>> field = apply_conv_field(np.linspace(1, 11, 101), Y, 3.0)
    """
    lat_field = np.asarray(lat_field, dtype=float)
    shape = lat_field.shape[:-1] if n_subjects is not None else lat_field.shape
    if n_subjects is not None and lat_field.shape[-1] != n_subjects:
        raise ShapeError(f"Expected {n_subjects} subjects on the last axis, got {lat_field.shape}")
    if len(shape) == 0:
        raise ShapeError("Lattice field must have at least one spatial dimension")

    lattice = resolve_lattice(shape, xvals_vecs, mask)
    kernel = resolve_kernel(kernel, lattice.dim)
    points = as_points(points, lattice.dim)
    multi = n_subjects is not None
    return _apply(points, lat_field, kernel, lattice, truncation, derivative, multi=multi)


def _apply(
    points: np.ndarray,
    lat_field: np.ndarray,
    kernel: Kernel,
    lattice: Lattice,
    truncation: float,
    derivative: int = 0,
    multi: bool = True,
) -> np.ndarray:
    """Evaluate with an already resolved kernel and lattice."""
    func, lead = _kernel_function(kernel, derivative)

    field = lat_field if multi else lat_field[..., None]
    field = field * lattice.mask[..., None]

    if truncation < 0:
        truncation = default_truncation(kernel)

    if truncation > 0:
        out = _convolve_truncated(points, lattice, field, func, lead, truncation)
    else:
        out = _convolve_points(
            points, lattice.voxel_coords(), field.reshape(-1, field.shape[-1]), func, lead
        )

    return out if multi else out[..., 0]


def smooth_lattice(
    lat_field: np.ndarray,
    kernel: float | Sequence[float] | Callable | Kernel,
    truncation: float = 0,
    xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
    mask: np.ndarray | None = None,
    n_subjects: int | None = None,
) -> np.ndarray:
    """
    Evaluate a convolution field at every voxel of its own lattice.

    Returns an array with the shape of ``lat_field``.

    Raises
    ------
    NotImplementedError
        For lattices with more than 3 spatial dimensions.
    """
    lat_field = np.asarray(lat_field, dtype=float)
    shape = lat_field.shape[:-1] if n_subjects is not None else lat_field.shape
    if len(shape) > 3:
        raise NotImplementedError(f"Dense smoothing is not implemented for D = {len(shape)} > 3")

    lattice = resolve_lattice(shape, xvals_vecs, mask)
    kernel = resolve_kernel(kernel, lattice.dim)
    multi = n_subjects is not None
    values = _apply(lattice.voxel_coords(), lat_field, kernel, lattice, truncation, multi=multi)
    return values.reshape(lat_field.shape)


class ConvField:
    """
    Continuous convolution field of a single lattice field.

    Unlike :class:`convfield.TField`, derivatives are analytic: they are the
    convolution of the lattice samples with the kernel's gradient and Hessian.

    Parameters
    ----------
    lat_field : ndarray
        Lattice field with shape ``(L1, ..., LD)``, D in {1, 2, 3}.
    kernel : float, sequence of float, callable or Kernel
        Smoothing kernel.
    truncation : float, optional
        Truncation radius: 0 (default) for none, negative for 4σ.
    xvals_vecs : sequence of ndarray, optional
        Coordinate vectors. Default: unit spacing starting at 1.
    mask : ndarray, optional
        Boolean mask. Default: all True.
    """

    def __init__(
        self,
        lat_field: np.ndarray,
        kernel: float | Sequence[float] | Callable | Kernel,
        truncation: float = 0,
        xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
        mask: np.ndarray | None = None,
    ):
        lat_field = np.asarray(lat_field, dtype=float)
        if lat_field.ndim > 3:
            raise NotImplementedError(
                f"Convolution fields are not implemented for D = {lat_field.ndim} > 3"
            )
        self.lat_field = lat_field
        self.lattice = resolve_lattice(lat_field.shape, xvals_vecs, mask)
        self.kernel = resolve_kernel(kernel, self.lattice.dim)
        self.truncation = truncation

    @property
    def dim(self) -> int:
        return self.lattice.dim

    def _eval(self, points: np.ndarray, derivative: int) -> np.ndarray:
        points = as_points(points, self.dim)
        return _apply(
            points, self.lat_field, self.kernel, self.lattice, self.truncation, derivative, multi=False
        )

    def __call__(self, points: np.ndarray) -> np.ndarray:
        """Field values at query points of shape ``(D, M)``, shape ``(M,)``."""
        return self._eval(points, 0)

    def at(self, x: np.ndarray | float) -> float:
        """Field value at a single point of shape ``(D,)``."""
        return float(self._eval(np.reshape(x, (self.dim, 1)), 0)[0])

    def gradient_at(self, x: np.ndarray | float) -> np.ndarray:
        """Gradient at a single point, shape ``(D,)``."""
        return self._eval(np.reshape(x, (self.dim, 1)), 1)[:, 0]

    def hessian_at(self, x: np.ndarray | float) -> np.ndarray:
        """Hessian at a single point, shape ``(D, D)``."""
        return self._eval(np.reshape(x, (self.dim, 1)), 2)[:, :, 0]
