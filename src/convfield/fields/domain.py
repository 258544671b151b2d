"""
Lattice domain: coordinate vectors and mask.

Resolves the optional coordinate vectors and mask of an operation into a
:class:`Lattice` record, once, at the start of the call.

Defaults:

- ``xvals_vecs``: the first axis runs 1, 2, ..., L1. Axes that are not given
  are extrapolated from the first one, starting at its first value with its
  first increment.
- ``mask``: every voxel is inside the domain.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..exceptions import ShapeError
from ..numerics.lattice import xvals_to_voxels


@dataclass(frozen=True)
class Lattice:
    """
    Rectangular lattice with per-axis coordinates and a boolean mask.

    Attributes
    ----------
    xvals_vecs : tuple of ndarray
        Coordinate of each index along each axis (ascending).
    mask : ndarray
        Boolean array with shape ``shape``; True marks in-domain voxels.
    """

    xvals_vecs: tuple[np.ndarray, ...]
    mask: np.ndarray

    @property
    def dim(self) -> int:
        return len(self.xvals_vecs)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(len(x) for x in self.xvals_vecs)

    def voxel_coords(self) -> np.ndarray:
        """Coordinates of all voxels, shape ``(D, N)`` in C order."""
        return xvals_to_voxels(self.xvals_vecs)

    def bounds(self) -> list[tuple[float, float]]:
        """Per-axis ``(first, last)`` coordinate values."""
        return [(float(x[0]), float(x[-1])) for x in self.xvals_vecs]

    def to_coords(self, indices: np.ndarray) -> np.ndarray:
        """Map a ``(D, K)`` integer index array to lattice coordinates."""
        indices = np.asarray(indices, dtype=int).reshape(self.dim, -1)
        return np.array([x[i] for x, i in zip(self.xvals_vecs, indices)], dtype=float).reshape(
            self.dim, -1
        )


def resolve_lattice(
    shape: Sequence[int],
    xvals_vecs: Sequence[np.ndarray] | np.ndarray | None = None,
    mask: np.ndarray | None = None,
) -> Lattice:
    """
    Build a :class:`Lattice` for a field with spatial shape ``shape``.

    Parameters
    ----------
    shape : sequence of int
        Spatial dimensions ``(L1, ..., LD)``.
    xvals_vecs : sequence of array_like or array_like, optional
        Coordinate vectors. A single 1D array is taken as the first axis.
    mask : ndarray, optional
        Mask with shape ``shape``. Nonzero entries are in the domain.

    Returns
    -------
    Lattice

    Raises
    ------
    ShapeError
        If more coordinate vectors than axes are given, if a coordinate
        vector's length does not match its axis, or if the mask shape differs.
    """
    shape = tuple(int(s) for s in shape)
    D = len(shape)

    if xvals_vecs is None:
        vecs = [np.arange(1, shape[0] + 1, dtype=float)]
    elif np.isscalar(xvals_vecs) or all(np.isscalar(x) for x in xvals_vecs):
        # a single coordinate vector for the first axis
        vecs = [np.atleast_1d(np.asarray(xvals_vecs, dtype=float))]
    else:
        vecs = [np.atleast_1d(np.asarray(x, dtype=float)) for x in xvals_vecs]

    if len(vecs) > D:
        raise ShapeError(f"Got {len(vecs)} coordinate vectors for a {D}-dimensional lattice")

    if len(vecs) < D:
        x0 = vecs[0]
        increm = x0[1] - x0[0] if x0.size > 1 else 1.0
        for d in range(len(vecs), D):
            vecs.append(x0[0] + increm * np.arange(shape[d], dtype=float))

    dims = tuple(v.size for v in vecs)
    if dims != shape:
        raise ShapeError(
            f"The dimensions of xvals_vecs {dims} must match the dimensions of the lattice {shape}"
        )

    if mask is None:
        mask = np.ones(shape, dtype=bool)
    else:
        mask = np.asarray(mask)
        if mask.shape != shape:
            mask = np.squeeze(mask)
        if mask.shape != shape:
            raise ShapeError(f"Mask shape {mask.shape} does not match lattice shape {shape}")
        mask = mask.astype(bool)

    return Lattice(xvals_vecs=tuple(vecs), mask=mask)
