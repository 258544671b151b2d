"""
Lattice utilities: voxel coordinates and local maxima.

License: BSD-3-Clause
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy.ndimage import generate_binary_structure, label, maximum_filter, minimum_filter


def xvals_to_voxels(xvals_vecs: Sequence[np.ndarray]) -> np.ndarray:
    """
    Coordinates of every point of a rectangular grid.

    Parameters
    ----------
    xvals_vecs : sequence of ndarray
        One coordinate vector per axis.

    Returns
    -------
    coords : ndarray
        Array of shape ``(D, N)`` where ``N = prod(len(x) for x in xvals_vecs)``.
        Points are listed in C order (last axis varies fastest), matching
        ``field.ravel()`` for a field with shape ``tuple(len(x) for x in xvals_vecs)``.
    """
    grids = np.meshgrid(*[np.asarray(x, dtype=float) for x in xvals_vecs], indexing="ij")
    return np.stack([g.ravel() for g in grids], axis=0)


def local_maxima_indices(
    field: np.ndarray,
    top: int = 1,
    mask: np.ndarray | None = None,
) -> np.ndarray:
    """
    Indices of the largest local maxima of a lattice field.

    A voxel is a local maximum if it is inside the mask, no voxel of its 3^D
    neighbourhood is larger and at least one is smaller. Voxels outside the
    mask or outside the domain never count as neighbours. A connected plateau
    of equal maxima is reported once, by its first voxel in C order, so a
    constant field has no maxima.

    Parameters
    ----------
    field : ndarray
        D-dimensional lattice field.
    top : int, optional
        Number of maxima to return. Default is 1.
    mask : ndarray, optional
        Boolean array with the shape of ``field``. Default: all True.

    Returns
    -------
    indices : ndarray
        Integer array of shape ``(D, k)`` with ``k <= top`` (fewer when the
        field has fewer maxima). Columns are sorted
        by decreasing field value; ties are broken by ascending C-order index.
    """
    field = np.asarray(field, dtype=float)
    if mask is None:
        mask = np.ones(field.shape, dtype=bool)
    else:
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != field.shape:
            raise ValueError(f"Mask shape {mask.shape} does not match field shape {field.shape}")

    masked = np.where(mask, field, -np.inf)
    neighbourhood_max = maximum_filter(masked, size=3, mode="constant", cval=-np.inf)
    neighbourhood_min = minimum_filter(
        np.where(mask, field, np.inf), size=3, mode="constant", cval=np.inf
    )
    # flat regions (including a constant background) are not maxima
    is_max = (
        mask
        & (masked == neighbourhood_max)
        & (masked > neighbourhood_min)
        & np.isfinite(masked)
    )

    # one representative per plateau: its first voxel in C order
    labels, _ = label(is_max, structure=generate_binary_structure(field.ndim, field.ndim))
    flat_idx = np.flatnonzero(is_max)
    _, first = np.unique(labels.ravel()[flat_idx], return_index=True)
    flat_idx = flat_idx[np.sort(first)]
    values = masked.ravel()[flat_idx]
    # stable sort keeps ascending flat index among equal values
    order = np.argsort(-values, kind="stable")
    flat_idx = flat_idx[order[:top]]

    return np.array(np.unravel_index(flat_idx, field.shape), dtype=int).reshape(field.ndim, -1)
