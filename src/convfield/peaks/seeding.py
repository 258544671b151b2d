"""
Initial peak estimates.

Either explicit coordinates supplied by the caller, or the K largest local
maxima of a statistic computed on the lattice, mapped back to continuous
coordinates through the coordinate vectors.

License: BSD-3-Clause
"""

from __future__ import annotations

from numbers import Integral

import numpy as np

from ..exceptions import NonFiniteDataError, ShapeError
from ..fields.tstat import mvtstat
from ..numerics.lattice import local_maxima_indices


def lattice_statistic(field, seed_field: str = "lattice") -> np.ndarray:
    """
    Statistic on which lattice maxima are searched.

    Parameters
    ----------
    field : TField or ConvField
        The continuous field being refined.
    seed_field : {"lattice", "smooth"}
        ``"lattice"`` uses the untouched lattice data (its t-statistic for a
        t-field); ``"smooth"`` evaluates the continuous field at every voxel.
    """
    if seed_field == "smooth":
        if field.dim > 3:
            raise NotImplementedError(
                f"Dense field evaluation is not implemented for D = {field.dim} > 3"
            )
        values = field(field.lattice.voxel_coords())
        return np.asarray(values).reshape(field.lattice.shape)
    if seed_field != "lattice":
        raise ValueError(f"seed_field must be 'lattice' or 'smooth', got {seed_field!r}")

    if hasattr(field, "lat_data"):
        return mvtstat(field.lat_data)[0]
    return field.lat_field


def initial_estimates(
    field,
    peak_est_locs: int | np.ndarray,
    seed_field: str = "lattice",
) -> np.ndarray:
    """
    Initial peak estimates with shape ``(D, K)``.

    Parameters
    ----------
    field : TField or ConvField
        The continuous field.
    peak_est_locs : int or array_like
        An integer K requests the K largest masked lattice maxima, sorted by
        decreasing value (ties by C-order index). Otherwise explicit
        coordinates of shape ``(D, K)``; for D = 1 any 1D sequence or a float.
    seed_field : {"lattice", "smooth"}, optional
        Statistic used for automatic detection. Default is ``"lattice"``.

    Raises
    ------
    ValueError
        If an integer K < 1 is given.
    ShapeError
        If explicit estimates do not have D rows.
    NonFiniteDataError
        If an explicit estimate for D > 1 contains non-finite values.
    """
    D = field.dim

    if isinstance(peak_est_locs, Integral) and not isinstance(peak_est_locs, bool):
        top = int(peak_est_locs)
        if top < 1:
            raise ValueError(f"Number of peaks must be >= 1, got {top}")
        stat = lattice_statistic(field, seed_field)
        indices = local_maxima_indices(stat, top, field.lattice.mask)
        return field.lattice.to_coords(indices)

    est = np.asarray(peak_est_locs, dtype=float)
    if D == 1:
        est = est.reshape(1, -1)
        # non-finite placeholders carry no location
        return est[:, np.isfinite(est[0])]

    if est.ndim == 1 and est.size == D:
        est = est.reshape(D, 1)
    if est.ndim != 2 or est.shape[0] != D:
        raise ShapeError(f"Peak estimates must have shape ({D}, K), got {est.shape}")
    if not np.all(np.isfinite(est)):
        raise NonFiniteDataError("Cannot process missing values in the initial peak estimates")
    return est
