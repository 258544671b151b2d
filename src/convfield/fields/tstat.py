"""
One-sample t-statistic across subjects.

For n subjects with values X_1, ..., X_n at a point:

    mean     = (1/n) Σ X_i
    sd       = sqrt( Σ (X_i - mean)² / (n - 1) )
    T        = mean / (sd / sqrt(n))
    cohens_d = mean / sd

License: BSD-3-Clause
"""

from __future__ import annotations

import warnings

import numpy as np

from ..exceptions import ShapeError

# Spread across subjects, in units of eps * max|X|, below which sd is taken as 0
_ZERO_SPREAD = 64


def mvtstat(
    data: np.ndarray,
    axis: int = -1,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute the one-sample t-statistic along the subject axis.

    Parameters
    ----------
    data : ndarray
        Sample array; ``axis`` indexes the subjects.
    axis : int, optional
        Subject axis. Default is the last axis.

    Returns
    -------
    T : ndarray
        t-statistic.
    mean : ndarray
        Sample mean.
    sd : ndarray
        Sample standard deviation (divisor n - 1).
    cohens_d : ndarray
        Cohen's d, mean / sd.

    Raises
    ------
    ShapeError
        If there are fewer than 2 subjects.

    Warns
    -----
    RuntimeWarning
        If the subjects agree up to rounding somewhere (spread at most
        64 eps times the largest magnitude). sd is then 0, and T and Cohen's d are
        ±inf where the mean is nonzero and NaN where it is 0.

    Examples
    --------
    >>> import numpy as np
    >>> from convfield import mvtstat
    >>> rng = np.random.default_rng(0)
    >>> T, mean, sd, d = mvtstat(rng.standard_normal((10, 20)))
    >>> T.shape
    (10,)
    """
    data = np.asarray(data, dtype=float)
    nsubj = data.shape[axis]
    if nsubj < 2:
        raise ShapeError(f"At least 2 subjects are needed for a t-statistic, got {nsubj}")

    mean = np.mean(data, axis=axis)
    sd = np.std(data, axis=axis, ddof=1)

    # identical subjects may differ by rounding once they have been smoothed
    scale = np.max(np.abs(data), axis=axis)
    zero_sd = np.ptp(data, axis=axis) <= _ZERO_SPREAD * np.finfo(float).eps * scale
    sd = np.where(zero_sd, 0.0, sd)
    if np.any(zero_sd):
        warnings.warn(
            f"Zero standard deviation at {int(np.count_nonzero(zero_sd))} point(s): "
            "the t-statistic is infinite (or NaN where the mean is 0)",
            RuntimeWarning,
            stacklevel=2,
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        cohens_d = mean / sd
    T = np.sqrt(nsubj) * cohens_d

    return T, mean, sd, cohens_d
