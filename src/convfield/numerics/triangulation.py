"""
Integration of scalar fields over a Delaunay triangulation.

License: BSD-3-Clause
"""

import numpy as np
from scipy.spatial import Delaunay


def triangulate(points: np.ndarray) -> Delaunay:
    """
    Delaunay triangulation of a 2D point set.

    Parameters
    ----------
    points : ndarray
        Array of shape ``(N, 2)``.
    """
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"Expected points with shape (N, 2), got {points.shape}")
    return Delaunay(points)


def integrate_over_triangulation(tri: Delaunay, values: np.ndarray) -> float:
    """
    Integrate the piecewise-linear interpolant of ``values`` over ``tri``.

    On each triangle the integral of the linear interpolant is the triangle
    area times the mean of its three vertex values.

    Parameters
    ----------
    tri : scipy.spatial.Delaunay
        Triangulation of N points.
    values : ndarray
        Field values at the N points, in the order of ``tri.points``.

    Returns
    -------
    integral : float
    """
    values = np.asarray(values, dtype=float).ravel()
    if values.size != tri.points.shape[0]:
        raise ValueError(
            f"Got {values.size} values for a triangulation of {tri.points.shape[0]} points"
        )

    p = tri.points[tri.simplices]  # (n_tri, 3, 2)
    e1 = p[:, 1] - p[:, 0]
    e2 = p[:, 2] - p[:, 0]
    areas = 0.5 * np.abs(e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0])

    return float(np.sum(areas * values[tri.simplices].mean(axis=1)))
