"""
Numerical building blocks.

This module provides:

- Forward-difference derivative generation for 1D/2D/3D functions
- A multivariate Newton-Raphson root finder
- Lattice coordinates and local maxima extraction
- Integration over Delaunay triangulations
"""

from .derivatives import make_derivatives
from .newton import newton_raphson
from .lattice import xvals_to_voxels, local_maxima_indices
from .triangulation import triangulate, integrate_over_triangulation

__all__ = [
    "make_derivatives",
    "newton_raphson",
    "xvals_to_voxels",
    "local_maxima_indices",
    "triangulate",
    "integrate_over_triangulation",
]
