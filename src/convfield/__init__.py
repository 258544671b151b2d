"""
convfield - Continuous convolution fields for random field theory.

A Python package for evaluating discretely sampled multi-subject data as
continuous fields, beyond the resolution of the lattice.

Features
--------
- Convolution fields and their derivatives at arbitrary points
- Continuous one-sample t-fields (mean, standard deviation, Cohen's d)
- Sub-voxel peak localization (Newton-Raphson or constrained optimization)
- Lipschitz-Killing curvature estimation from the induced Riemannian metric
- Finite-difference derivatives of arbitrary 1D/2D/3D functions

Quick Start
-----------
>>> import numpy as np
>>> from convfield import evaluate_t_field, find_peaks
>>> rng = np.random.default_rng(42)
>>> data = rng.standard_normal((100, 20))
>>> result = evaluate_t_field(data, 3.0, np.array([[10.5, 50.25]]))
>>> peaks = find_peaks(data, 3.0, 2)

References
----------
Adler, R.J. and Taylor, J.E., 2007. Random Fields and Geometry.
Springer Monographs in Mathematics.

License
-------
BSD-3-Clause
"""

__version__ = "0.1.0"

# Exceptions
from .exceptions import (
    ConvfieldError,
    ShapeError,
    NonFiniteDataError,
    ConvergenceError,
)

# Continuous fields
from .fields import (
    Kernel,
    fwhm_to_sigma,
    sigma_to_fwhm,
    gaussian,
    gaussian_grad,
    gaussian_hessian,
    gaussian_kernel,
    resolve_kernel,
    Lattice,
    resolve_lattice,
    ConvField,
    apply_conv_field,
    smooth_lattice,
    mvtstat,
    TField,
    TFieldResult,
    evaluate_t_field,
)

# Numerics
from .numerics import (
    make_derivatives,
    newton_raphson,
    xvals_to_voxels,
    local_maxima_indices,
    triangulate,
    integrate_over_triangulation,
)

# Peaks
from .peaks import PeakConfig, PeakResult, find_peaks

# LKCs
from .lkc import estimate_lkc

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "ConvfieldError",
    "ShapeError",
    "NonFiniteDataError",
    "ConvergenceError",
    # Kernels
    "Kernel",
    "fwhm_to_sigma",
    "sigma_to_fwhm",
    "gaussian",
    "gaussian_grad",
    "gaussian_hessian",
    "gaussian_kernel",
    "resolve_kernel",
    # Fields
    "Lattice",
    "resolve_lattice",
    "ConvField",
    "apply_conv_field",
    "smooth_lattice",
    "mvtstat",
    "TField",
    "TFieldResult",
    "evaluate_t_field",
    # Numerics
    "make_derivatives",
    "newton_raphson",
    "xvals_to_voxels",
    "local_maxima_indices",
    "triangulate",
    "integrate_over_triangulation",
    # Peaks
    "PeakConfig",
    "PeakResult",
    "find_peaks",
    # LKCs
    "estimate_lkc",
]
