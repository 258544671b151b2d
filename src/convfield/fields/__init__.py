"""
Continuous fields built from lattice data.

This module provides:

- Gaussian kernels (isotropic or anisotropic) and explicit kernel resolution
- Lattice domains (coordinate vectors and masks)
- Convolution fields evaluated at arbitrary points, with derivatives
- One-sample t-statistics and continuous t-fields
"""

from .kernel import (
    Kernel,
    fwhm_to_sigma,
    sigma_to_fwhm,
    gaussian,
    gaussian_grad,
    gaussian_hessian,
    gaussian_kernel,
    resolve_kernel,
    default_truncation,
)
from .domain import Lattice, resolve_lattice
from .convolution import ConvField, apply_conv_field, smooth_lattice
from .tstat import mvtstat
from .tfield import TField, TFieldResult, evaluate_t_field

__all__ = [
    # Kernels
    "Kernel",
    "fwhm_to_sigma",
    "sigma_to_fwhm",
    "gaussian",
    "gaussian_grad",
    "gaussian_hessian",
    "gaussian_kernel",
    "resolve_kernel",
    "default_truncation",
    # Domain
    "Lattice",
    "resolve_lattice",
    # Convolution fields
    "ConvField",
    "apply_conv_field",
    "smooth_lattice",
    # Statistics
    "mvtstat",
    "TField",
    "TFieldResult",
    "evaluate_t_field",
]
