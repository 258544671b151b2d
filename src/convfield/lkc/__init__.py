"""
Lipschitz-Killing curvature estimation.

This module provides functions to estimate the LKCs of smooth random fields
from an ensemble of lattice samples:

- Induced Riemannian metric from smoothed field moments
- Volume form with closed-form determinants (D <= 3)
- LKC integration for 1D and 2D rectangular domains
- Exact reference values for smoothed white noise
"""

from .gaussconv import (
    estimate_lkc,
    kernel_grids,
    lkc_from_metric,
    riemannian_metric,
    upsample,
    volume_form,
)

__all__ = [
    "estimate_lkc",
    "kernel_grids",
    "lkc_from_metric",
    "riemannian_metric",
    "upsample",
    "volume_form",
]
