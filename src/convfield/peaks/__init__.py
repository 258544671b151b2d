"""
Peak localization.

This module provides functions to find local maxima of continuous fields
beyond the lattice resolution:

- Automatic initial estimates from lattice local maxima
- Newton-Raphson refinement with grid-search fallback
- Box-constrained optimization refinement
"""

from .findpeaks import PeakConfig, PeakResult, find_peaks
from .refine import (
    RefineState,
    grid_search_seed,
    is_local_maximum,
    refine_newton,
    refine_optimize,
)
from .seeding import initial_estimates

__all__ = [
    "PeakConfig",
    "PeakResult",
    "find_peaks",
    "RefineState",
    "grid_search_seed",
    "is_local_maximum",
    "refine_newton",
    "refine_optimize",
    "initial_estimates",
]
