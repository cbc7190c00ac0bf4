"""Maximum-likelihood fitting of the Wiener diffusion model."""

from .results import FitResult
from .engine import (
    CONSTRAINED_METHODS,
    fit_wiener,
    free_families,
    initial_parameters,
    parameter_bounds,
)

__all__ = [
    "CONSTRAINED_METHODS",
    "FitResult",
    "fit_wiener",
    "free_families",
    "initial_parameters",
    "parameter_bounds",
]
