"""Wiener first-passage densities and the dataset likelihood."""

from .protocols import WienerDensityProtocol
from .wiener_density import NavarroFussDensity
from .nll import (
    dataset_nll,
    get_default_density,
    resolve_density,
    trial_density,
    trial_log_densities,
    with_fixed_defaults,
)

__all__ = [
    "WienerDensityProtocol",
    "NavarroFussDensity",
    "dataset_nll",
    "get_default_density",
    "resolve_density",
    "trial_density",
    "trial_log_densities",
    "with_fixed_defaults",
]
