__version__ = "0.1.0"

from . import basic_simulators, config, core, fitting, likelihood, summaries, support_utils
from .basic_simulators import simulate, simulate_design, simulate_trial
from .core import ParameterIndex, ParameterVector, Trials, as_trials, resolve_indices
from .exceptions import (
    DDMFitError,
    DegenerateDataError,
    DensityDomainError,
    InputError,
    InvalidParameterError,
    SimulationError,
)
from .fitting import FitResult, fit_wiener
from .likelihood import NavarroFussDensity, dataset_nll, trial_density
from .summaries import qp_summary

__all__ = [
    "basic_simulators",
    "config",
    "core",
    "fitting",
    "likelihood",
    "summaries",
    "support_utils",
    # Simulation
    "simulate",
    "simulate_design",
    "simulate_trial",
    # Data model
    "ParameterIndex",
    "ParameterVector",
    "Trials",
    "as_trials",
    "resolve_indices",
    # Likelihood and fitting
    "NavarroFussDensity",
    "dataset_nll",
    "trial_density",
    "FitResult",
    "fit_wiener",
    "qp_summary",
    # Errors
    "DDMFitError",
    "DegenerateDataError",
    "DensityDomainError",
    "InputError",
    "InvalidParameterError",
    "SimulationError",
]
