"""Configuration dictionaries for simulation, density evaluation and fitting.

Variables:
---------
model_config: dict
    Dictionary containing all the information about the models

Every ``get_default_*`` function returns a fresh dictionary, so callers may
update the result in place.
"""

import numpy as np

from ._modelconfig import get_model_config


def get_default_simulation_config() -> dict:
    """Default settings for the path simulator.

    ``delta_t`` should stay small relative to ``a**2``; values above 0.01
    noticeably distort RT distributions and choice probabilities.
    """
    return {
        "delta_t": 0.001,
        "max_t": np.inf,
        "no_decision": "drop",
        "progress": False,
    }


def get_default_density_config() -> dict:
    """Default settings for the series/quadrature Wiener density."""
    return {
        "eps": 1e-10,
        "max_terms": 100,
        "n_sv_nodes": 32,
        "n_sw_nodes": 11,
        "n_st0_nodes": 11,
    }


def get_default_fit_config() -> dict:
    """Default settings for the optimizer driver."""
    return {
        "fit_sv": False,
        "fit_sw": False,
        "fit_st0": False,
        "method": None,
        "maxiter": 1000,
        "tol": None,
    }


def get_default_summary_config() -> dict:
    """Default settings for the quantile-probability summarizer."""
    return {
        "quantiles": (0.1, 0.3, 0.5, 0.7, 0.9),
        "method": "cdf",
        "n_sim": 2000,
    }


model_config = get_model_config()
