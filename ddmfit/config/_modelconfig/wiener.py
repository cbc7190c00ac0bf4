"""Wiener diffusion model configuration."""

import numpy as np


def get_wiener_config():
    """Get the configuration for the Wiener diffusion model.

    ``params`` lists every parameter family in the order used for flat
    parameter vectors. ``free_by_default`` are always estimated; the
    variability families become free only when a fit asks for them and are
    otherwise held at ``default_params``.
    """
    return {
        "name": "wiener",
        "params": ["a", "v", "w", "t0", "sv", "sw", "st0"],
        "free_by_default": ["a", "v", "w", "t0"],
        "variability_params": ["sv", "sw", "st0"],
        # t0's upper bound is tightened per slot to just below the fastest RT.
        "param_bounds": {
            "a": (1e-3, 10.0),
            "v": (-10.0, 10.0),
            "w": (1e-3, 1.0 - 1e-3),
            "t0": (0.0, np.inf),
            "sv": (0.0, 10.0),
            "sw": (0.0, 1.0),
            "st0": (0.0, 1.0),
        },
        "default_params": {
            "a": 1.0,
            "v": 0.0,
            "w": 0.5,
            "t0": 0.0,
            "sv": 0.0,
            "sw": 0.0,
            "st0": 0.0,
        },
        # Starting values for free families; t0 starts at a fraction of the
        # fastest RT in its slot.
        "init_params": {
            "a": 1.0,
            "v": 0.0,
            "w": 0.5,
            "t0": 0.5,
            "sv": 0.5,
            "sw": 0.1,
            "st0": 0.05,
        },
        "init_t0_fraction_of_min_rt": 0.5,
        "t0_margin": 1e-3,
        "choices": ["lower", "upper"],
    }
