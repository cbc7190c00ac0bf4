"""Path simulators for the Wiener diffusion model."""

from .simulator import (
    NO_DECISION_MODES,
    TrialOutcome,
    draw_trial_parameters,
    simulate,
    simulate_design,
    simulate_trial,
    validate_simulation_parameters,
)

__all__ = [
    "NO_DECISION_MODES",
    "TrialOutcome",
    "draw_trial_parameters",
    "simulate",
    "simulate_design",
    "simulate_trial",
    "validate_simulation_parameters",
]
