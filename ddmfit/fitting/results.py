"""Container for the outcome of a maximum-likelihood fit."""

from dataclasses import dataclass, field

import pandas as pd

from ddmfit.core.parameters import ParameterVector


@dataclass(frozen=True)
class FitResult:
    """Result of :func:`ddmfit.fitting.fit_wiener`.

    Attributes
    ----------
    params : ParameterVector
        Every parameter used by the fit, free and fixed, keyed by
        ``"family[slot]"``.
    nll : float
        Negative log-likelihood at ``params``.
    converged : bool
        Whether the optimizer reported success.
    n_iterations : int
        Optimizer iterations.
    n_evaluations : int
        Objective evaluations.
    message : str
        Optimizer message.
    free_parameters : tuple[str, ...]
        Names of the estimated parameters, in optimizer order.
    n_parameters : int
        Number of estimated parameters (for information criteria).
    n_trials : int
        Number of trials the likelihood was computed on.
    method : str
        ``scipy.optimize.minimize`` method that was used.
    """

    params: ParameterVector
    nll: float
    converged: bool
    n_iterations: int
    n_evaluations: int
    message: str
    free_parameters: tuple = field(default_factory=tuple)
    n_parameters: int = 0
    n_trials: int = 0
    method: str = ""

    def to_series(self) -> pd.Series:
        return self.params.to_series()

    def to_dict(self) -> dict:
        """Plain-Python summary, suitable for YAML or JSON output."""
        return {
            "params": self.params.to_dict(),
            "free_parameters": list(self.free_parameters),
            "nll": float(self.nll),
            "converged": bool(self.converged),
            "n_iterations": int(self.n_iterations),
            "n_evaluations": int(self.n_evaluations),
            "n_parameters": int(self.n_parameters),
            "n_trials": int(self.n_trials),
            "method": self.method,
            "message": self.message,
        }
