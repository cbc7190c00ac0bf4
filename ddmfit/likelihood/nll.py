"""Single-trial densities and the dataset negative log-likelihood."""

import logging
import math
from functools import lru_cache

import numpy as np

from ddmfit.config import model_config
from ddmfit.core.indices import FAMILIES, ParameterIndex
from ddmfit.core.parameters import ParameterVector, format_name
from ddmfit.core.trials import as_trials, normalize_choices
from ddmfit.exceptions import DensityDomainError, InputError
from ddmfit.likelihood.protocols import WienerDensityProtocol
from ddmfit.likelihood.wiener_density import NavarroFussDensity

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_default_density() -> NavarroFussDensity:
    """Shared default density oracle (stateless, so safe to reuse)."""
    return NavarroFussDensity()


def resolve_density(density=None):
    """Return ``density``, or the shared default oracle when it is None."""
    if density is None:
        return get_default_density()
    if not isinstance(density, WienerDensityProtocol):
        raise TypeError(
            f"{type(density).__name__} does not implement WienerDensityProtocol"
        )
    return density


def with_fixed_defaults(params, index: ParameterIndex) -> ParameterVector:
    """Fill variability families absent from ``params`` with their defaults.

    A family that is missing altogether (e.g. no ``sv[...]`` entry) is held
    at its configured constant in every slot the index uses. Families that
    are present must cover every slot; that is checked on expansion.
    """
    params = ParameterVector.from_mapping(params)
    config = model_config["wiener"]
    present = set(params.families())
    fill = {}
    for family in config["variability_params"]:
        if family not in present:
            for slot in index.slots(family):
                fill[format_name(family, slot)] = config["default_params"][family]
    return params.replace(fill) if fill else params


def trial_density(
    rt: float,
    choice,
    a: float,
    v: float,
    w: float,
    t0: float,
    sv: float = 0.0,
    sw: float = 0.0,
    st0: float = 0.0,
    density: WienerDensityProtocol | None = None,
) -> float:
    """Density of one observed (choice, RT) pair.

    Parameters
    ----------
    rt : float
        Response time in seconds.
    choice : str or int
        ``"upper"``/``"lower"`` or ``1``/``-1``.
    a, v, w, t0, sv, sw, st0 : float
        Parameter values that apply to this trial.
    density : WienerDensityProtocol, optional
        Density oracle; defaults to :class:`NavarroFussDensity`.

    Returns
    -------
    float
        Density value, ``>= 0``.

    Raises
    ------
    InvalidParameterError
        If the parameters violate bounds or the ``w``/``sw`` constraint.
    """
    density = resolve_density(density)
    upper = bool(normalize_choices([choice])[0])
    ParameterVector(
        {"a[1]": a, "v[1]": v, "w[1]": w, "t0[1]": t0, "sv[1]": sv, "sw[1]": sw, "st0[1]": st0}
    ).check_feasible()
    value = float(density.density(rt, upper, a, v, w, t0, sv, sw, st0))
    if np.isnan(value) or value < 0:
        raise DensityDomainError(
            f"Density oracle returned {value} for rt={rt}, choice={choice!r}"
        )
    return value


def trial_log_densities(
    trials, indices: ParameterIndex | None, params, density=None
) -> np.ndarray:
    """Per-trial log densities, with trial parameters resolved via ``indices``.

    Performs the same validation as :func:`dataset_nll` but returns the raw
    values (possibly ``-inf``) instead of raising on them.
    """
    trials = as_trials(trials)
    density = resolve_density(density)
    if indices is None:
        indices = ParameterIndex.single(len(trials))
    if len(indices) != len(trials):
        raise InputError(
            f"Index covers {len(indices)} trials but {len(trials)} trials were given"
        )
    params = with_fixed_defaults(params, indices)
    params.check_feasible(indices)
    per_trial = params.per_trial(indices, FAMILIES)
    return np.asarray(density.log_density(trials.rt, trials.upper, **per_trial), dtype=float)


def dataset_nll(
    trials, indices: ParameterIndex | None, params, density=None
) -> float:
    """Negative log-likelihood of a dataset.

    Parameters
    ----------
    trials : Trials or pd.DataFrame
        Observed trials.
    indices : ParameterIndex or None
        Slot of each trial per family; None puts every trial in slot 1.
    params : ParameterVector, dict or pd.Series
        Values for every slot used by ``indices``. Variability families that
        are absent altogether are held at 0.
    density : WienerDensityProtocol, optional
        Density oracle.

    Returns
    -------
    float
        ``sum(-log density)`` over trials. The sum is computed with
        ``math.fsum`` so it does not depend on trial order.

    Raises
    ------
    InputError
        If trials and index disagree in length.
    InvalidParameterError
        If a used slot has no value or parameters are infeasible.
    DensityDomainError
        If the density of any trial is zero, negative or not finite.
    """
    log_d = trial_log_densities(trials, indices, params, density)
    bad = ~np.isfinite(log_d)
    if np.any(bad):
        rows = np.flatnonzero(bad)
        raise DensityDomainError(
            f"Density is zero or undefined for {rows.size} trial(s) "
            f"(first rows: {rows[:5].tolist()}); check t0 against the fastest RTs"
        )
    nll = math.fsum((-log_d).tolist())
    logger.debug("NLL %.6f over %d trials", nll, log_d.size)
    return nll


__all__ = [
    "dataset_nll",
    "get_default_density",
    "resolve_density",
    "trial_density",
    "trial_log_densities",
    "with_fixed_defaults",
]
