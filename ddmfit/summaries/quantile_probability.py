"""Quantile-probability summaries of observed and predicted trials.

For every cell (distinct combination of parameter slots) and both choices the
summary reports the response proportion and the RT quantiles conditional on
that choice. Observed rows come from the data; predicted rows come from the
density oracle (``method="cdf"``) or from simulation (``method="simulate"``).
"""

import logging

import numpy as np
import pandas as pd
from scipy.optimize import brentq

from ddmfit.basic_simulators.simulator import simulate
from ddmfit.config import get_default_summary_config, model_config
from ddmfit.core.indices import FAMILIES, ParameterIndex
from ddmfit.core.trials import as_trials
from ddmfit.exceptions import InputError
from ddmfit.likelihood.nll import resolve_density, with_fixed_defaults
from ddmfit.support_utils.utils import spawn_rngs

logger = logging.getLogger(__name__)

SUMMARY_METHODS = ("cdf", "simulate")

# Choice probabilities below this are treated as "never chosen"
_MIN_CHOICE_PROB = 1e-12
# Bracket search for conditional quantiles stops after this much time
_MAX_BRACKET = 1e4


def _check_quantiles(quantiles) -> np.ndarray:
    q = np.asarray(quantiles, dtype=float).ravel()
    if q.size == 0 or np.any((q <= 0) | (q >= 1)) or np.any(np.isnan(q)):
        raise ValueError(f"quantiles must lie strictly between 0 and 1, got {quantiles!r}")
    return q


def _rows(cell_row: pd.Series, choice: str, source: str, n_resp, p_resp, quantiles, rt_q):
    base = cell_row.to_dict()
    return [
        {**base, "choice": choice, "source": source, "n_resp": n_resp,
         "p_resp": p_resp, "rt_p": float(p), "rt_q": float(value)}
        for p, value in zip(quantiles, rt_q)
    ]


def _conditional_quantiles(density, upper, prob, quantiles, **params) -> np.ndarray:
    """Invert the defective CDF at ``q * prob`` for each quantile ``q``."""
    if prob < _MIN_CHOICE_PROB:
        return np.full(quantiles.shape, np.nan)
    start = params["t0"]
    floor = params["t0"] + params["st0"]

    def cdf(t):
        return float(density.cdf(t, upper, **params))

    out = np.empty(quantiles.shape)
    for i, q in enumerate(quantiles):
        target = q * prob
        width = 1.0
        while cdf(floor + width) < target:
            width *= 2.0
            if width > _MAX_BRACKET:
                logger.warning(
                    "Could not bracket the %.3g quantile for choice %s; reporting NaN",
                    q,
                    "upper" if upper else "lower",
                )
                break
        if width > _MAX_BRACKET:
            out[i] = np.nan
            continue
        out[i] = brentq(lambda t: cdf(t) - target, start, floor + width, xtol=1e-6)
    return out


def observed_summary(trials, indices: ParameterIndex, quantiles) -> pd.DataFrame:
    """Observed response proportions and conditional RT quantiles per cell."""
    quantiles = _check_quantiles(quantiles)
    codes, table = indices.cells()
    records = []
    for _, cell_row in table.iterrows():
        in_cell = codes == cell_row["cell"]
        n_cell = int(in_cell.sum())
        for choice in model_config["wiener"]["choices"]:
            chosen = in_cell & (trials.upper == (choice == "upper"))
            rts = trials.rt[chosen]
            if rts.size:
                rt_q = np.quantile(rts, quantiles)
            else:
                rt_q = np.full(quantiles.shape, np.nan)
            records.extend(
                _rows(cell_row, choice, "observed", int(rts.size), rts.size / n_cell,
                      quantiles, rt_q)
            )
    return pd.DataFrame.from_records(records)


def predicted_summary(
    indices: ParameterIndex,
    params,
    quantiles,
    method: str = "cdf",
    n_sim: int = 2000,
    rng=None,
    dt: float = 0.001,
    t_max: float = np.inf,
    density=None,
) -> pd.DataFrame:
    """Model-predicted response proportions and conditional RT quantiles per cell.

    With ``method="simulate"`` each cell gets ``n_sim`` simulated trials from
    its own child generator; trials without a decision count towards the
    cell total but towards neither choice.
    """
    if method not in SUMMARY_METHODS:
        raise ValueError(f"method must be one of {SUMMARY_METHODS}, got {method!r}")
    quantiles = _check_quantiles(quantiles)
    density = resolve_density(density)
    params = with_fixed_defaults(params, indices)
    params.check_feasible(indices)
    per_trial = params.per_trial(indices, FAMILIES)
    codes, table = indices.cells()
    first_rows = np.array([np.flatnonzero(codes == c)[0] for c in table["cell"]], dtype=int)
    cell_rngs = spawn_rngs(rng, len(table)) if method == "simulate" else [None] * len(table)

    records = []
    for (_, cell_row), row, cell_rng in zip(table.iterrows(), first_rows, cell_rngs):
        cell_params = {family: float(per_trial[family][row]) for family in FAMILIES}
        if method == "simulate":
            sim = simulate(
                n_trials=n_sim, dt=dt, t_max=t_max, rng=cell_rng, no_decision="keep",
                **cell_params,
            )
        for choice in model_config["wiener"]["choices"]:
            upper = choice == "upper"
            if method == "cdf":
                prob = float(density.choice_probability(
                    upper, cell_params["a"], cell_params["v"], cell_params["w"],
                    cell_params["sv"], cell_params["sw"],
                ))
                rt_q = _conditional_quantiles(density, upper, prob, quantiles, **cell_params)
            else:
                rts = sim["rt"].to_numpy()[(sim["choice"] == choice).to_numpy()]
                prob = rts.size / n_sim if n_sim else np.nan
                if rts.size:
                    rt_q = np.quantile(rts, quantiles)
                else:
                    rt_q = np.full(quantiles.shape, np.nan)
            records.extend(_rows(cell_row, choice, "predicted", pd.NA, prob, quantiles, rt_q))
        logger.debug("Predicted summary for cell %d: %s", cell_row["cell"], cell_params)
    return pd.DataFrame.from_records(records)


def qp_summary(
    trials,
    indices: ParameterIndex | None = None,
    params=None,
    quantiles=None,
    method: str | None = None,
    n_sim: int | None = None,
    rng=None,
    dt: float = 0.001,
    t_max: float = np.inf,
    density=None,
) -> pd.DataFrame:
    """Quantile-probability table for observed and (optionally) predicted data.

    Parameters
    ----------
    trials : Trials or pd.DataFrame
        Observed trials.
    indices : ParameterIndex, optional
        Slot assignment; cells are the distinct combinations of slots over
        all families. None gives a single cell.
    params : dict, pd.Series or ParameterVector, optional
        Parameters for predicted rows (e.g. ``fit.params``). Without them only
        observed rows are returned.
    quantiles : sequence of float
        Conditional RT quantiles, default ``(0.1, 0.3, 0.5, 0.7, 0.9)``.
    method : {"cdf", "simulate"}
        How predictions are computed.
    n_sim : int
        Simulated trials per cell for ``method="simulate"``.
    rng : int, np.random.Generator or None
        Random source for ``method="simulate"``.
    dt, t_max : float
        Simulator step size and RT limit.
    density : WienerDensityProtocol, optional
        Density oracle for ``method="cdf"``.

    Returns
    -------
    pd.DataFrame
        Long format, one row per cell, choice, source and quantile, with
        columns ``cell``, ``{family}_slot`` for every family, ``choice``,
        ``source`` (``"observed"``/``"predicted"``), ``n_resp`` (observed
        rows only), ``p_resp``, ``rt_p`` and ``rt_q``. Choices with no
        responses in a cell have ``p_resp == 0`` and ``rt_q`` NaN.
    """
    defaults = get_default_summary_config()
    quantiles = defaults["quantiles"] if quantiles is None else quantiles
    method = defaults["method"] if method is None else method
    n_sim = defaults["n_sim"] if n_sim is None else n_sim

    trials = as_trials(trials)
    if indices is None:
        indices = ParameterIndex.single(len(trials))
    if len(indices) != len(trials):
        raise InputError(
            f"Index covers {len(indices)} trials but {len(trials)} trials were given"
        )

    frames = [observed_summary(trials, indices, quantiles)]
    if params is not None:
        frames.append(
            predicted_summary(
                indices, params, quantiles, method=method, n_sim=n_sim,
                rng=rng, dt=dt, t_max=t_max, density=density,
            )
        )
    out = pd.concat(frames, ignore_index=True)
    out["n_resp"] = out["n_resp"].astype("Int64")
    columns = ["cell"] + [f"{family}_slot" for family in FAMILIES] + [
        "choice", "source", "n_resp", "p_resp", "rt_p", "rt_q",
    ]
    return out[columns]
