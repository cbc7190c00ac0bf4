"""Maximum-likelihood fitting of the Wiener diffusion model.

The free parameter vector is built from the distinct slots of the free
families in a :class:`~ddmfit.core.indices.ParameterIndex`; non-free
families are held at constants. Minimization uses ``scipy.optimize.minimize``
with box bounds, plus linear constraints on ``w``/``sw`` when the bias range
is estimated.
"""

import logging

import numpy as np
from scipy.optimize import minimize

from ddmfit.config import get_default_fit_config, model_config
from ddmfit.core.indices import FAMILIES, ParameterIndex
from ddmfit.core.parameters import ParameterVector, format_name
from ddmfit.core.trials import as_trials
from ddmfit.exceptions import (
    DegenerateDataError,
    InputError,
    InvalidParameterError,
)
from ddmfit.fitting.results import FitResult
from ddmfit.likelihood.nll import resolve_density, dataset_nll

logger = logging.getLogger(__name__)

# scipy methods that accept the ``constraints`` argument
CONSTRAINED_METHODS = ("SLSQP", "trust-constr", "COBYLA", "COBYQA")


def free_families(fit_sv: bool = False, fit_sw: bool = False, fit_st0: bool = False) -> list[str]:
    """Families estimated by a fit with the given variability flags."""
    config = model_config["wiener"]
    flags = {"sv": fit_sv, "sw": fit_sw, "st0": fit_st0}
    return list(config["free_by_default"]) + [
        family for family in config["variability_params"] if flags[family]
    ]


def _slot_min_rt(trials, index: ParameterIndex, slot: int) -> float:
    return float(trials.rt[index["t0"] == slot].min())


def parameter_bounds(trials, index: ParameterIndex, families) -> dict:
    """Box bounds per ``(family, slot)`` for the given families.

    ``t0`` is capped just below the fastest RT of each of its slots.

    Raises:
        DegenerateDataError: If a ``t0`` slot has no room below its fastest RT.
    """
    config = model_config["wiener"]
    margin = config["t0_margin"]
    bounds = {}
    for family in families:
        low, family_high = config["param_bounds"][family]
        for slot in index.slots(family):
            slot = int(slot)
            high = family_high
            if family == "t0":
                high = min(high, _slot_min_rt(trials, index, slot) - margin)
                if high < low:
                    raise DegenerateDataError(
                        f"Fastest RT in slot {format_name('t0', slot)} is below the "
                        f"minimum residual time margin ({margin})"
                    )
            bounds[(family, slot)] = (low, high)
    return bounds


def initial_parameters(
    trials, index: ParameterIndex, families, init_par=None
) -> ParameterVector:
    """Complete a (possibly partial) starting vector.

    Free families without a user value start at the configured initial
    values (``t0`` at a fraction of its slot's fastest RT); other families
    are held at the user's value or at their configured constant.
    """
    config = model_config["wiener"]
    user = ParameterVector.from_mapping(init_par) if init_par is not None else ParameterVector()
    values = {}
    for family in FAMILIES:
        for slot in index.slots(family):
            slot = int(slot)
            given = user.get(family, slot)
            if given is not None:
                values[(family, slot)] = given
            elif family not in families:
                values[(family, slot)] = config["default_params"][family]
            elif family == "t0":
                values[(family, slot)] = (
                    config["init_t0_fraction_of_min_rt"] * _slot_min_rt(trials, index, slot)
                )
            else:
                values[(family, slot)] = config["init_params"][family]
    return ParameterVector(values)


def _check_init_slots(init_par, index: ParameterIndex) -> None:
    if init_par is None:
        return
    for family, slot in ParameterVector.from_mapping(init_par).keys:
        if slot not in set(int(s) for s in index.slots(family)):
            raise DegenerateDataError(
                f"Starting value given for {format_name(family, slot)} but no trial "
                f"is assigned to that slot"
            )


def _check_choices_per_drift(trials, index: ParameterIndex) -> None:
    for slot in index.slots("v"):
        upper = trials.upper[index["v"] == slot]
        if upper.all() or not upper.any():
            label = "upper" if upper.all() else "lower"
            raise DegenerateDataError(
                f"Every trial in drift slot {format_name('v', slot)} chose '{label}'; "
                f"the drift rate of that slot is not identifiable"
            )


def _tighten_bias_bounds(bounds: dict, params: ParameterVector, index: ParameterIndex) -> None:
    """Shrink ``w`` bounds so a fixed ``sw`` keeps the bias range inside (0, 1)."""
    pairs = dict.fromkeys(zip(index["w"].tolist(), index["sw"].tolist()))
    for w_slot, sw_slot in pairs:
        key = ("w", int(w_slot))
        if key not in bounds:
            continue
        half = params.get("sw", sw_slot, 0.0) / 2
        low, high = bounds[key]
        bounds[key] = (max(low, half), min(high, 1.0 - half))


def _bias_constraint(free_keys: list, index: ParameterIndex, params: ParameterVector):
    """Linear constraints ``w - sw/2 >= 0`` and ``1 - w - sw/2 >= 0``."""
    position = {key: i for i, key in enumerate(free_keys)}
    pairs = list(dict.fromkeys(zip(index["w"].tolist(), index["sw"].tolist())))
    n_free = len(free_keys)
    rows, offsets = [], []
    for w_slot, sw_slot in pairs:
        w_key, sw_key = ("w", int(w_slot)), ("sw", int(sw_slot))
        lower_row = np.zeros(n_free)
        upper_row = np.zeros(n_free)
        lower_offset = 0.0
        upper_offset = 1.0
        if w_key in position:
            lower_row[position[w_key]] = 1.0
            upper_row[position[w_key]] = -1.0
        else:
            lower_offset += params.get(*w_key)
            upper_offset -= params.get(*w_key)
        if sw_key in position:
            lower_row[position[sw_key]] = -0.5
            upper_row[position[sw_key]] = -0.5
        else:
            lower_offset -= params.get(*sw_key) / 2
            upper_offset -= params.get(*sw_key) / 2
        rows.extend([lower_row, upper_row])
        offsets.extend([lower_offset, upper_offset])
    matrix = np.array(rows)
    offsets = np.array(offsets)

    return {
        "type": "ineq",
        "fun": lambda x: matrix @ x + offsets,
        "jac": lambda x: matrix,
    }


def fit_wiener(
    trials,
    indices: ParameterIndex | None = None,
    fit_sv: bool = False,
    fit_sw: bool = False,
    fit_st0: bool = False,
    init_par=None,
    return_nll: bool = False,
    density=None,
    method: str | None = None,
    maxiter: int | None = None,
    tol: float | None = None,
) -> FitResult | float:
    """Fit the Wiener diffusion model by maximum likelihood.

    Parameters
    ----------
    trials : Trials or pd.DataFrame
        Observed trials with ``rt`` and ``choice``.
    indices : ParameterIndex, optional
        Slot assignment of every trial; None uses a single slot per family.
    fit_sv, fit_sw, fit_st0 : bool
        Estimate the drift, bias and residual-time variabilities. When False
        the family is held at its ``init_par`` value, or 0.
    init_par : dict, pd.Series or ParameterVector, optional
        Starting values (or, with ``return_nll=True``, the parameters to
        evaluate). May be partial; missing entries use the configured
        defaults.
    return_nll : bool
        Skip optimization and return the NLL of ``trials`` at the completed
        ``init_par``. This is how a fitted vector is scored on held-out data.
    density : WienerDensityProtocol, optional
        Density oracle; defaults to :class:`~ddmfit.likelihood.NavarroFussDensity`.
    method : str, optional
        ``scipy.optimize.minimize`` method. Defaults to ``"L-BFGS-B"``, or
        ``"SLSQP"`` when ``fit_sw`` is set.
    maxiter : int, optional
        Iteration cap.
    tol : float, optional
        Optimizer tolerance.

    Returns
    -------
    FitResult or float
        The fit, or the NLL when ``return_nll`` is True.

    Raises
    ------
    InputError
        Malformed trials, or an index that does not match the trials.
    InvalidParameterError
        Starting values outside the bounds or violating ``w +/- sw/2``.
    DegenerateDataError
        Fewer trials than free parameters, a starting value for an unused
        slot, or a drift slot whose trials all chose the same boundary.
    DensityDomainError
        The density vanished for some trial during evaluation.

    Examples
    --------
    >>> from ddmfit.basic_simulators import simulate
    >>> data = simulate(v=1.0, a=1.5, w=0.5, t0=0.3, n_trials=500, rng=1)
    >>> fit = fit_wiener(data)
    >>> fit.free_parameters
    ('a[1]', 'v[1]', 'w[1]', 't0[1]')
    """
    trials = as_trials(trials)
    density = resolve_density(density)
    if indices is None:
        indices = ParameterIndex.single(len(trials))
    if not isinstance(indices, ParameterIndex):
        raise InputError(
            f"indices must be a ParameterIndex (see resolve_indices), got {type(indices).__name__}"
        )
    if len(indices) != len(trials):
        raise InputError(
            f"Index covers {len(indices)} trials but {len(trials)} trials were given"
        )

    fit_config = get_default_fit_config()
    families = free_families(fit_sv, fit_sw, fit_st0)

    if return_nll:
        params = initial_parameters(trials, indices, families, init_par)
        params.check_feasible(indices)
        return dataset_nll(trials, indices, params, density=density)

    _check_init_slots(init_par, indices)
    start = initial_parameters(trials, indices, families, init_par)
    bounds = parameter_bounds(trials, indices, families)
    free_keys = list(bounds)
    n_free = len(free_keys)

    if len(trials) < n_free:
        raise DegenerateDataError(
            f"{len(trials)} trials cannot identify {n_free} free parameters"
        )
    _check_choices_per_drift(trials, indices)

    for key, (low, high) in bounds.items():
        value = start.get(*key)
        if not low <= value <= high:
            raise InvalidParameterError(
                f"Starting value {format_name(*key)}={value:.6g} is outside its "
                f"bounds [{low:.6g}, {high:.6g}]"
            )
    start.check_feasible(indices)

    if not fit_sw:
        _tighten_bias_bounds(bounds, start, indices)

    if method is None:
        method = "SLSQP" if fit_sw else "L-BFGS-B"
    constraints = ()
    if fit_sw:
        if method in CONSTRAINED_METHODS:
            constraints = [_bias_constraint(free_keys, indices, start)]
        else:
            logger.warning(
                "Method %s does not take constraints; infeasible w/sw points are rejected",
                method,
            )
    maxiter = fit_config["maxiter"] if maxiter is None else maxiter
    tol = fit_config["tol"] if tol is None else tol

    n_evaluations = 0
    best_seen = {"nll": np.inf, "x": None}

    def objective(x: np.ndarray) -> float:
        nonlocal n_evaluations
        n_evaluations += 1
        params = start.replace(dict(zip(free_keys, x)))
        try:
            nll = dataset_nll(trials, indices, params, density=density)
        except InvalidParameterError:
            return np.inf
        if nll < best_seen["nll"]:
            best_seen.update(nll=nll, x=np.array(x, dtype=float))
        return nll

    x0 = np.array([start.get(*key) for key in free_keys])
    logger.info(
        "Fitting %d free parameters to %d trials (method=%s)", n_free, len(trials), method
    )
    logger.debug("Starting point: %s", start)

    res = minimize(
        objective,
        x0=x0,
        method=method,
        bounds=[bounds[key] for key in free_keys],
        constraints=constraints,
        tol=tol,
        options={"maxiter": maxiter},
    )

    x = np.asarray(res.x, dtype=float)
    nll = float(res.fun)
    converged = bool(res.success) and np.isfinite(nll)
    if not converged and best_seen["nll"] < nll:
        # the last iterate is not necessarily the best point visited
        x, nll = best_seen["x"], float(best_seen["nll"])
    best = start.replace(dict(zip(free_keys, x)))
    message = str(getattr(res, "message", ""))
    n_iterations = int(getattr(res, "nit", 0) or 0)

    if converged:
        logger.info("Fit converged: nll=%.4f after %d iterations", nll, n_iterations)
    else:
        logger.warning(
            "Fit did not converge after %d iterations (nll=%.4f): %s",
            n_iterations,
            nll,
            message,
        )

    return FitResult(
        params=best,
        nll=nll,
        converged=converged,
        n_iterations=n_iterations,
        n_evaluations=n_evaluations,
        message=message,
        free_parameters=tuple(format_name(*key) for key in free_keys),
        n_parameters=n_free,
        n_trials=len(trials),
        method=method,
    )
