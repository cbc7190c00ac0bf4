"""
Stochastic path simulation of the Wiener diffusion model.

Evidence starts at 0 between a lower boundary at ``-w'a`` and an upper
boundary at ``(1 - w')a``. Every step of length ``dt`` adds a draw from
``Normal(v' dt, sqrt(dt))`` until the evidence leaves the band or the clock,
which starts at the residual time ``t0'``, would pass ``t_max``.

Trial-to-trial variability:
    v'  ~ Normal(v, sv)
    w'  ~ Uniform(max(0, w - sw/2), min(1, w + sw/2))
    t0' ~ Uniform(t0, t0 + st0)

The Euler scheme overshoots the boundaries by up to one step, so RTs come out
slightly long and choice probabilities slightly biased. The error grows with
``dt`` relative to ``a**2``; keep ``dt <= 0.01`` (the default is 0.001).

All randomness comes from the ``rng`` argument (a seed or a
``numpy.random.Generator``); module-level random state is never used.
"""

import logging
from typing import NamedTuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from ddmfit.exceptions import InvalidParameterError, SimulationError
from ddmfit.support_utils import make_rng

logger = logging.getLogger(__name__)

# Increments drawn per chunk by simulate_trial()
_CHUNK_SIZE = 512
# Slack when converting a time budget into a whole number of steps
_STEP_SLACK = 1e-9

NO_DECISION_MODES = ("drop", "keep", "error")


class TrialOutcome(NamedTuple):
    """Result of one simulated trial.

    ``choice`` is ``"upper"``, ``"lower"`` or ``None`` when no boundary was
    reached before ``t_max`` (``rt`` is then NaN). ``path`` holds the
    ``(time, evidence)`` samples when requested, else None.
    """

    choice: str | None
    rt: float
    path: list[tuple[float, float]] | None = None


def validate_simulation_parameters(v, a, w, t0, dt, t_max, sv, sw, st0) -> None:
    """Reject parameter values the simulator cannot use.

    Raises:
        InvalidParameterError: Naming the offending parameter.
    """
    checks = [
        ("dt", dt, lambda x: x > 0, "must be positive"),
        ("a", a, lambda x: x > 0, "must be positive"),
        ("w", w, lambda x: (x >= 0) & (x <= 1), "must lie in [0, 1]"),
        ("t0", t0, lambda x: x >= 0, "must be non-negative"),
        ("sv", sv, lambda x: x >= 0, "must be non-negative"),
        ("sw", sw, lambda x: x >= 0, "must be non-negative"),
        ("st0", st0, lambda x: x >= 0, "must be non-negative"),
    ]
    for name, value, ok, message in checks:
        value = np.asarray(value, dtype=float)
        if np.any(np.isnan(value)) or not np.all(ok(value)):
            raise InvalidParameterError(f"{name} {message}, got {value!r}")
    v = np.asarray(v, dtype=float)
    if not np.all(np.isfinite(v)):
        raise InvalidParameterError(f"v must be finite, got {v!r}")
    if not np.all(np.asarray(t_max, dtype=float) > np.asarray(t0, dtype=float)):
        raise InvalidParameterError(
            f"t_max ({t_max!r}) must exceed the residual time t0 ({t0!r})"
        )


def draw_trial_parameters(v, w, t0, sv, sw, st0, rng: np.random.Generator, size=None):
    """Draw the effective drift, bias and residual time of each trial.

    Families without variability are returned unchanged and consume no
    random numbers.
    """
    v_eff = v if np.all(np.asarray(sv) == 0) else rng.normal(v, sv, size=size)
    if np.all(np.asarray(sw) == 0):
        w_eff = w
    else:
        w_lo = np.maximum(0.0, np.asarray(w) - np.asarray(sw) / 2)
        w_hi = np.minimum(1.0, np.asarray(w) + np.asarray(sw) / 2)
        w_eff = rng.uniform(w_lo, w_hi, size=size)
    if np.all(np.asarray(st0) == 0):
        t0_eff = t0
    else:
        t0_eff = rng.uniform(t0, np.asarray(t0) + np.asarray(st0), size=size)
    return v_eff, w_eff, t0_eff


def _max_steps(t0_eff, dt, t_max):
    """Number of whole steps that fit between t0' and t_max."""
    with np.errstate(invalid="ignore"):
        steps = np.floor((np.asarray(t_max, dtype=float) - t0_eff) / dt + _STEP_SLACK)
    return np.where(np.isinf(t_max), np.inf, np.maximum(steps, 0.0))


def simulate_trial(
    v: float,
    a: float,
    w: float,
    t0: float,
    dt: float = 0.001,
    t_max: float = np.inf,
    sv: float = 0.0,
    sw: float = 0.0,
    st0: float = 0.0,
    rng=None,
    return_path: bool = False,
) -> TrialOutcome:
    """Simulate a single trial.

    Parameters
    ----------
    v, a, w, t0 : float
        Drift rate, boundary separation, relative start point (bias) and
        residual time.
    dt : float
        Step size in seconds.
    t_max : float
        Upper limit of the RT (residual time included). ``np.inf`` disables
        the limit.
    sv, sw, st0 : float
        Drift SD, bias range and residual-time range across trials.
    rng : int, np.random.Generator or None
        Random source.
    return_path : bool
        Keep the ``(time, evidence)`` samples of the trial.

    Returns
    -------
    TrialOutcome
        The boundary crossed first and the RT (``t0'`` plus the crossing
        time), or ``(None, nan)`` when ``t_max`` came first.
    """
    validate_simulation_parameters(v, a, w, t0, dt, t_max, sv, sw, st0)
    rng = make_rng(rng)
    v_eff, w_eff, t0_eff = (
        float(x) for x in draw_trial_parameters(v, w, t0, sv, sw, st0, rng)
    )

    upper = (1.0 - w_eff) * a
    lower = -w_eff * a
    max_steps = float(_max_steps(t0_eff, dt, t_max))
    sqrt_dt = np.sqrt(dt)

    evidence = 0.0
    steps = 0
    path = [(t0_eff, 0.0)] if return_path else None

    while steps < max_steps:
        # Increments are drawn in chunks; only the state at the first
        # crossing matters, the rest of the chunk is discarded.
        n = int(min(_CHUNK_SIZE, max_steps - steps))
        trajectory = evidence + np.cumsum(rng.normal(v_eff * dt, sqrt_dt, size=n))
        crossed = np.flatnonzero((trajectory > upper) | (trajectory < lower))
        stop = crossed[0] + 1 if crossed.size else n
        if return_path:
            times = t0_eff + (steps + np.arange(1, stop + 1)) * dt
            path.extend(zip(times.tolist(), trajectory[:stop].tolist()))
        steps += stop
        evidence = float(trajectory[stop - 1])
        if crossed.size:
            choice = "upper" if evidence > upper else "lower"
            return TrialOutcome(choice, t0_eff + steps * dt, path)

    return TrialOutcome(None, np.nan, path)


def simulate(
    v,
    a,
    w,
    t0,
    n_trials: int,
    dt: float = 0.001,
    t_max: float = np.inf,
    sv=0.0,
    sw=0.0,
    st0=0.0,
    rng=None,
    no_decision: str = "drop",
) -> pd.DataFrame:
    """Simulate a batch of trials.

    Follows the same scheme as :func:`simulate_trial` but advances every
    still-undecided trial together, one step at a time. Parameters may be
    scalars or arrays of length ``n_trials`` (one value per trial).

    Parameters
    ----------
    v, a, w, t0, sv, sw, st0 : float or np.ndarray
        Model parameters, broadcast to ``n_trials``.
    n_trials : int
        Number of trials to simulate.
    dt, t_max : float
        Step size and RT limit, as in :func:`simulate_trial`.
    rng : int, np.random.Generator or None
        Random source.
    no_decision : {"drop", "keep", "error"}
        What to do with trials that reach ``t_max`` without a decision:
        drop them (logging how many), keep them with ``choice`` None and
        ``rt`` NaN, or raise ``SimulationError``.

    Returns
    -------
    pd.DataFrame
        Columns ``rt`` and ``choice`` (``"upper"``/``"lower"``, or None for
        kept undecided trials). With ``no_decision="keep"`` row ``i`` is
        trial ``i``.
    """
    if no_decision not in NO_DECISION_MODES:
        raise ValueError(
            f"no_decision must be one of {NO_DECISION_MODES}, got {no_decision!r}"
        )
    if n_trials < 0:
        raise ValueError(f"n_trials must be non-negative, got {n_trials}")
    validate_simulation_parameters(v, a, w, t0, dt, t_max, sv, sw, st0)
    rng = make_rng(rng)

    v, a, w, t0, sv, sw, st0 = (
        np.broadcast_to(np.asarray(x, dtype=float), (n_trials,)).copy()
        for x in (v, a, w, t0, sv, sw, st0)
    )
    v_eff, w_eff, t0_eff = (
        np.broadcast_to(x, (n_trials,)).astype(float)
        for x in draw_trial_parameters(v, w, t0, sv, sw, st0, rng, size=n_trials)
    )

    upper = (1.0 - w_eff) * a
    lower = -w_eff * a
    max_steps = _max_steps(t0_eff, dt, t_max)
    sqrt_dt = np.sqrt(dt)

    evidence = np.zeros(n_trials)
    steps = np.zeros(n_trials)
    choice = np.full(n_trials, None, dtype=object)
    active = steps < max_steps

    while np.any(active):
        idx = np.flatnonzero(active)
        evidence[idx] += rng.normal(v_eff[idx] * dt, sqrt_dt)
        steps[idx] += 1
        hit_upper = evidence[idx] > upper[idx]
        hit_lower = evidence[idx] < lower[idx]
        choice[idx[hit_upper]] = "upper"
        choice[idx[hit_lower]] = "lower"
        active[idx] = ~(hit_upper | hit_lower) & (steps[idx] < max_steps[idx])

    decided = choice != None  # noqa: E711
    rt = np.where(decided, t0_eff + steps * dt, np.nan)
    out = pd.DataFrame({"rt": rt, "choice": choice})

    n_undecided = int((~decided).sum())
    if n_undecided:
        if no_decision == "error":
            raise SimulationError(
                f"{n_undecided} of {n_trials} trials reached t_max={t_max} without a decision"
            )
        if no_decision == "drop":
            logger.warning(
                "Dropped %d of %d trials without a decision before t_max=%g",
                n_undecided,
                n_trials,
                t_max,
            )
            out = out[decided].reset_index(drop=True)
    return out


def simulate_design(
    design: pd.DataFrame,
    n_trials=None,
    dt: float = 0.001,
    t_max: float = np.inf,
    rng=None,
    no_decision: str = "drop",
    progress: bool = False,
) -> pd.DataFrame:
    """Simulate every condition of a design table.

    Parameters
    ----------
    design : pd.DataFrame
        One row per condition with columns ``v``, ``a``, ``w``, ``t0`` and
        optionally ``sv``, ``sw``, ``st0`` and ``n_trials``. Any other column
        (e.g. condition labels) is copied to the simulated trials so it can be
        used for index resolution.
    n_trials : int, optional
        Trials per condition; overrides the ``n_trials`` column.
    dt, t_max, no_decision :
        As in :func:`simulate`.
    rng : int, np.random.Generator or None
        Random source, shared across conditions in row order.
    progress : bool
        Show a tqdm progress bar over conditions.

    Returns
    -------
    pd.DataFrame
        The design columns followed by ``rt`` and ``choice``.
    """
    required_cols = ["v", "a", "w", "t0"]
    missing_cols = [col for col in required_cols if col not in design.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")
    if n_trials is None and "n_trials" not in design.columns:
        raise ValueError("Give n_trials or an 'n_trials' column in the design")

    rng = make_rng(rng)
    frames = []
    rows = design.reset_index(drop=True).iterrows()
    for _, row in tqdm(
        rows, total=len(design), desc="Simulating conditions", unit="condition",
        disable=not progress,
    ):
        n = int(n_trials if n_trials is not None else row["n_trials"])
        sim = simulate(
            v=row["v"],
            a=row["a"],
            w=row["w"],
            t0=row["t0"],
            n_trials=n,
            dt=dt,
            t_max=t_max,
            sv=row.get("sv", 0.0),
            sw=row.get("sw", 0.0),
            st0=row.get("st0", 0.0),
            rng=rng,
            no_decision=no_decision,
        )
        labels = row.drop(labels=["rt", "choice"], errors="ignore")
        block = pd.DataFrame({col: [labels[col]] * len(sim) for col in labels.index})
        frames.append(pd.concat([block, sim], axis=1))
        logger.debug("Simulated %d trials for condition %s", len(sim), row.to_dict())

    if not frames:
        return pd.DataFrame(columns=list(design.columns) + ["rt", "choice"])
    return pd.concat(frames, ignore_index=True)
