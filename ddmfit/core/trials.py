"""Validated container for observed (or simulated) two-choice trials."""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ddmfit.exceptions import InputError

_CHOICE_LABELS = {"upper": True, "lower": False, 1: True, -1: False}


def _label_to_upper(label):
    if isinstance(label, str):
        label = label.strip().lower()
    try:
        return _CHOICE_LABELS.get(label)
    except TypeError:  # unhashable label
        return None


def normalize_choices(choices) -> np.ndarray:
    """Map choice labels to a boolean "upper boundary" array.

    Accepts ``"upper"``/``"lower"`` (case-insensitive) and the ``{-1, 1}``
    coding used by the simulators.

    Raises:
        InputError: If any label is not recognized.
    """
    labels = np.asarray(choices, dtype=object).ravel()
    mapped = [_label_to_upper(c) for c in labels]
    bad = [i for i, m in enumerate(mapped) if m is None]
    if bad:
        raise InputError(
            f"Unrecognized choice label {labels[bad[0]]!r} at row {bad[0]} "
            f"({len(bad)} invalid rows). Use 'upper'/'lower' or 1/-1."
        )
    return np.array(mapped, dtype=bool)


def choice_labels(upper: np.ndarray) -> np.ndarray:
    """Inverse of :func:`normalize_choices` using the string labels."""
    return np.where(np.asarray(upper, dtype=bool), "upper", "lower").astype(object)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class Trials:
    """Response times and choices of a set of trials.

    Attributes
    ----------
    rt : np.ndarray
        Response times in seconds (read-only).
    upper : np.ndarray
        ``True`` where the upper boundary was chosen (read-only).
    data : pd.DataFrame | None
        The table the trials came from, kept so that categorical columns can
        be used to resolve parameter indices.
    """

    rt: np.ndarray
    upper: np.ndarray
    data: pd.DataFrame | None = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "rt", _readonly(np.asarray(self.rt, dtype=float)))
        object.__setattr__(self, "upper", _readonly(np.asarray(self.upper, dtype=bool)))
        if self.rt.ndim != 1 or self.upper.ndim != 1:
            raise InputError("rt and choice must be one-dimensional")
        if self.rt.shape != self.upper.shape:
            raise InputError(
                f"rt has {self.rt.shape[0]} entries but choice has {self.upper.shape[0]}"
            )
        if self.data is not None and len(self.data) != self.rt.shape[0]:
            raise InputError(
                f"Trial table has {len(self.data)} rows but {self.rt.shape[0]} RTs"
            )

    def __len__(self) -> int:
        return self.rt.shape[0]

    @property
    def choice(self) -> np.ndarray:
        """Choices as ``"upper"``/``"lower"`` labels."""
        return choice_labels(self.upper)

    def subset(self, rows) -> "Trials":
        """Return the trials selected by a boolean mask or positional indices."""
        rows = np.asarray(rows)
        if rows.dtype == bool and rows.shape != self.rt.shape:
            raise InputError(
                f"Boolean mask has length {rows.shape[0]}, expected {len(self)}"
            )
        data = None
        if self.data is not None:
            data = self.data.iloc[rows].reset_index(drop=True)
        return Trials(rt=self.rt[rows], upper=self.upper[rows], data=data)

    def to_frame(self) -> pd.DataFrame:
        """Trial table with normalized ``rt`` and ``choice`` columns."""
        frame = self.data.copy() if self.data is not None else pd.DataFrame(index=range(len(self)))
        frame["rt"] = self.rt
        frame["choice"] = self.choice
        return frame


def as_trials(data, rt_col: str = "rt", choice_col: str = "choice") -> Trials:
    """Validate trial data and wrap it in a :class:`Trials` container.

    Parameters
    ----------
    data : Trials, pd.DataFrame or dict
        Trial table with at least an RT and a choice column. A ``Trials``
        instance is returned unchanged.
    rt_col, choice_col : str
        Names of the RT and choice columns.

    Returns
    -------
    Trials

    Raises
    ------
    InputError
        On missing columns, empty input, non-positive or non-finite RTs,
        or unknown choice labels.
    """
    if isinstance(data, Trials):
        return data
    if isinstance(data, dict):
        data = pd.DataFrame(data)
    if not isinstance(data, pd.DataFrame):
        raise InputError(
            f"Trial data must be a DataFrame, dict or Trials, got {type(data).__name__}"
        )

    missing_cols = [col for col in (rt_col, choice_col) if col not in data.columns]
    if missing_cols:
        raise InputError(f"Missing required columns: {missing_cols}")
    if len(data) == 0:
        raise InputError("No trials supplied")

    rt = pd.to_numeric(data[rt_col], errors="coerce").to_numpy(dtype=float)
    bad_rt = ~np.isfinite(rt) | (rt <= 0)
    if np.any(bad_rt):
        first = int(np.flatnonzero(bad_rt)[0])
        raise InputError(
            f"Response times must be positive and finite; row {first} has "
            f"{data[rt_col].iloc[first]!r} ({int(bad_rt.sum())} invalid rows)"
        )
    upper = normalize_choices(data[choice_col].to_numpy())
    return Trials(rt=rt, upper=upper, data=data.reset_index(drop=True))
