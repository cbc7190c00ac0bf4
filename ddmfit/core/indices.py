"""Map trials to parameter slots.

Every trial is assigned one integer slot per parameter family. Trials that
share a slot share one parameter value, so the distinct slots of a family are
its free parameters. Slots come either from categorical columns (encoded in
first-appearance order) or are supplied directly.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ddmfit.exceptions import InputError

FAMILIES = ("a", "v", "w", "t0", "sv", "sw", "st0")

# Keyword of resolve_indices() -> parameter family
INDEX_ARGUMENTS = {
    "bound_index": "a",
    "drift_index": "v",
    "bias_index": "w",
    "resid_index": "t0",
    "sv_index": "sv",
    "sw_index": "sw",
    "st0_index": "st0",
}


def encode_groups(*columns) -> tuple[np.ndarray, list[tuple]]:
    """Encode combinations of categorical vectors as integer codes.

    Codes start at 1 and follow the order in which each distinct combination
    first appears, independent of how the categories are declared or sorted.

    Args:
        *columns: One or more equally long categorical vectors.

    Returns:
        ``(codes, levels)`` where ``codes`` is an int array with one code per
        row and ``levels[k - 1]`` is the combination encoded as ``k``.

    Raises:
        InputError: If no column is given, lengths differ or values are missing.

    Example:
        >>> codes, levels = encode_groups(["hard", "easy", "hard"], ["x", "x", "y"])
        >>> codes
        array([1, 2, 3])
        >>> levels
        [('hard', 'x'), ('easy', 'x'), ('hard', 'y')]
    """
    if not columns:
        raise InputError("encode_groups() needs at least one column")
    arrays = [np.asarray(col, dtype=object).ravel() for col in columns]
    n = arrays[0].shape[0]
    for i, arr in enumerate(arrays):
        if arr.shape[0] != n:
            raise InputError(
                f"Grouping column {i} has {arr.shape[0]} entries, expected {n}"
            )
        missing = pd.isna(arr)
        if np.any(missing):
            raise InputError(
                f"Grouping column {i} has missing values (first at row "
                f"{int(np.flatnonzero(missing)[0])})"
            )

    lookup: dict[tuple, int] = {}
    levels: list[tuple] = []
    codes = np.empty(n, dtype=np.int64)
    for row, combo in enumerate(zip(*arrays)):
        code = lookup.get(combo)
        if code is None:
            levels.append(combo)
            code = len(levels)
            lookup[combo] = code
        codes[row] = code
    return codes, levels


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ParameterIndex:
    """Per-trial slot assignments for every parameter family.

    Attributes
    ----------
    slots_by_family : dict[str, np.ndarray]
        Family name -> int array of slot labels, one per trial.
    levels : dict[str, list[tuple] | None]
        Family name -> categories of each slot (``levels[f][k - 1]`` for
        slot ``k``) when the slots were derived from categories, else None.
    sources : dict[str, tuple[str, ...] | None]
        Column names the slots were derived from, where applicable.
    """

    slots_by_family: dict
    levels: dict = field(default_factory=dict)
    sources: dict = field(default_factory=dict)

    def __post_init__(self):
        slots = {}
        n = None
        for family in FAMILIES:
            if family not in self.slots_by_family:
                raise InputError(f"No slots given for family '{family}'")
            arr = np.asarray(self.slots_by_family[family])
            if n is None:
                n = arr.shape[0]
            if arr.ndim != 1 or arr.shape[0] != n:
                raise InputError(
                    f"Slots of family '{family}' have shape {arr.shape}, expected ({n},)"
                )
            slots[family] = _readonly(arr.astype(np.int64))
        unknown = set(self.slots_by_family) - set(FAMILIES)
        if unknown:
            raise InputError(f"Unknown parameter families: {sorted(unknown)}")
        object.__setattr__(self, "slots_by_family", slots)
        object.__setattr__(
            self, "levels", {f: self.levels.get(f) for f in FAMILIES}
        )
        object.__setattr__(
            self, "sources", {f: self.sources.get(f) for f in FAMILIES}
        )

    @classmethod
    def single(cls, n_trials: int) -> "ParameterIndex":
        """Index placing every trial in slot 1 for every family."""
        ones = np.ones(n_trials, dtype=np.int64)
        return cls({family: ones for family in FAMILIES})

    @property
    def n_trials(self) -> int:
        return self.slots_by_family["a"].shape[0]

    def __len__(self) -> int:
        return self.n_trials

    def __getitem__(self, family: str) -> np.ndarray:
        try:
            return self.slots_by_family[family]
        except KeyError:
            raise KeyError(
                f"Unknown parameter family '{family}'. Known families: {FAMILIES}"
            ) from None

    def slots(self, family: str) -> np.ndarray:
        """Distinct slot labels of ``family`` in first-appearance order."""
        return pd.unique(self[family])

    def n_slots(self, family: str) -> int:
        return len(self.slots(family))

    def parameter_names(self, families=FAMILIES) -> list[str]:
        """Names ``"family[slot]"`` of every slot of the given families."""
        return [
            f"{family}[{slot}]" for family in families for slot in self.slots(family)
        ]

    def decode(self, family: str, slots=None) -> list[tuple]:
        """Map slot labels back to the categories they were derived from.

        Args:
            family: Parameter family.
            slots: Slot labels to decode; defaults to every trial's slot.

        Raises:
            InputError: If the family's slots were not derived from categories.
        """
        levels = self.levels[family]
        if levels is None:
            raise InputError(
                f"Slots of family '{family}' were not derived from categories"
            )
        slots = self[family] if slots is None else np.asarray(slots).ravel()
        return [levels[int(s) - 1] for s in slots]

    def subset(self, rows) -> "ParameterIndex":
        """Index restricted to a subset of trials (mask or positions).

        Slot labels and category tables are kept, so parameters fitted on one
        subset apply unchanged to another.
        """
        rows = np.asarray(rows)
        return ParameterIndex(
            {f: s[rows] for f, s in self.slots_by_family.items()},
            levels=dict(self.levels),
            sources=dict(self.sources),
        )

    def cells(self) -> tuple[np.ndarray, pd.DataFrame]:
        """Group trials by their full combination of slots.

        Returns:
            ``(cell_codes, table)``: a 1-based cell code per trial, and a table
            with one row per cell (first-appearance order) holding its slots.
        """
        codes, levels = encode_groups(*(self.slots_by_family[f] for f in FAMILIES))
        table = pd.DataFrame(
            [tuple(int(s) for s in combo) for combo in levels],
            columns=[f"{family}_slot" for family in FAMILIES],
        )
        table.insert(0, "cell", np.arange(1, len(levels) + 1))
        return codes, table


def _is_name_list(grouping) -> bool:
    return (
        isinstance(grouping, (list, tuple))
        and len(grouping) > 0
        and all(isinstance(item, str) for item in grouping)
    )


def _is_vector_list(grouping) -> bool:
    return (
        isinstance(grouping, (list, tuple))
        and len(grouping) > 0
        and all(
            isinstance(item, (np.ndarray, pd.Series, pd.Categorical, list, tuple))
            for item in grouping
        )
    )


def _explicit_slots(values: np.ndarray, family: str) -> np.ndarray:
    if values.dtype.kind == "f":
        if not np.all(np.isfinite(values)) or not np.all(values == np.round(values)):
            raise InputError(
                f"Slot indices for family '{family}' must be whole numbers"
            )
    bad = values <= 0
    if np.any(bad):
        raise InputError(
            f"Slot indices for family '{family}' must be positive integers; "
            f"row {int(np.flatnonzero(bad)[0])} has {values[bad][0]!r}"
        )
    return values.astype(np.int64)


def _resolve_one(grouping, family: str, data: pd.DataFrame | None, n: int):
    """Return ``(slots, levels, sources)`` for one family."""
    if grouping is None:
        return np.ones(n, dtype=np.int64), None, None

    if isinstance(grouping, str) or _is_name_list(grouping):
        names = (grouping,) if isinstance(grouping, str) else tuple(grouping)
        if data is None:
            raise InputError(
                f"Column names given for family '{family}' but the trials carry no table"
            )
        missing_cols = [name for name in names if name not in data.columns]
        if missing_cols:
            raise InputError(
                f"Grouping columns for family '{family}' not found: {missing_cols}"
            )
        codes, levels = encode_groups(*(data[name].to_numpy() for name in names))
        return codes, levels, names

    if _is_vector_list(grouping):
        vectors = [np.asarray(v, dtype=object).ravel() for v in grouping]
        for vector in vectors:
            if vector.shape[0] != n:
                raise InputError(
                    f"Grouping vector for family '{family}' has {vector.shape[0]} "
                    f"entries but there are {n} trials"
                )
        codes, levels = encode_groups(*vectors)
        return codes, levels, None

    is_categorical = isinstance(grouping, pd.Categorical) or (
        isinstance(grouping, pd.Series) and isinstance(grouping.dtype, pd.CategoricalDtype)
    )
    values = np.asarray(grouping)
    if values.ndim != 1 or values.shape[0] != n:
        raise InputError(
            f"Index for family '{family}' has shape {values.shape} but there are "
            f"{n} trials"
        )
    if not is_categorical and values.dtype.kind in "iuf":
        return _explicit_slots(values, family), None, None

    codes, levels = encode_groups(values)
    return codes, levels, None


def resolve_indices(
    trials,
    drift_index=None,
    bound_index=None,
    bias_index=None,
    resid_index=None,
    sv_index=None,
    sw_index=None,
    st0_index=None,
) -> ParameterIndex:
    """Assign every trial a slot for each parameter family.

    Each ``*_index`` argument may be:

    * ``None`` -- all trials share slot 1;
    * a column name, or a list of column names, of the trial table -- slots
      are the distinct combinations of those columns in first-appearance
      order;
    * a list of categorical vectors, one entry per trial each -- as above;
    * a categorical vector given as an array, ``Series`` or
      ``pd.Categorical`` of strings, objects or booleans (a plain list of
      strings is read as column names);
    * an integer (or whole-number float) vector -- used as slot labels
      directly. Labels must be positive but need not be contiguous.

    Parameters
    ----------
    trials : Trials, pd.DataFrame or int
        The trials to index (a table is needed for column names), or just
        the number of trials.
    drift_index, bound_index, bias_index, resid_index : optional
        Groupings for ``v``, ``a``, ``w`` and ``t0``.
    sv_index, sw_index, st0_index : optional
        Groupings for the variability families.

    Returns
    -------
    ParameterIndex

    Raises
    ------
    InputError
        On length mismatches, unknown columns, missing categories, or
        non-positive/non-integer explicit slots.
    """
    if isinstance(trials, (int, np.integer)):
        n, data = int(trials), None
    elif isinstance(trials, pd.DataFrame):
        n, data = len(trials), trials
    else:
        n, data = len(trials), getattr(trials, "data", None)

    groupings = {
        "drift_index": drift_index,
        "bound_index": bound_index,
        "bias_index": bias_index,
        "resid_index": resid_index,
        "sv_index": sv_index,
        "sw_index": sw_index,
        "st0_index": st0_index,
    }
    slots, levels, sources = {}, {}, {}
    for argument, grouping in groupings.items():
        family = INDEX_ARGUMENTS[argument]
        if isinstance(grouping, Sequence) and not isinstance(grouping, str) and len(grouping) == 0:
            raise InputError(f"{argument} is empty")
        slots[family], levels[family], sources[family] = _resolve_one(
            grouping, family, data, n
        )
    return ParameterIndex(slots, levels=levels, sources=sources)
