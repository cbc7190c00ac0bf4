"""Flat parameter vectors keyed by (family, slot)."""

import re
from collections.abc import Mapping

import numpy as np
import pandas as pd

from ddmfit.core.indices import FAMILIES, ParameterIndex
from ddmfit.exceptions import InvalidParameterError

_NAME_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\[\s*(\d+)\s*\]\s*$")

# Tolerance on the w +/- sw/2 feasibility check
FEASIBILITY_TOL = 1e-10


def format_name(family: str, slot: int) -> str:
    return f"{family}[{int(slot)}]"


def parse_name(name: str) -> tuple[str, int]:
    """Split ``"v[2]"`` into ``("v", 2)``.

    Raises:
        InvalidParameterError: For malformed names or unknown families.
    """
    match = _NAME_RE.match(name)
    if match is None:
        raise InvalidParameterError(
            f"Parameter name {name!r} is not of the form 'family[slot]'"
        )
    family, slot = match.group(1), int(match.group(2))
    if family not in FAMILIES:
        raise InvalidParameterError(
            f"Unknown parameter family '{family}' in {name!r}. Known families: {FAMILIES}"
        )
    if slot <= 0:
        raise InvalidParameterError(f"Slot labels must be positive, got {name!r}")
    return family, slot


def _key(key) -> tuple[str, int]:
    if isinstance(key, str):
        return parse_name(key)
    if isinstance(key, tuple) and len(key) == 2:
        family, slot = key
        if family not in FAMILIES:
            raise InvalidParameterError(
                f"Unknown parameter family '{family}'. Known families: {FAMILIES}"
            )
        if int(slot) <= 0:
            raise InvalidParameterError(f"Slot labels must be positive, got {key!r}")
        return family, int(slot)
    raise InvalidParameterError(f"Cannot interpret {key!r} as a parameter key")


class ParameterVector:
    """Immutable ordered mapping from ``(family, slot)`` to a value.

    Entries are ordered by family (``a, v, w, t0, sv, sw, st0``) and, within a
    family, by first insertion. Names follow the ``"family[slot]"`` form, e.g.
    ``"v[2]"``.

    Examples
    --------
    >>> p = ParameterVector.from_mapping({"a[1]": 2.0, "v[1]": 0.5, "v[2]": -0.5,
    ...                                  "w[1]": 0.5, "t0[1]": 0.2})
    >>> p["v[2]"]
    -0.5
    >>> p.names
    ['a[1]', 'v[1]', 'v[2]', 'w[1]', 't0[1]']
    """

    __slots__ = ("_keys", "_values", "_position")

    def __init__(self, entries=()):
        items = entries.items() if hasattr(entries, "items") else entries
        seen: dict[tuple[str, int], float] = {}
        for key, value in items:
            k = _key(key)
            if k in seen:
                raise InvalidParameterError(f"Duplicate parameter {format_name(*k)}")
            seen[k] = float(value)
        order = {family: i for i, family in enumerate(FAMILIES)}
        keys = sorted(seen, key=lambda k: order[k[0]])  # stable within a family
        values = np.array([seen[k] for k in keys], dtype=float)
        values.flags.writeable = False
        self._keys = tuple(keys)
        self._values = values
        self._position = {k: i for i, k in enumerate(keys)}

    @classmethod
    def from_mapping(cls, obj) -> "ParameterVector":
        """Build a vector from another vector, a Series, or a dict.

        Dicts may be keyed by ``"family[slot]"`` names, ``(family, slot)``
        tuples, or nested as ``{family: {slot: value}}``.
        """
        if isinstance(obj, ParameterVector):
            return obj
        if isinstance(obj, pd.Series):
            return cls(obj.to_dict())
        if isinstance(obj, Mapping):
            flat = {}
            for key, value in obj.items():
                if isinstance(value, Mapping):
                    for slot, v in value.items():
                        flat[(key, slot)] = v
                else:
                    flat[key] = value
            return cls(flat)
        raise InvalidParameterError(
            f"Cannot build a parameter vector from {type(obj).__name__}"
        )

    @property
    def keys(self) -> list[tuple[str, int]]:
        return list(self._keys)

    @property
    def names(self) -> list[str]:
        return [format_name(*k) for k in self._keys]

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self):
        return iter(self.names)

    def __contains__(self, key) -> bool:
        try:
            return _key(key) in self._position
        except InvalidParameterError:
            return False

    def __getitem__(self, key) -> float:
        k = _key(key)
        if k not in self._position:
            raise KeyError(format_name(*k))
        return float(self._values[self._position[k]])

    def get(self, family: str, slot: int = 1, default=None):
        pos = self._position.get((family, int(slot)))
        return default if pos is None else float(self._values[pos])

    def __eq__(self, other) -> bool:
        if not isinstance(other, ParameterVector):
            return NotImplemented
        return self._keys == other._keys and np.array_equal(self._values, other._values)

    __hash__ = None

    def __repr__(self) -> str:
        body = ", ".join(f"{n}={v:.6g}" for n, v in zip(self.names, self._values))
        return f"ParameterVector({body})"

    def families(self) -> list[str]:
        return [f for f in FAMILIES if any(k[0] == f for k in self._keys)]

    def slots(self, family: str) -> list[int]:
        return [slot for fam, slot in self._keys if fam == family]

    def replace(self, updates) -> "ParameterVector":
        """Return a new vector with ``updates`` applied (new keys are added)."""
        merged = dict(zip(self._keys, self._values))
        for key, value in ParameterVector.from_mapping(updates).to_dict(keys=True).items():
            merged[key] = value
        return ParameterVector(merged)

    def to_dict(self, keys: bool = False) -> dict:
        """``{name: value}``, or ``{(family, slot): value}`` with ``keys=True``."""
        if keys:
            return {k: float(v) for k, v in zip(self._keys, self._values)}
        return {n: float(v) for n, v in zip(self.names, self._values)}

    def to_series(self) -> pd.Series:
        return pd.Series(self._values.copy(), index=self.names, name="value", dtype=float)

    def per_trial(self, index: ParameterIndex, families=FAMILIES) -> dict[str, np.ndarray]:
        """Expand to one value per trial for each family.

        Raises:
            InvalidParameterError: If a slot used by some trial has no value.
        """
        out = {}
        for family in families:
            slots = index.slots(family)
            lookup = {}
            for slot in slots:
                pos = self._position.get((family, int(slot)))
                if pos is None:
                    raise InvalidParameterError(
                        f"No value for parameter {format_name(family, slot)}, "
                        f"which is used by the trial index"
                    )
                lookup[int(slot)] = self._values[pos]
            unique_slots, inverse = np.unique(index[family], return_inverse=True)
            values = np.array([lookup[int(s)] for s in unique_slots], dtype=float)
            out[family] = values[inverse.ravel()]
        return out

    def check_feasible(self, index: ParameterIndex | None = None) -> None:
        """Check bounds and the joint ``w``/``sw`` constraint.

        Requires ``a > 0``, ``0 < w < 1``, ``t0 >= 0`` and non-negative
        variabilities, all finite. For every ``(w, sw)`` slot pair used by some
        trial of ``index`` (every pair when ``index`` is None) the bias range
        must stay inside the unit interval: ``w - sw/2 >= 0`` and
        ``w + sw/2 <= 1``.

        Raises:
            InvalidParameterError: Naming the first violated constraint.
        """
        for (family, slot), value in zip(self._keys, self._values):
            name = format_name(family, slot)
            if not np.isfinite(value):
                raise InvalidParameterError(f"{name} is not finite ({value})")
            if family == "a" and value <= 0:
                raise InvalidParameterError(f"{name} must be positive, got {value}")
            if family == "w" and not 0 < value < 1:
                raise InvalidParameterError(f"{name} must lie in (0, 1), got {value}")
            if family in ("t0", "sv", "sw", "st0") and value < 0:
                raise InvalidParameterError(f"{name} must be non-negative, got {value}")

        sw_slots = self.slots("sw")
        w_slots = self.slots("w")
        if not sw_slots or not w_slots:
            return
        if index is None:
            pairs = [(ws, ss) for ws in w_slots for ss in sw_slots]
        else:
            pairs = dict.fromkeys(zip(index["w"].tolist(), index["sw"].tolist()))
        for w_slot, sw_slot in pairs:
            w = self.get("w", w_slot)
            sw = self.get("sw", sw_slot)
            if w is None or sw is None:
                continue
            if w - sw / 2 < -FEASIBILITY_TOL or w + sw / 2 > 1 + FEASIBILITY_TOL:
                raise InvalidParameterError(
                    f"Bias range of {format_name('w', w_slot)}={w:.6g} with "
                    f"{format_name('sw', sw_slot)}={sw:.6g} leaves the unit interval "
                    f"([{w - sw / 2:.6g}, {w + sw / 2:.6g}])"
                )
