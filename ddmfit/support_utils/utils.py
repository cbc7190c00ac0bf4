"""
Helpers shared across ddmfit.

Functions
---------
make_rng(random_state) -> np.random.Generator
    Normalize a seed, a Generator or None into a Generator.

spawn_rngs(random_state, n) -> list[np.random.Generator]
    Independent child generators, e.g. one per parallel fit or per condition.
"""  # noqa: D205, D404

import numpy as np


def make_rng(random_state=None) -> np.random.Generator:
    """Return a ``numpy.random.Generator`` for ``random_state``.

    Args:
        random_state: ``None`` (fresh, unseeded generator), an integer seed,
            a ``SeedSequence`` or an existing ``Generator`` (returned as is,
            so draws continue on the caller's stream).

    Returns:
        A ``numpy.random.Generator``.
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    if isinstance(random_state, np.random.RandomState):
        raise TypeError(
            "Legacy RandomState objects are not supported; pass a seed or "
            "np.random.default_rng(seed) instead."
        )
    return np.random.default_rng(random_state)


def spawn_rngs(random_state, n: int) -> list[np.random.Generator]:
    """Create ``n`` statistically independent generators from one source."""
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    return make_rng(random_state).spawn(n)
