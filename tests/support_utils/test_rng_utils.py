import numpy as np
import pytest

from ddmfit.support_utils import make_rng, spawn_rngs


def test_make_rng_passthrough():
    rng = np.random.default_rng(0)
    assert make_rng(rng) is rng


def test_make_rng_seed_is_reproducible():
    assert make_rng(3).random() == make_rng(3).random()


def test_make_rng_rejects_legacy_state():
    with pytest.raises(TypeError, match="RandomState"):
        make_rng(np.random.RandomState(0))


def test_spawn_rngs_independent_and_reproducible():
    first = [g.random() for g in spawn_rngs(7, 3)]
    second = [g.random() for g in spawn_rngs(7, 3)]
    assert first == second
    assert len(set(first)) == 3


def test_spawn_rngs_negative():
    with pytest.raises(ValueError, match="non-negative"):
        spawn_rngs(0, -1)
