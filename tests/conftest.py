"""Pytest configuration for the ddm-fitters test suite."""

import numpy as np
import pandas as pd
import pytest

from ddmfit.basic_simulators import simulate_design


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-statistical",
        action="store_true",
        default=False,
        help="Run statistical parameter-recovery tests (skipped by default)",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "statistical: mark test as a statistical recovery test (skipped unless --run-statistical is passed)",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (large sample sizes, may take several seconds)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip statistical tests unless the corresponding flag is passed."""
    run_statistical = config.getoption("--run-statistical")
    skip_statistical = pytest.mark.skip(reason="need --run-statistical option to run")

    for item in items:
        if not run_statistical and "statistical" in item.keywords:
            item.add_marker(skip_statistical)


@pytest.fixture(scope="session")
def true_params():
    return {"a": 1.2, "v": 1.0, "w": 0.5, "t0": 0.3}


@pytest.fixture(scope="session")
def two_condition_design():
    return pd.DataFrame(
        {
            "condition": ["easy", "hard"],
            "v": [1.5, 0.3],
            "a": [1.2, 1.2],
            "w": [0.5, 0.5],
            "t0": [0.3, 0.3],
        }
    )


@pytest.fixture(scope="session")
def two_condition_data(two_condition_design):
    """400 simulated trials per condition, seeded."""
    return simulate_design(two_condition_design, n_trials=400, rng=np.random.default_rng(2024))
