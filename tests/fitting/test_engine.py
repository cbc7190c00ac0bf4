import dataclasses
import logging

import numpy as np
import pandas as pd
import pytest
from scipy.optimize import OptimizeResult

from ddmfit.basic_simulators import simulate, simulate_design
from ddmfit.core import ParameterIndex, as_trials, resolve_indices
from ddmfit.exceptions import (
    DegenerateDataError,
    DensityDomainError,
    InputError,
    InvalidParameterError,
)
from ddmfit.fitting import (
    FitResult,
    fit_wiener,
    free_families,
    initial_parameters,
    parameter_bounds,
)
from ddmfit.likelihood import dataset_nll


@pytest.fixture(scope="module")
def single_data(true_params):
    return simulate(**true_params, n_trials=400, rng=np.random.default_rng(7))


@pytest.fixture(scope="module")
def single_fit(single_data):
    return fit_wiener(single_data)


def test_free_families():
    assert free_families() == ["a", "v", "w", "t0"]
    assert free_families(fit_sv=True, fit_st0=True) == ["a", "v", "w", "t0", "sv", "st0"]


class TestStartingValues:
    def test_defaults(self, single_data):
        trials = as_trials(single_data)
        index = ParameterIndex.single(len(trials))
        start = initial_parameters(trials, index, free_families(fit_sv=True))
        assert start["a[1]"] == 1.0
        assert start["w[1]"] == 0.5
        assert start["t0[1]"] == pytest.approx(0.5 * trials.rt.min())
        assert start["sv[1]"] == 0.5
        assert start["st0[1]"] == 0.0

    def test_partial_override(self, single_data):
        trials = as_trials(single_data)
        index = ParameterIndex.single(len(trials))
        start = initial_parameters(trials, index, free_families(), {"v[1]": 0.7, "sw[1]": 0.2})
        assert start["v[1]"] == 0.7
        assert start["sw[1]"] == 0.2
        assert start["a[1]"] == 1.0

    def test_t0_bound_per_slot(self):
        trials = as_trials({"rt": [0.3, 0.5, 0.9, 0.4], "choice": [1, -1, 1, -1]})
        index = resolve_indices(trials, resid_index=np.array([1, 1, 2, 2]))
        bounds = parameter_bounds(trials, index, ["t0"])
        assert bounds[("t0", 1)] == pytest.approx((0.0, 0.299))
        assert bounds[("t0", 2)] == pytest.approx((0.0, 0.399))


class TestFitWiener:
    def test_result(self, single_fit, single_data):
        assert isinstance(single_fit, FitResult)
        assert single_fit.converged
        assert single_fit.free_parameters == ("a[1]", "v[1]", "w[1]", "t0[1]")
        assert single_fit.n_parameters == 4
        assert single_fit.n_trials == len(single_data)
        assert single_fit.method == "L-BFGS-B"
        assert single_fit.n_evaluations > 0
        assert single_fit.params["sv[1]"] == 0.0

    def test_result_is_frozen(self, single_fit):
        with pytest.raises(dataclasses.FrozenInstanceError):
            single_fit.nll = 0.0

    def test_nll_matches_parameters(self, single_fit, single_data):
        assert single_fit.nll == pytest.approx(dataset_nll(single_data, None, single_fit.params))

    def test_improves_on_start(self, single_fit, single_data):
        start_nll = fit_wiener(single_data, return_nll=True)
        assert single_fit.nll < start_nll

    def test_t0_below_fastest_rt(self, single_fit, single_data):
        assert single_fit.params["t0[1]"] < single_data["rt"].min()

    def test_return_nll_equals_dataset_nll(self, single_data, true_params):
        init = {f"{k}[1]": v for k, v in true_params.items()}
        assert fit_wiener(single_data, init_par=init, return_nll=True) == dataset_nll(
            single_data, None, init
        )

    def test_held_out_evaluation(self, two_condition_data):
        trials = as_trials(two_condition_data)
        index = resolve_indices(trials, drift_index="condition")
        train = np.arange(len(trials)) % 2 == 0
        fit = fit_wiener(trials.subset(train), index.subset(train))
        test_trials, test_index = trials.subset(~train), index.subset(~train)
        held_out = fit_wiener(test_trials, test_index, init_par=fit.params, return_nll=True)
        assert held_out == dataset_nll(test_trials, test_index, fit.params)

    def test_nested_models(self, two_condition_data):
        trials = as_trials(two_condition_data)
        shared = fit_wiener(trials)
        by_condition = fit_wiener(trials, resolve_indices(trials, drift_index="condition"))
        assert by_condition.n_parameters == shared.n_parameters + 1
        assert by_condition.nll <= shared.nll + 1e-6
        assert by_condition.params["v[1]"] > by_condition.params["v[2]"]

    def test_separate_drift_fits_target_and_foil_better(self):
        design = pd.DataFrame(
            {
                "item": ["target", "foil"],
                "v": [0.5, -0.5],
                "a": [2.0, 2.0],
                "w": [0.5, 0.5],
                "t0": [0.2, 0.2],
                "sv": [0.3, 0.3],
            }
        )
        trials = simulate_design(design, n_trials=200, rng=1)
        shared = fit_wiener(trials)
        separate = fit_wiener(trials, resolve_indices(trials, drift_index="item"))
        assert shared.converged and separate.converged
        assert separate.nll < shared.nll
        assert separate.params["v[1]"] > 0 > separate.params["v[2]"]

    def test_fixed_variability_from_init(self, single_data):
        fit = fit_wiener(single_data, init_par={"st0[1]": 0.05})
        assert fit.params["st0[1]"] == 0.05
        assert "st0[1]" not in fit.free_parameters

    def test_fit_sw_respects_bias_range(self, single_data):
        fit = fit_wiener(single_data, fit_sw=True, maxiter=50)
        assert fit.method == "SLSQP"
        w, sw = fit.params["w[1]"], fit.params["sw[1]"]
        assert w - sw / 2 >= -1e-8
        assert w + sw / 2 <= 1 + 1e-8

    def test_non_convergence_is_flagged(self, single_data, caplog):
        with caplog.at_level(logging.WARNING, logger="ddmfit.fitting.engine"):
            fit = fit_wiener(single_data, maxiter=1)
        assert not fit.converged
        assert np.isfinite(fit.nll)
        assert "did not converge" in caplog.text

    def test_to_dict(self, single_fit):
        out = single_fit.to_dict()
        assert out["free_parameters"] == ["a[1]", "v[1]", "w[1]", "t0[1]"]
        assert set(out["params"]) >= {"a[1]", "st0[1]"}
        assert isinstance(out["nll"], float)

    def test_to_series(self, single_fit):
        series = single_fit.to_series()
        assert series["v[1]"] == single_fit.params["v[1]"]
        assert "sv[1]" in series.index

    def test_rejected_last_iterate_reports_best_point(self, single_data, monkeypatch):
        def stop_outside_bounds(fun, x0, **kwargs):
            fun(x0)
            last = np.array(x0, dtype=float)
            last[0] = -1.0
            return OptimizeResult(
                x=last, fun=fun(last), success=False, nit=2, message="stopped early"
            )

        monkeypatch.setattr("ddmfit.fitting.engine.minimize", stop_outside_bounds)
        fit = fit_wiener(single_data)
        start = initial_parameters(
            as_trials(single_data), ParameterIndex.single(len(single_data)), free_families()
        )
        assert not fit.converged
        assert fit.params == start
        assert fit.nll == dataset_nll(single_data, None, start)


class TestPreflightErrors:
    def test_index_length_mismatch(self, single_data):
        with pytest.raises(InputError, match="Index covers"):
            fit_wiener(single_data, ParameterIndex.single(3))

    def test_index_type(self, single_data):
        with pytest.raises(InputError, match="ParameterIndex"):
            fit_wiener(single_data, {"drift_index": "condition"})

    def test_too_few_trials(self):
        data = pd.DataFrame({"rt": [0.5, 0.6, 0.7], "choice": ["upper", "lower", "upper"]})
        with pytest.raises(DegenerateDataError, match="3 trials cannot identify 4"):
            fit_wiener(data)

    def test_single_choice_drift_slot(self):
        data = pd.DataFrame(
            {
                "rt": np.linspace(0.4, 1.0, 10),
                "choice": ["upper"] * 5 + ["upper", "lower"] * 2 + ["lower"],
                "cond": ["x"] * 5 + ["y"] * 5,
            }
        )
        index = resolve_indices(data, drift_index="cond")
        with pytest.raises(DegenerateDataError, match="v\\[1\\]"):
            fit_wiener(data, index)

    def test_init_for_unused_slot(self, single_data):
        with pytest.raises(DegenerateDataError, match="v\\[3\\]"):
            fit_wiener(single_data, init_par={"v[3]": 0.5})

    def test_init_out_of_bounds(self, single_data):
        with pytest.raises(InvalidParameterError, match="a\\[1\\]"):
            fit_wiener(single_data, init_par={"a[1]": 50.0})

    def test_init_t0_above_fastest_rt(self, single_data):
        with pytest.raises(InvalidParameterError, match="t0\\[1\\]"):
            fit_wiener(single_data, init_par={"t0[1]": single_data["rt"].min() + 0.1})

    def test_init_bias_range(self, single_data):
        with pytest.raises(InvalidParameterError, match="Bias range"):
            fit_wiener(single_data, fit_sw=True, init_par={"w[1]": 0.1, "sw[1]": 0.5})

    def test_evaluation_with_zero_density(self, single_data):
        init = {"a[1]": 1.0, "v[1]": 0.0, "w[1]": 0.5, "t0[1]": 1.0}
        with pytest.raises(DensityDomainError):
            fit_wiener(single_data, init_par=init, return_nll=True)


@pytest.mark.statistical
def test_parameter_recovery(true_params):
    data = simulate(**true_params, n_trials=3000, dt=0.0005, rng=np.random.default_rng(31))
    fit = fit_wiener(data)
    assert fit.converged
    assert fit.params["a[1]"] == pytest.approx(true_params["a"], abs=0.1)
    assert fit.params["v[1]"] == pytest.approx(true_params["v"], abs=0.15)
    assert fit.params["w[1]"] == pytest.approx(true_params["w"], abs=0.05)
    assert fit.params["t0[1]"] == pytest.approx(true_params["t0"], abs=0.03)
