import numpy as np
import pandas as pd
import pytest

from ddmfit.core import Trials, as_trials, choice_labels, normalize_choices
from ddmfit.exceptions import InputError


@pytest.mark.parametrize(
    "labels, expected",
    [
        (["upper", "lower"], [True, False]),
        (["Upper", " LOWER "], [True, False]),
        ([1, -1, 1], [True, False, True]),
        (np.array([-1, 1]), [False, True]),
    ],
)
def test_normalize_choices(labels, expected):
    assert normalize_choices(labels).tolist() == expected


def test_normalize_choices_rejects_unknown_labels():
    with pytest.raises(InputError, match="Unrecognized choice label 0 at row 1"):
        normalize_choices([1, 0, 2])


def test_choice_labels_inverse():
    upper = np.array([True, False, True])
    assert normalize_choices(choice_labels(upper)).tolist() == upper.tolist()


class TestAsTrials:
    def test_from_frame(self):
        frame = pd.DataFrame({"rt": [0.5, 0.7], "choice": ["upper", "lower"], "cond": ["a", "b"]})
        trials = as_trials(frame)
        assert len(trials) == 2
        assert trials.upper.tolist() == [True, False]
        assert trials.choice.tolist() == ["upper", "lower"]
        assert trials.data["cond"].tolist() == ["a", "b"]

    def test_custom_columns(self):
        trials = as_trials({"RT": [0.4], "resp": [-1]}, rt_col="RT", choice_col="resp")
        assert trials.rt.tolist() == [0.4]
        assert trials.upper.tolist() == [False]

    def test_trials_passthrough(self):
        trials = Trials(rt=[0.5], upper=[True])
        assert as_trials(trials) is trials

    def test_arrays_read_only(self):
        trials = Trials(rt=[0.5, 0.6], upper=[True, False])
        with pytest.raises(ValueError):
            trials.rt[0] = 1.0

    @pytest.mark.parametrize("bad_rt", [0.0, -0.2, np.nan, np.inf])
    def test_invalid_rt(self, bad_rt):
        frame = pd.DataFrame({"rt": [0.5, bad_rt], "choice": ["upper", "lower"]})
        with pytest.raises(InputError, match="row 1"):
            as_trials(frame)

    def test_missing_column(self):
        with pytest.raises(InputError, match="Missing required columns"):
            as_trials(pd.DataFrame({"rt": [0.5]}))

    def test_empty(self):
        with pytest.raises(InputError, match="No trials"):
            as_trials(pd.DataFrame({"rt": [], "choice": []}))

    def test_subset_keeps_table(self):
        frame = pd.DataFrame({"rt": [0.5, 0.6, 0.7], "choice": [1, -1, 1], "cond": list("xyz")})
        sub = as_trials(frame).subset(np.array([False, True, True]))
        assert sub.rt.tolist() == [0.6, 0.7]
        assert sub.data["cond"].tolist() == ["y", "z"]

    def test_to_frame(self):
        frame = pd.DataFrame({"rt": [0.5], "choice": [1]})
        out = as_trials(frame).to_frame()
        assert out["choice"].tolist() == ["upper"]
