import numpy as np
import pandas as pd
import pytest

from ddmfit.core import ParameterIndex, encode_groups, resolve_indices
from ddmfit.core.indices import FAMILIES
from ddmfit.exceptions import InputError


@pytest.fixture
def frame():
    return pd.DataFrame(
        {
            "rt": [0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
            "choice": ["upper", "lower"] * 3,
            "difficulty": ["hard", "easy", "hard", "easy", "medium", "hard"],
            "speed": ["acc", "acc", "spd", "spd", "acc", "acc"],
        }
    )


class TestEncodeGroups:
    def test_first_appearance_order(self):
        codes, levels = encode_groups(["b", "a", "b", "c"])
        assert codes.tolist() == [1, 2, 1, 3]
        assert levels == [("b",), ("a",), ("c",)]

    def test_combinations(self):
        codes, levels = encode_groups(["x", "x", "y", "x"], [1, 2, 1, 1])
        assert codes.tolist() == [1, 2, 3, 1]
        assert levels == [("x", 1), ("x", 2), ("y", 1)]

    def test_equal_combinations_share_codes(self):
        rng = np.random.default_rng(0)
        col = rng.choice(["a", "b", "c"], size=100)
        codes, levels = encode_groups(col)
        for code, level in enumerate(levels, start=1):
            assert np.all(col[codes == code] == level[0])

    def test_ignores_categorical_declaration_order(self):
        cat = pd.Categorical(["hard", "easy"], categories=["easy", "hard"])
        codes, levels = encode_groups(cat)
        assert levels == [("hard",), ("easy",)]

    def test_missing_values(self):
        with pytest.raises(InputError, match="missing values"):
            encode_groups(["a", None, "b"])

    def test_length_mismatch(self):
        with pytest.raises(InputError, match="entries"):
            encode_groups(["a", "b"], ["x"])


class TestResolveIndices:
    def test_defaults_to_single_slot(self, frame):
        index = resolve_indices(frame)
        for family in FAMILIES:
            assert index[family].tolist() == [1] * 6
            assert index.n_slots(family) == 1

    def test_column_name(self, frame):
        index = resolve_indices(frame, drift_index="difficulty")
        assert index["v"].tolist() == [1, 2, 1, 2, 3, 1]
        assert index["a"].tolist() == [1] * 6
        assert index.sources["v"] == ("difficulty",)

    def test_column_combination(self, frame):
        index = resolve_indices(frame, bound_index=["difficulty", "speed"])
        assert index["a"].tolist() == [1, 2, 3, 4, 5, 1]
        assert index.decode("a", [3]) == [("hard", "spd")]

    def test_vector_list(self, frame):
        labels = ["l", "r", "l", "r", "l", "r"]
        index = resolve_indices(frame, bias_index=[labels])
        assert index["w"].tolist() == [1, 2, 1, 2, 1, 2]

    def test_categorical_vector(self, frame):
        index = resolve_indices(frame, resid_index=frame["speed"].astype("category"))
        assert index["t0"].tolist() == [1, 1, 2, 2, 1, 1]

    def test_explicit_slots_taken_as_is(self, frame):
        index = resolve_indices(frame, drift_index=np.array([4, 4, 7, 7, 4, 9]))
        assert index["v"].tolist() == [4, 4, 7, 7, 4, 9]
        assert index.slots("v").tolist() == [4, 7, 9]

    def test_whole_float_slots(self, frame):
        index = resolve_indices(frame, drift_index=np.array([1.0, 2.0, 1.0, 2.0, 1.0, 2.0]))
        assert index["v"].dtype == np.int64

    def test_number_of_trials(self):
        index = resolve_indices(3, drift_index=np.array([1, 2, 2]))
        assert len(index) == 3

    def test_decode_round_trip(self, frame):
        index = resolve_indices(frame, drift_index="difficulty")
        assert [d[0] for d in index.decode("v")] == frame["difficulty"].tolist()

    def test_decode_explicit_slots_fails(self, frame):
        index = resolve_indices(frame, drift_index=np.array([1, 2, 1, 2, 1, 2]))
        with pytest.raises(InputError, match="not derived from categories"):
            index.decode("v")

    @pytest.mark.parametrize(
        "kwargs, match",
        [
            ({"drift_index": "nope"}, "not found"),
            ({"drift_index": np.array([1, 2, 3])}, "6 trials"),
            ({"drift_index": np.array([1, 0, 1, 1, 1, 1])}, "positive integers"),
            ({"drift_index": np.array([1.5, 1, 1, 1, 1, 1])}, "whole numbers"),
            ({"bound_index": [["a", "b"]]}, "6 trials"),
        ],
    )
    def test_errors(self, frame, kwargs, match):
        with pytest.raises(InputError, match=match):
            resolve_indices(frame, **kwargs)

    def test_missing_category(self, frame):
        frame = frame.assign(difficulty=["hard", None, "hard", "easy", "easy", "hard"])
        with pytest.raises(InputError, match="missing values"):
            resolve_indices(frame, drift_index="difficulty")


class TestParameterIndex:
    def test_single(self):
        index = ParameterIndex.single(4)
        assert index.parameter_names() == [f"{f}[1]" for f in FAMILIES]

    def test_subset_keeps_slots(self, frame):
        index = resolve_indices(frame, drift_index="difficulty")
        sub = index.subset(np.array([4, 5]))
        assert sub["v"].tolist() == [3, 1]
        assert sub.decode("v") == [("medium",), ("hard",)]

    def test_cells(self, frame):
        index = resolve_indices(frame, drift_index="difficulty", bound_index="speed")
        codes, table = index.cells()
        assert codes.tolist() == [1, 2, 3, 4, 5, 1]
        assert list(table.columns) == ["cell"] + [f"{f}_slot" for f in FAMILIES]
        assert table.loc[2, "v_slot"] == 1
        assert table.loc[2, "a_slot"] == 2

    def test_read_only(self, frame):
        index = resolve_indices(frame, drift_index="difficulty")
        with pytest.raises(ValueError):
            index["v"][0] = 5
