import io

import pandas as pd
import pytest
import yaml
from typer.testing import CliRunner

from ddmfit.cli.main import app, design_from_config, split_fit_section
from ddmfit.config import load_yaml_config

runner = CliRunner()


@pytest.fixture
def sim_config(tmp_path):
    config = {
        "SIMULATION": {"DELTA_T": 0.001},
        "N_TRIALS": 150,
        "DESIGN": [
            {"condition": "easy", "v": 1.5, "a": 1.2, "w": 0.5, "t0": 0.3},
            {"condition": "hard", "v": 0.3, "a": 1.2, "w": 0.5, "t0": 0.3},
        ],
    }
    path = tmp_path / "sim.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


def test_design_from_config():
    design = design_from_config({"design": {"v": [1.0, 0.5], "a": [1.0, 1.0]}})
    assert list(design.columns) == ["v", "a"]
    with pytest.raises(ValueError, match="design"):
        design_from_config({})


def test_split_fit_section():
    config = load_yaml_config(
        io.StringIO("FIT:\n  DRIFT_INDEX: condition\n  MAXITER: 20\n  INIT_PAR: {'a[1]': 1.5}\n")
    )
    fit_config, index_args, init_par = split_fit_section(config)
    assert index_args == {"drift_index": "condition"}
    assert init_par == {"a[1]": 1.5}
    assert fit_config["maxiter"] == 20


def test_simulate_writes_csv(sim_config, tmp_path):
    output = tmp_path / "out" / "trials.csv"
    result = runner.invoke(
        app, ["simulate", "--config", str(sim_config), "--output", str(output), "--seed", "3"]
    )
    assert result.exit_code == 0, result.output
    data = pd.read_csv(output)
    assert len(data) == 300
    assert {"condition", "rt", "choice"} <= set(data.columns)


def test_simulate_is_seeded(sim_config, tmp_path):
    paths = [tmp_path / "a.csv", tmp_path / "b.csv"]
    for path in paths:
        runner.invoke(
            app, ["simulate", "--config", str(sim_config), "--output", str(path), "--seed", "8"]
        )
    pd.testing.assert_frame_equal(pd.read_csv(paths[0]), pd.read_csv(paths[1]))


def test_simulate_default_config(tmp_path):
    output = tmp_path / "trials.csv"
    result = runner.invoke(app, ["simulate", "--output", str(output), "--seed", "1"])
    assert result.exit_code == 0, result.output
    assert set(pd.read_csv(output)["condition"]) == {"easy", "hard"}


def test_fit_command(sim_config, tmp_path):
    data_path = tmp_path / "trials.csv"
    runner.invoke(
        app, ["simulate", "--config", str(sim_config), "--output", str(data_path), "--seed", "3"]
    )
    fit_config = tmp_path / "fit.yaml"
    fit_config.write_text("fit:\n  drift_index: condition\n")
    output = tmp_path / "fit_result.yaml"

    result = runner.invoke(
        app,
        ["fit", "--data", str(data_path), "--config", str(fit_config), "--output", str(output)],
    )
    assert result.exit_code == 0, result.output
    written = yaml.safe_load(output.read_text())
    assert written["free_parameters"] == ["a[1]", "v[1]", "v[2]", "w[1]", "t0[1]"]
    assert written["n_trials"] == 300
    assert "nll" in result.output


def test_fit_reports_data_errors(tmp_path):
    data_path = tmp_path / "bad.csv"
    pd.DataFrame({"rt": [0.5, -1.0], "choice": ["upper", "lower"]}).to_csv(data_path, index=False)
    result = runner.invoke(app, ["fit", "--data", str(data_path)])
    assert result.exit_code == 1


def test_fit_rejects_unknown_config_keys(sim_config, tmp_path):
    data_path = tmp_path / "trials.csv"
    runner.invoke(
        app, ["simulate", "--config", str(sim_config), "--output", str(data_path), "--seed", "3"]
    )
    fit_config = tmp_path / "fit.yaml"
    fit_config.write_text("fit:\n  maxiters: 20\n")
    result = runner.invoke(app, ["fit", "--data", str(data_path), "--config", str(fit_config)])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)


def test_simulate_rejects_unknown_config_keys(tmp_path):
    config = tmp_path / "sim.yaml"
    config.write_text("simulation:\n  delta: 0.01\ndesign:\n  v: [1.0]\n")
    result = runner.invoke(app, ["simulate", "--config", str(config), "-o", str(tmp_path / "x.csv")])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
