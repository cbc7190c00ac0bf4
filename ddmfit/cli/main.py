#!/usr/bin/env -S uv run --script

import logging
from importlib.resources import as_file, files
from pathlib import Path
from pprint import pformat

import numpy as np
import pandas as pd
import typer
import yaml

from ddmfit.basic_simulators import simulate_design
from ddmfit.config import (
    get_default_density_config,
    get_default_fit_config,
    get_default_simulation_config,
    load_yaml_config,
    merge_section,
)
from ddmfit.core import INDEX_ARGUMENTS, as_trials, resolve_indices
from ddmfit.fitting import fit_wiener
from ddmfit.likelihood import NavarroFussDensity

app = typer.Typer(add_completion=False)

log_level_option = typer.Option(
    "WARNING",
    "--log-level",
    "-l",
    help="Set the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
    case_sensitive=False,
    show_default=True,
    rich_help_panel="Logging",
    metavar="LEVEL",
    autocompletion=lambda: ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
)


def _setup_logging(log_level: str) -> logging.Logger:
    logging.basicConfig(
        level=log_level.upper(), format="%(asctime)s - %(levelname)s - %(message)s"
    )
    return logging.getLogger(__name__)


def design_from_config(config: dict) -> pd.DataFrame:
    """Condition table from the ``design`` section (list of rows or dict of columns)."""
    design = config.get("design")
    if not design:
        raise ValueError("The config has no 'design' section")
    return pd.DataFrame(design)


def split_fit_section(config: dict) -> tuple[dict, dict, dict | None]:
    """Split the ``fit`` section into optimizer settings, index arguments and init_par."""
    section = dict(config.get("fit") or {})
    index_args = {name: section.pop(name) for name in INDEX_ARGUMENTS if name in section}
    init_par = section.pop("init_par", None)
    fit_config = merge_section(get_default_fit_config(), {"fit": section}, "fit")
    return fit_config, index_args, init_par


simulate_epilog = "Example: `ddmfit simulate --config sim.yaml --output trials.csv --seed 1`"


@app.command(epilog=simulate_epilog)
def simulate(
    config_path: Path = typer.Option(
        None, "--config", help="Path to the YAML simulation config."
    ),
    output: Path = typer.Option(..., "--output", "-o", help="CSV file to write."),
    seed: int = typer.Option(None, "--seed", help="Seed for the random generator."),
    log_level: str = log_level_option,
):
    """
    Simulate trials for every condition of a design.
    """
    logger = _setup_logging(log_level)

    if config_path is None:
        logger.warning("No config path provided, using the example configuration.")
        with as_file(files("ddmfit.cli") / "default_simulation.yaml") as default_config:
            config = load_yaml_config(default_config)
    else:
        config = load_yaml_config(config_path)

    try:
        sim_config = merge_section(get_default_simulation_config(), config, "simulation")
        logger.debug("SIMULATION CONFIG")
        logger.debug(pformat(sim_config))
        t_max = sim_config["max_t"]
        data = simulate_design(
            design_from_config(config),
            n_trials=config.get("n_trials"),
            dt=sim_config["delta_t"],
            t_max=np.inf if t_max is None else float(t_max),
            rng=seed,
            no_decision=sim_config["no_decision"],
            progress=sim_config["progress"],
        )
    except ValueError as e:
        logger.error("Simulation failed: %s", e)
        raise typer.Exit(code=1)

    output.parent.mkdir(parents=True, exist_ok=True)
    data.to_csv(output, index=False)
    logger.info("Wrote %d trials to %s", len(data), output)


fit_epilog = "Example: `ddmfit fit --data trials.csv --config fit.yaml --output fit.yaml`"


@app.command(epilog=fit_epilog)
def fit(
    data: Path = typer.Option(..., "--data", help="CSV file with rt and choice columns."),
    config_path: Path = typer.Option(
        None, "--config", help="Path to the YAML fit config."
    ),
    output: Path = typer.Option(None, "--output", "-o", help="YAML file for the result."),
    log_level: str = log_level_option,
):
    """
    Fit the diffusion model to trial data by maximum likelihood.
    """
    logger = _setup_logging(log_level)

    config = load_yaml_config(config_path) if config_path is not None else {}
    try:
        fit_config, index_args, init_par = split_fit_section(config)
        density_config = merge_section(get_default_density_config(), config, "density")
        logger.debug("FIT CONFIG")
        logger.debug(pformat(fit_config))
        logger.debug("INDEX ARGUMENTS")
        logger.debug(pformat(index_args))

        trials = as_trials(pd.read_csv(data))
        indices = resolve_indices(trials, **index_args)
        result = fit_wiener(
            trials,
            indices,
            fit_sv=fit_config["fit_sv"],
            fit_sw=fit_config["fit_sw"],
            fit_st0=fit_config["fit_st0"],
            init_par=init_par,
            density=NavarroFussDensity(**density_config),
            method=fit_config["method"],
            maxiter=fit_config["maxiter"],
            tol=fit_config["tol"],
        )
    except ValueError as e:
        # DDMFitError is a ValueError
        logger.error("Fit failed: %s", e)
        raise typer.Exit(code=1)

    text = yaml.safe_dump(result.to_dict(), sort_keys=False)
    typer.echo(text)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text)
        logger.info("Wrote fit result to %s", output)


if __name__ == "__main__":
    app()
