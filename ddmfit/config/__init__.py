from .config import (
    model_config,
    get_default_simulation_config,
    get_default_density_config,
    get_default_fit_config,
    get_default_summary_config,
)
from .config_utils import load_yaml_config, merge_section

__all__ = [
    "model_config",
    "get_default_simulation_config",
    "get_default_density_config",
    "get_default_fit_config",
    "get_default_summary_config",
    "load_yaml_config",
    "merge_section",
]
