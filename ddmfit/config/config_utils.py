"""Utilities for handling YAML configuration files with nested sections.

Nested structure:
    {
        "simulation": {"delta_t": 0.001, "max_t": 10.0, ...},
        "density": {"eps": 1e-10, ...},
        "fit": {"fit_sv": True, "drift_index": ["difficulty"], ...},
        "design": [{"v": 0.5, "a": 2.0, ...}, ...],
    }
"""

from pathlib import Path

import yaml


def _lower_keys(d):
    if isinstance(d, dict):
        return {
            (k.lower() if isinstance(k, str) else k): _lower_keys(v)
            for k, v in d.items()
        }
    if isinstance(d, list):
        return [_lower_keys(v) for v in d]
    return d


def load_yaml_config(yaml_config_path) -> dict:
    """Load a YAML configuration file, lower-casing every key.

    Accepts a path or a file-like object (makes mock testing easier).
    An empty file yields an empty dict.
    """
    if hasattr(yaml_config_path, "read"):
        loaded = yaml.safe_load(yaml_config_path)
    else:
        with open(Path(yaml_config_path), "rb") as f:
            loaded = yaml.safe_load(f)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(
            f"Top level of a config file must be a mapping, got {type(loaded).__name__}"
        )
    return _lower_keys(loaded)


def merge_section(defaults: dict, config: dict, section: str) -> dict:
    """Return ``defaults`` updated with the keys of ``config[section]``.

    Unknown keys are rejected so that typos in config files do not pass
    silently.
    """
    merged = dict(defaults)
    overrides = config.get(section) or {}
    unknown = sorted(set(overrides) - set(defaults))
    if unknown:
        raise ValueError(
            f"Unknown keys in section '{section}': {unknown}. "
            f"Valid keys: {sorted(defaults)}"
        )
    merged.update(overrides)
    return merged
