"""Core data model: trials, parameter indices and parameter vectors."""

from .trials import Trials, as_trials, choice_labels, normalize_choices
from .indices import (
    FAMILIES,
    INDEX_ARGUMENTS,
    ParameterIndex,
    encode_groups,
    resolve_indices,
)
from .parameters import ParameterVector, format_name, parse_name

__all__ = [
    # Trials
    "Trials",
    "as_trials",
    "choice_labels",
    "normalize_choices",
    # Indices
    "FAMILIES",
    "INDEX_ARGUMENTS",
    "ParameterIndex",
    "encode_groups",
    "resolve_indices",
    # Parameters
    "ParameterVector",
    "format_name",
    "parse_name",
]
