"""Quantile-probability summaries of choice and RT data."""

from .quantile_probability import (
    SUMMARY_METHODS,
    observed_summary,
    predicted_summary,
    qp_summary,
)

__all__ = [
    "SUMMARY_METHODS",
    "observed_summary",
    "predicted_summary",
    "qp_summary",
]
