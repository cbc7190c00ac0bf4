"""Exception types raised by ddmfit.

All errors derive from ``ValueError`` so callers that only guard against bad
input keep working, while the subclasses let them tell the failure modes
apart (e.g. retry a fit with other starting values on ``DensityDomainError``
but not on ``InputError``).
"""


class DDMFitError(ValueError):
    """Base class for all ddmfit errors."""


class InputError(DDMFitError):
    """Malformed trial data or index vectors (lengths, labels, columns)."""


class InvalidParameterError(DDMFitError):
    """A parameter vector violates bounds or the w/sw feasibility constraint."""


class DensityDomainError(DDMFitError):
    """The first-passage density is zero, negative or not finite for some trial."""


class DegenerateDataError(DDMFitError):
    """The data cannot identify the requested free parameters."""


class SimulationError(DDMFitError):
    """A simulation produced outcomes the caller asked to treat as fatal."""
