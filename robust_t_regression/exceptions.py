"""Exception hierarchy for the robust Student-t regression package."""


class RobustRegressionError(Exception):
    """Base class for every error raised by this package."""


class InvalidDatasetError(RobustRegressionError, ValueError):
    """Raised when a dataset has fewer than two rows or mismatched x/y lengths."""


class SamplerDivergenceError(RobustRegressionError, RuntimeError):
    """Raised when a chain fails to initialize or leaves the finite region.

    Draws from a run that raised this error are unreliable and are never
    returned to the caller.
    """


class InsufficientSamplesError(RobustRegressionError, ValueError):
    """Raised when an interval is requested from fewer than two draws."""
