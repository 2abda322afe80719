"""Error and warning types raised by the expectation engine.

Every error is raised at the point of detection.  The computations are
deterministic, so none of these are retryable.  Each class also derives
from the built-in exception a caller would naturally catch (e.g.
``ValueError`` for bad arguments), so ``except ValueError`` keeps
working for code that does not know about this module.
"""

from __future__ import annotations


class InvalidParameterError(ValueError):
    """Unknown distributional or non-linear parameter name."""


class ConflictingArgumentsError(ValueError):
    """Mutually exclusive arguments were supplied together."""


class UnsupportedOperationError(NotImplementedError):
    """No expected value is defined or implemented for the request.

    Raised for families without a mean (``cox``), for truncated models
    whose family has no truncated-mean implementation, and for unknown
    family or link names.
    """


class InvalidBoundsError(ValueError):
    """Truncation bounds are unusable (``lb > ub`` or infinite on a discrete path)."""


class ShapeMismatchError(ValueError):
    """A parameter or data array does not conform to ``(nsamples, nobs)``."""


class SlowComputationWarning(UserWarning):
    """The requested computation is valid but may be slow or memory-heavy."""


__all__ = [
    "ConflictingArgumentsError",
    "InvalidBoundsError",
    "InvalidParameterError",
    "ShapeMismatchError",
    "SlowComputationWarning",
    "UnsupportedOperationError",
]
