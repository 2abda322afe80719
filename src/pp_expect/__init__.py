"""pp_expect — Expected values of posterior predictive distributions.

Computes, per posterior draw and observation, the mean of the fitted
response distribution of a distributional regression model: closed-form
means for some forty response families, truncated means (continuous
closed forms and discrete summation), finite mixtures, ordinal and
categorical probability vectors, spatial-lag corrected means, and
multivariate stacking.  Inputs are posterior draws that have already
been extracted from a fitted model; no sampling is performed.

Public API:
    .. autosummary::
        compute_expectation
        posterior_linpred
        posterior_summary
        summary_labels
        summary_frame
        DrawsBundle
        MultivariateDraws
        LinearPredictor
        broadcast_to
        get_dpar
        get_nlpar
        get_theta
        ExpectationProvider
        ClosedFormFamily
        CustomFamily
        MixtureFamily
        register_family
        resolve_family
        available_families
        inverse_link
        available_links
        get_n_jobs
        set_n_jobs
        get_series_tolerance
        set_series_tolerance
"""

from ._config import get_n_jobs, get_series_tolerance, set_n_jobs, set_series_tolerance
from .core import compute_expectation, posterior_linpred
from .draws import (
    DrawsBundle,
    LinearPredictor,
    MultivariateDraws,
    broadcast_to,
    get_dpar,
    get_nlpar,
    get_theta,
)
from .exceptions import (
    ConflictingArgumentsError,
    InvalidBoundsError,
    InvalidParameterError,
    ShapeMismatchError,
    SlowComputationWarning,
    UnsupportedOperationError,
)
from .families import (
    ClosedFormFamily,
    CustomFamily,
    ExpectationProvider,
    MixtureFamily,
    available_families,
    register_family,
    resolve_family,
)
from .links import available_links, inverse_link
from .summary import posterior_summary, summary_frame, summary_labels

__all__ = [
    "compute_expectation",
    "posterior_linpred",
    "posterior_summary",
    "summary_labels",
    "summary_frame",
    "DrawsBundle",
    "MultivariateDraws",
    "LinearPredictor",
    "broadcast_to",
    "get_dpar",
    "get_nlpar",
    "get_theta",
    "ExpectationProvider",
    "ClosedFormFamily",
    "CustomFamily",
    "MixtureFamily",
    "register_family",
    "resolve_family",
    "available_families",
    "inverse_link",
    "available_links",
    "get_n_jobs",
    "set_n_jobs",
    "get_series_tolerance",
    "set_series_tolerance",
    "ConflictingArgumentsError",
    "InvalidBoundsError",
    "InvalidParameterError",
    "ShapeMismatchError",
    "SlowComputationWarning",
    "UnsupportedOperationError",
]

__version__ = "0.1.0"
