"""Inverse link functions.

Predicted parameters arrive on the linear-predictor scale together with
the name of their link function.  :func:`inverse_link` maps them back
to the response scale.  The common GLM links reuse the ``statsmodels``
link objects; the handful of links that statsmodels does not provide
are implemented directly.

The table is built once at import time.  Unknown names fail fast with
:class:`~pp_expect.exceptions.UnsupportedOperationError` instead of
producing a late lookup failure deep inside a family function.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
from scipy.special import expit
from statsmodels.genmod.families import links as sm_links

from .exceptions import UnsupportedOperationError

# ------------------------------------------------------------------ #
# Links without a statsmodels counterpart
# ------------------------------------------------------------------ #


def _inv_probit_approx(eta: np.ndarray) -> np.ndarray:
    # Logistic approximation to the standard normal CDF.
    return expit(0.07056 * eta**3 + 1.5976 * eta)


def _inv_softplus(eta: np.ndarray) -> np.ndarray:
    return np.logaddexp(0.0, eta)


def _inv_logm1(eta: np.ndarray) -> np.ndarray:
    return np.exp(eta) + 1.0


def _inv_tan_half(eta: np.ndarray) -> np.ndarray:
    return 2.0 * np.arctan(eta)


_INVERSE_LINKS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "identity": sm_links.Identity().inverse,
    "log": sm_links.Log().inverse,
    "logit": sm_links.Logit().inverse,
    "probit": sm_links.Probit().inverse,
    "cauchit": sm_links.Cauchy().inverse,
    "cloglog": sm_links.CLogLog().inverse,
    "loglog": sm_links.LogLog().inverse,
    "inverse": sm_links.InversePower().inverse,
    "sqrt": sm_links.Sqrt().inverse,
    "1/mu^2": sm_links.InverseSquared().inverse,
    "probit_approx": _inv_probit_approx,
    "softplus": _inv_softplus,
    "logm1": _inv_logm1,
    "tan_half": _inv_tan_half,
}


def available_links() -> list[str]:
    """Return the sorted names of all supported links."""
    return sorted(_INVERSE_LINKS)


def inverse_link(eta: np.ndarray, link: str) -> np.ndarray:
    """Apply the inverse of *link* to *eta* elementwise.

    Args:
        eta: Values on the linear-predictor scale (any shape).
        link: Link name, e.g. ``"log"`` or ``"logit"``.

    Returns:
        An array of the same shape as *eta* on the response scale.

    Raises:
        UnsupportedOperationError: If *link* is not a known link.
    """
    try:
        fun = _INVERSE_LINKS[link]
    except KeyError:
        msg = f"Unknown link {link!r}.  Available links: {', '.join(available_links())}."
        raise UnsupportedOperationError(msg) from None
    return np.asarray(fun(np.asarray(eta, dtype=float)), dtype=float)
