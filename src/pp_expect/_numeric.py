"""Numeric kernels shared by the family and truncation modules.

* :func:`incgamma` — unregularised lower incomplete gamma function,
  used by the truncated gamma / exponential / Weibull means
  (Jawitz 2004, *Moments of truncated continuous univariate
  distributions*).
* :func:`mean_discrete_weibull` and :func:`mean_com_poisson` — means
  that have no closed form and are evaluated as convergent series.
* :func:`truncated_discrete_mean` — the dense-grid mean-kernel
  summation behind every truncated count family.

All kernels operate on whole ``(nsamples, nobs)`` arrays at once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import numpy as np
from scipy.special import gamma, gammainc, gammaln, logsumexp

from ._config import get_series_tolerance

logger = logging.getLogger(__name__)

# Hard cap on the number of series terms; reached only for parameter
# values at the edge of the support (e.g. discrete Weibull mu → 1).
_MAX_SERIES_TERMS = 100_000

# Above this mean the COM-Poisson asymptotic approximation is used.
_COM_POISSON_APPROX_MU = 50.0


def incgamma(a: np.ndarray | float, x: np.ndarray | float) -> np.ndarray:
    """Lower incomplete gamma function ``γ(a, x) = ∫₀ˣ t^(a−1) e^(−t) dt``.

    SciPy's ``gammainc`` is the regularised version ``γ(a, x) / Γ(a)``;
    multiply back by ``Γ(a)``.  ``x = inf`` gives ``Γ(a)``.
    """
    return gammainc(a, x) * gamma(a)


def mean_discrete_weibull(mu: np.ndarray, shape: np.ndarray) -> np.ndarray:
    """Mean of the (type I) discrete Weibull distribution.

    With ``P(Y ≥ k) = mu^(k^shape)`` the mean is the tail sum
    ``Σ_{k≥1} mu^(k^shape)``.  Terms decrease monotonically, so the
    series stops once every term falls below the configured tolerance.
    """
    mu, shape = np.broadcast_arrays(
        np.asarray(mu, dtype=float), np.asarray(shape, dtype=float)
    )
    tol = get_series_tolerance()
    out = np.zeros(mu.shape)
    for k in range(1, _MAX_SERIES_TERMS + 1):
        term = mu ** (float(k) ** shape)
        out += term
        if np.all(term < tol):
            break
    else:
        logger.debug(
            "Discrete Weibull series stopped after %d terms without converging.",
            _MAX_SERIES_TERMS,
        )
    return out


def mean_com_poisson(mu: np.ndarray, shape: np.ndarray) -> np.ndarray:
    """Mean of the Conway–Maxwell–Poisson distribution.

    Uses the mode-like parameterisation ``p(x) ∝ (mu^x / x!)^shape``.

    * ``shape == 1`` is the Poisson distribution: the mean is ``mu``.
    * For large ``mu`` the asymptotic approximation
      ``mu − (shape − 1) / (2·shape)`` is accurate (Shmueli et al. 2005).
    * Otherwise the normalising constant and first moment are summed on
      a grid wide enough to hold the mass of every cell.
    """
    mu, shape = np.broadcast_arrays(
        np.asarray(mu, dtype=float), np.asarray(shape, dtype=float)
    )
    out = mu - (shape - 1.0) / (2.0 * shape)
    out = np.where(shape == 1.0, mu, out)

    exact = (shape != 1.0) & (mu < _COM_POISSON_APPROX_MU)
    if not np.any(exact):
        return out

    mu_e, shape_e = mu[exact], shape[exact]
    # Variance is roughly mu / shape; cover the bulk plus a wide tail.
    spread = np.sqrt(np.max((mu_e + 1.0) / shape_e))
    upper = int(np.ceil(np.max(mu_e) + 40.0 * spread + 20.0))
    x = np.arange(upper + 1, dtype=float)
    log_terms = shape_e[:, None] * (
        x[None, :] * np.log(mu_e)[:, None] - gammaln(x + 1.0)[None, :]
    )
    log_mean = logsumexp(log_terms, b=x[None, :], axis=1) - logsumexp(log_terms, axis=1)
    out[exact] = np.exp(log_mean)
    return out


def truncated_discrete_mean(
    pmf: Callable[[np.ndarray], np.ndarray],
    cdf: Callable[[np.ndarray], np.ndarray],
    lb: np.ndarray,
    ub: np.ndarray,
) -> np.ndarray:
    """Mean of a discrete distribution truncated to ``(lb, ub]``.

    Computes ``Σ_{x=lb+1}^{ub} x·pmf(x) / (cdf(ub) − cdf(lb))`` for
    every draw and observation.  The mean kernel ``x·pmf(x)`` is
    evaluated once on a dense grid spanning the union of all
    observations' windows, giving an ``(nsamples, nobs, K)`` array; a
    per-observation window mask then selects the terms to sum.

    Args:
        pmf: Maps integer support points to probabilities.  Called with
            a ``(1, 1, K)`` grid and must broadcast against the
            distribution parameters to ``(nsamples, nobs, K)``.
        cdf: Maps bounds to cumulative probabilities.  Called with
            ``(1, nobs)`` arrays and must broadcast to
            ``(nsamples, nobs)``.
        lb: Exclusive lower bounds, integer-valued, shape ``(nobs,)``.
        ub: Inclusive upper bounds, integer-valued, shape ``(nobs,)``.

    Returns:
        Truncated means of shape ``(nsamples, nobs)``.
    """
    min_lb = int(np.min(lb))
    max_ub = int(np.max(ub))
    grid = np.arange(min_lb + 1, max_ub + 1, dtype=float)
    kernel = grid[None, None, :] * pmf(grid[None, None, :])
    window = (grid[None, :] > lb[:, None]) & (grid[None, :] <= ub[:, None])
    m1 = np.sum(kernel * window[None, :, :], axis=2)
    del kernel
    logger.debug(
        "Summed truncated discrete mean over a grid of %d support points.", grid.size
    )
    return m1 / (cdf(ub[None, :]) - cdf(lb[None, :]))
