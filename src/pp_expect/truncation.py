"""Expected values of truncated response distributions.

A model is truncated when any observation has a finite lower bound
``lb`` or upper bound ``ub``.  The mean then has to be recomputed over
the restricted support.  Two strategies are used:

Continuous analytic
~~~~~~~~~~~~~~~~~~~
Closed forms exist for gaussian, student, lognormal, gamma,
exponential, and weibull.  All follow the pattern

    mean = m1(lb, ub) / (F(ub) − F(lb))

where ``m1`` is the partial first moment over ``[lb, ub]`` and ``F``
the CDF.  For the normal family this reduces to
``mu + sigma·(φ(z_lb) − φ(z_ub)) / (Φ(z_ub) − Φ(z_lb))``.  The Student-t
moment follows Kim (2008), *Moments of truncated Student-t
distribution*; the gamma, exponential, and Weibull moments use the
lower incomplete gamma function (Jawitz 2004).  Bounds below zero are
clamped to zero for the non-negative families.

Discrete numeric summation
~~~~~~~~~~~~~~~~~~~~~~~~~~
Count families (binomial, poisson, negbinomial, geometric) have no
closed form; the mean is ``Σ_{x=lb+1}^{ub} x·pmf(x) / (cdf(ub) − cdf(lb))``
summed on a dense grid (see :func:`~pp_expect._numeric.truncated_discrete_mean`).
``lb`` is clamped below at ``−1`` and the binomial ``ub`` at the trial
count; any bound that is still infinite afterwards is rejected, because
the summation needs a finite window.  The grid is materialised in
memory, so a :class:`~pp_expect.exceptions.SlowComputationWarning` is
issued first.

Degenerate windows
~~~~~~~~~~~~~~~~~~
Observations with ``lb == ub`` have all their mass on a single value;
their mean is that value.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable

import numpy as np
from scipy.special import gamma, gammainc, gammaln, ndtr, stdtr
from scipy.stats import binom, nbinom, norm, poisson

from ._numeric import incgamma, truncated_discrete_mean
from .draws import DrawsBundle, require_dpar
from .exceptions import (
    InvalidBoundsError,
    SlowComputationWarning,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)

TruncatedMean = Callable[[DrawsBundle, np.ndarray, np.ndarray], np.ndarray]


def truncation_bounds(draws: DrawsBundle) -> tuple[np.ndarray, np.ndarray]:
    """Per-observation bounds ``(lb, ub)``, defaulting to ``(−inf, inf)``."""
    lb = draws.data_vector("lb", default=-np.inf)
    ub = draws.data_vector("ub", default=np.inf)
    return lb, ub


def is_truncated(draws: DrawsBundle) -> bool:
    """Whether any observation has a finite truncation bound."""
    lb, ub = truncation_bounds(draws)
    return bool(np.any(lb > -np.inf) or np.any(ub < np.inf))


# ------------------------------------------------------------------ #
# Continuous families
# ------------------------------------------------------------------ #
#
# ``lb`` and ``ub`` arrive as ``(1, nobs)`` rows and broadcast against
# the ``(nsamples, nobs)`` parameter matrices.


def _trunc_gaussian(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, sigma = require_dpar(draws, "mu"), require_dpar(draws, "sigma")
    zlb = (lb - mu) / sigma
    zub = (ub - mu) / sigma
    trunc_zmean = (norm.pdf(zlb) - norm.pdf(zub)) / (ndtr(zub) - ndtr(zlb))
    return mu + trunc_zmean * sigma


def _trunc_student(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, sigma, nu = (require_dpar(draws, p) for p in ("mu", "sigma", "nu"))
    zlb = (lb - mu) / sigma
    zub = (ub - mu) / sigma
    # Γ((ν−1)/2)·ν^(ν/2) / (2·Γ(ν/2)·Γ(1/2)) evaluated on the log scale;
    # ν^(ν/2) overflows for large ν.
    log_const = (
        gammaln((nu - 1) / 2)
        + nu / 2 * np.log(nu)
        - gammaln(nu / 2)
        - gammaln(0.5)
        - np.log(2.0)
    )
    a = np.exp(log_const - (nu - 1) / 2 * np.log(nu + zlb**2))
    b = np.exp(log_const - (nu - 1) / 2 * np.log(nu + zub**2))
    trunc_zmean = (a - b) / (stdtr(nu, zub) - stdtr(nu, zlb))
    return mu + trunc_zmean * sigma


def _trunc_lognormal(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, sigma = require_dpar(draws, "mu"), require_dpar(draws, "sigma")
    lb = np.maximum(lb, 0.0)
    with np.errstate(divide="ignore"):
        log_lb, log_ub = np.log(lb), np.log(ub)
    zlb = (log_lb - mu) / sigma
    zub = (log_ub - mu) / sigma
    m1 = np.exp(mu + sigma**2 / 2) * (ndtr(zub - sigma) - ndtr(zlb - sigma))
    return m1 / (ndtr(zub) - ndtr(zlb))


def _trunc_gamma(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, shape = require_dpar(draws, "mu"), require_dpar(draws, "shape")
    lb = np.maximum(lb, 0.0)
    scale = mu / shape
    # scale / Γ(shape) · γ(1 + shape, x) == mu · P(1 + shape, x), with P
    # the regularised incomplete gamma function.
    m1 = mu * (gammainc(1 + shape, ub / scale) - gammainc(1 + shape, lb / scale))
    return m1 / (gammainc(shape, ub / scale) - gammainc(shape, lb / scale))


def _trunc_exponential(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu = require_dpar(draws, "mu")
    lb = np.maximum(lb, 0.0)
    m1 = mu * (incgamma(2, ub / mu) - incgamma(2, lb / mu))
    return m1 / (np.exp(-lb / mu) - np.exp(-ub / mu))


def _trunc_weibull(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, shape = require_dpar(draws, "mu"), require_dpar(draws, "shape")
    lb = np.maximum(lb, 0.0)
    a = 1 + 1 / shape
    scale = mu / gamma(a)
    xlb = (lb / scale) ** shape
    xub = (ub / scale) ** shape
    m1 = scale * (incgamma(a, xub) - incgamma(a, xlb))
    return m1 / (np.exp(-xlb) - np.exp(-xub))


# ------------------------------------------------------------------ #
# Discrete families
# ------------------------------------------------------------------ #


def _discrete_bounds(
    lb: np.ndarray, ub: np.ndarray, upper: np.ndarray | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """Clamp to the support, then require a finite, non-empty integer window.

    Observations with ``lb == ub`` as given are degenerate windows whose
    mean is the bound itself; they are exempt from the emptiness check.
    """
    degenerate = np.ravel(lb == ub)
    lb = np.maximum(lb, -1.0)
    if upper is not None:
        ub = np.minimum(ub, upper)
    if not (np.all(np.isfinite(lb)) and np.all(np.isfinite(ub))):
        msg = (
            "Truncated discrete families require finite bounds: lb and ub "
            "must be finite to sum over the truncation window."
        )
        raise InvalidBoundsError(msg)
    lb, ub = np.floor(np.ravel(lb)), np.floor(np.ravel(ub))
    empty = (lb >= ub) & ~degenerate
    if np.any(empty):
        bad = np.flatnonzero(empty)
        msg = (
            "Truncation window (lb, ub] contains no support points after clamping "
            f"to the support; violated for observations {bad.tolist()}."
        )
        raise InvalidBoundsError(msg)
    return lb, ub


def _trunc_binomial(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu = require_dpar(draws, "mu")
    trials = draws.data_vector("trials")
    lb, ub = _discrete_bounds(lb, ub, upper=trials[None, :])
    return truncated_discrete_mean(
        pmf=lambda x: binom.pmf(x, trials[None, :, None], mu[..., None]),
        cdf=lambda b: binom.cdf(b, trials[None, :], mu),
        lb=lb,
        ub=ub,
    )


def _trunc_poisson(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu = require_dpar(draws, "mu")
    lb, ub = _discrete_bounds(lb, ub)
    return truncated_discrete_mean(
        pmf=lambda x: poisson.pmf(x, mu[..., None]),
        cdf=lambda b: poisson.cdf(b, mu),
        lb=lb,
        ub=ub,
    )


def _nbinom_mean(
    size: np.ndarray, mu: np.ndarray, lb: np.ndarray, ub: np.ndarray
) -> np.ndarray:
    # scipy's nbinom counts failures with success probability p;
    # mean = size·(1 − p)/p  ⇔  p = size / (size + mu).
    prob = size / (size + mu)
    return truncated_discrete_mean(
        pmf=lambda x: nbinom.pmf(x, size[..., None], prob[..., None]),
        cdf=lambda b: nbinom.cdf(b, size, prob),
        lb=lb,
        ub=ub,
    )


def _trunc_negbinomial(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu, shape = require_dpar(draws, "mu"), require_dpar(draws, "shape")
    lb, ub = _discrete_bounds(lb, ub)
    return _nbinom_mean(np.asarray(shape, dtype=float), mu, lb, ub)


def _trunc_geometric(draws: DrawsBundle, lb: np.ndarray, ub: np.ndarray) -> np.ndarray:
    mu = require_dpar(draws, "mu")
    lb, ub = _discrete_bounds(lb, ub)
    return _nbinom_mean(np.ones_like(mu), mu, lb, ub)


_CONTINUOUS: dict[str, TruncatedMean] = {
    "gaussian": _trunc_gaussian,
    "student": _trunc_student,
    "lognormal": _trunc_lognormal,
    "gamma": _trunc_gamma,
    "exponential": _trunc_exponential,
    "weibull": _trunc_weibull,
}

_DISCRETE: dict[str, TruncatedMean] = {
    "binomial": _trunc_binomial,
    "poisson": _trunc_poisson,
    "negbinomial": _trunc_negbinomial,
    "geometric": _trunc_geometric,
}


def supports_truncation(family_name: str) -> bool:
    """Whether a truncated mean is implemented for *family_name*."""
    return family_name in _CONTINUOUS or family_name in _DISCRETE


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def truncated_expectation(draws: DrawsBundle) -> np.ndarray:
    """Expected value of a truncated response distribution.

    Args:
        draws: Bundle with response-scale parameters and a resolved
            family provider (see
            :func:`~pp_expect.families.response_scale_draws`).

    Returns:
        Truncated means of shape ``(nsamples, nobs)``.

    Raises:
        InvalidBoundsError: If ``lb > ub`` for any observation, or a
            discrete family is given an infinite bound.
        UnsupportedOperationError: If the family has no truncated-mean
            implementation.
    """
    name = draws.family.name
    lb, ub = truncation_bounds(draws)
    if np.any(lb > ub):
        bad = np.flatnonzero(lb > ub)
        msg = f"Truncation bounds require lb <= ub; violated for observations {bad.tolist()}."
        raise InvalidBoundsError(msg)

    if name in _CONTINUOUS:
        logger.debug("Truncated mean for %r via the continuous closed form.", name)
        fun = _CONTINUOUS[name]
    elif name in _DISCRETE:
        # Attributed to the caller of compute_expectation, four frames up.
        warnings.warn(
            "Computing expected values for truncated discrete models may take "
            "a while and needs memory proportional to the truncation window.",
            SlowComputationWarning,
            stacklevel=5,
        )
        logger.debug("Truncated mean for %r via discrete summation.", name)
        fun = _DISCRETE[name]
    else:
        msg = (
            "Expected values on the response scale are not yet implemented "
            f"for truncated {name!r} models."
        )
        raise UnsupportedOperationError(msg)

    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.array(np.broadcast_to(fun(draws, lb[None, :], ub[None, :]), draws.dim_mu))

    degenerate = lb == ub
    if np.any(degenerate):
        out[:, degenerate] = lb[degenerate]
    return out
