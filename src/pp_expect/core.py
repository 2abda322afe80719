"""Posterior expectation orchestrator.

:func:`compute_expectation` is the single entry point of the package.
Given a draws bundle it computes, per posterior draw and observation,
one of three things:

1. **A distributional parameter** (``dpar="sigma"``): the parameter's
   draws, inverse-link transformed on the response scale.  Constant
   parameters are broadcast to ``(nsamples, nobs)``.  Mixture weights
   (``theta<k>``) are returned normalised across components.
2. **A non-linear parameter** (``nlpar="b"``): looked up and
   transformed the same way.
3. **The response mean** (neither): every parameter is moved to the
   response scale, then the mean is taken from the truncation
   subsystem when any observation carries a finite bound, and from the
   family's expectation provider otherwise.  On the linear scale the
   ``mu`` linear predictors are returned instead (stacked on a third
   axis when there are several).

Modes 1 and 2 are mutually exclusive.

Post-processing
~~~~~~~~~~~~~~~
Every result is expanded to full ``(nsamples, nobs[, ncat])`` shape
and copied, so the caller's arrays are never aliased.  Observations
are then put back into the caller's order with ``old_order`` (unless
``sort=True``), and optionally reduced to a posterior summary.

Multivariate models
~~~~~~~~~~~~~~~~~~~
A :class:`~pp_expect.draws.MultivariateDraws` is processed response
by response.  With more than one response the results are stacked
along a new trailing axis; a single response is returned unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from .draws import (
    DrawsBundle,
    MultivariateDraws,
    dpar_class,
    dpar_id,
    get_dpar,
    get_nlpar,
    get_theta,
)
from .exceptions import ConflictingArgumentsError, InvalidParameterError, ShapeMismatchError
from .families import resolve_family, response_scale_draws
from .summary import DEFAULT_PROBS, posterior_summary, reorder_obs
from .truncation import is_truncated, truncated_expectation

logger = logging.getLogger(__name__)

_SCALES = ("response", "linear")


def compute_expectation(
    draws: DrawsBundle | MultivariateDraws,
    scale: str = "response",
    dpar: str | None = None,
    nlpar: str | None = None,
    sort: bool = False,
    summary: bool = False,
    robust: bool = False,
    probs: Sequence[float] = DEFAULT_PROBS,
) -> np.ndarray:
    """Expected values of the posterior predictive distribution.

    Args:
        draws: Posterior draws of one response, or of several via
            :class:`~pp_expect.draws.MultivariateDraws`.
        scale: ``"response"`` (default) or ``"linear"``.  On the linear
            scale no inverse link is applied and the response mean is
            replaced by the ``mu`` linear predictor(s).
        dpar: Name of a distributional parameter to return instead of
            the response mean.
        nlpar: Name of a non-linear parameter to return instead of the
            response mean.
        sort: Keep the internal observation order instead of restoring
            the caller's order from ``old_order``.
        summary: Reduce the draws axis to summary statistics (see
            :func:`~pp_expect.summary.posterior_summary`).
        robust: With *summary*, use median and MAD instead of mean and
            standard deviation.
        probs: With *summary*, the quantile probabilities.

    Returns:
        Without *summary*: ``(nsamples, nobs)`` for univariate
        families, ``(nsamples, nobs, ncat)`` for ordinal and
        categorical families, with a trailing response axis for
        multivariate models.  With *summary*, the draws axis is
        replaced by the statistics axis placed after ``nobs``.

    Raises:
        ValueError: If *scale* is unknown or *probs* is invalid.
        ConflictingArgumentsError: If both *dpar* and *nlpar* are
            given.
        InvalidParameterError: If *dpar* or *nlpar* is not part of the
            model.
        UnsupportedOperationError: If the family has no mean, or no
            truncated mean when bounds are present.
        InvalidBoundsError: For unusable truncation bounds.
        ShapeMismatchError: If a family returns an array that does not
            conform to ``(nsamples, nobs)``.

    Examples:
        >>> import numpy as np
        >>> from pp_expect import DrawsBundle, compute_expectation
        >>> draws = DrawsBundle(
        ...     family="binomial",
        ...     dpars={"mu": np.array([[0.4]])},
        ...     data={"trials": [10]},
        ... )
        >>> compute_expectation(draws)
        array([[4.]])
    """
    if scale not in _SCALES:
        msg = f"scale must be one of {_SCALES}, got {scale!r}."
        raise ValueError(msg)
    if dpar is not None and nlpar is not None:
        msg = "dpar and nlpar cannot be specified at the same time."
        raise ConflictingArgumentsError(msg)

    if isinstance(draws, MultivariateDraws):
        outs = []
        for resp_draws in draws.resps.values():
            outs.append(_expect_single(resp_draws, scale, dpar, nlpar, sort))
        if len(outs) == 1:
            out = outs[0]
        else:
            shapes = {o.shape for o in outs}
            if len(shapes) > 1:
                msg = f"Responses produced differently shaped outputs: {sorted(shapes)}."
                raise ShapeMismatchError(msg)
            out = np.stack(outs, axis=-1)
    else:
        out = _expect_single(draws, scale, dpar, nlpar, sort)

    if summary:
        out = posterior_summary(out, probs=probs, robust=robust)
    return out


def posterior_linpred(
    draws: DrawsBundle | MultivariateDraws,
    dpar: str | None = None,
    nlpar: str | None = None,
    sort: bool = False,
) -> np.ndarray:
    """Draws of the linear predictor(s); ``compute_expectation(scale="linear")``."""
    return compute_expectation(draws, scale="linear", dpar=dpar, nlpar=nlpar, sort=sort)


# ------------------------------------------------------------------ #
# Single-response dispatch
# ------------------------------------------------------------------ #


def _expect_single(
    draws: DrawsBundle,
    scale: str,
    dpar: str | None,
    nlpar: str | None,
    sort: bool,
) -> np.ndarray:
    ilink = scale == "response"
    if dpar is not None:
        logger.debug("Returning distributional parameter %r (scale=%s).", dpar, scale)
        out = _dpar_draws(draws, dpar, ilink)
    elif nlpar is not None:
        logger.debug("Returning non-linear parameter %r (scale=%s).", nlpar, scale)
        out = get_nlpar(draws, nlpar, ilink=ilink)
    elif ilink:
        out = _response_mean(draws)
    else:
        logger.debug("Returning the mu linear predictor(s).")
        out = _linear_mu(draws)

    out = _full_shape(out, draws)
    return reorder_obs(out, draws.old_order, sort)


def _dpar_draws(draws: DrawsBundle, dpar: str, ilink: bool) -> np.ndarray:
    out = get_dpar(draws, dpar, ilink=ilink)
    if not ilink or dpar_class(dpar) != "theta":
        return out
    family = resolve_family(draws.family)
    k = dpar_id(dpar)
    if family.kind != "mixture" or k is None:
        return out
    theta = get_theta(draws, len(family.components))
    return theta[:, k - 1][:, None] if theta.ndim == 2 else theta[:, :, k - 1]


def _response_mean(draws: DrawsBundle) -> np.ndarray:
    family = resolve_family(draws.family)
    prepared = response_scale_draws(draws, family)
    if is_truncated(draws):
        logger.debug("Family %r is truncated; using the truncated mean.", family.name)
        return truncated_expectation(prepared)
    logger.debug("Computing the response mean of family %r.", family.name)
    return family.expectation(prepared)


def _linear_mu(draws: DrawsBundle) -> np.ndarray:
    names = [name for name in draws.dpars if name.startswith("mu")]
    if not names:
        msg = "The draws bundle has no 'mu' linear predictor."
        raise InvalidParameterError(msg)
    if len(names) == 1:
        return get_dpar(draws, names[0], ilink=False)
    shape = draws.dim_mu
    return np.stack(
        [np.broadcast_to(get_dpar(draws, name, ilink=False), shape) for name in names],
        axis=2,
    )


def _full_shape(out: np.ndarray, draws: DrawsBundle) -> np.ndarray:
    """Expand ``(nsamples, 1[, ...])`` results to ``nobs`` columns and copy."""
    out = np.asarray(out, dtype=float)
    nsamples, nobs = draws.dim_mu
    if out.ndim < 2 or out.shape[0] != nsamples or out.shape[1] not in (1, nobs):
        family = getattr(draws.family, "name", draws.family)
        msg = (
            f"Expected an array of shape ({nsamples}, {nobs}, ...) for family "
            f"{family!r}, got {out.shape}."
        )
        raise ShapeMismatchError(msg)
    return np.array(np.broadcast_to(out, (nsamples, nobs) + out.shape[2:]))
