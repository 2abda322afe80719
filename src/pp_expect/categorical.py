"""Category probability assembly for ordinal and categorical families.

Ordinal families (``cumulative``, ``sratio``, ``cratio``, ``acat``)
turn one latent linear predictor ``eta`` and a set of ordered
thresholds into a probability vector over ``nthres + 1`` categories.
Categorical families (``categorical``, ``multinomial``, ``dirichlet``)
turn one linear predictor per category into a simplex via the softmax.

Every result has shape ``(nsamples, nobs, ncat)``.

Ordinal densities
~~~~~~~~~~~~~~~~~
With ``F`` the inverse link, thresholds ``t_1 < … < t_T`` and
discrimination ``disc``:

=============  ==========================================================
Family         ``P(Y = k)``
=============  ==========================================================
cumulative     ``F(disc·(t_k − eta)) − F(disc·(t_{k−1} − eta))``
sratio         ``q_k · Π_{j<k} (1 − q_j)``,  ``q_j = F(disc·(t_j − eta))``
cratio         ``(1 − q_k) · Π_{j<k} q_j``,  ``q_j = F(disc·(eta − t_j))``
acat (logit)   ``∝ exp(Σ_{j<k} disc·(eta − t_j))``
acat (other)   ``∝ Π_{j<k} q_j · Π_{j≥k} (1 − q_j)``,  ``q_j = F(disc·(eta − t_j))``
=============  ==========================================================

with ``t_0 = −∞`` and ``t_{T+1} = +∞``.  The densities work on the last
axis and broadcast over any leading axes, so a block of observations
sharing the same thresholds is evaluated in one call.

Ordinal padding
~~~~~~~~~~~~~~~
Observations may use different numbers of thresholds.  The category
axis is sized for the largest count; categories that do not exist for
an observation carry exactly zero probability.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
from scipy.special import softmax

from .draws import DrawsBundle, get_dpar, threshold_windows
from .exceptions import InvalidParameterError, ShapeMismatchError
from .links import inverse_link

OrdinalDensity = Callable[[np.ndarray, np.ndarray, np.ndarray, str], np.ndarray]

# ------------------------------------------------------------------ #
# Ordinal densities
# ------------------------------------------------------------------ #
#
# Arguments are pre-broadcast by the caller: ``eta`` and ``disc`` have a
# trailing axis of length 1, ``thres`` has a trailing axis of length T.
# Each function returns T + 1 category probabilities on the last axis.


def _leading_one(x: np.ndarray) -> np.ndarray:
    return np.concatenate([np.ones(x.shape[:-1] + (1,)), x], axis=-1)


def dcumulative(eta: np.ndarray, thres: np.ndarray, disc: np.ndarray, link: str) -> np.ndarray:
    """Category probabilities of the cumulative model."""
    cdf = inverse_link(disc * (thres - eta), link)
    shape = cdf.shape[:-1] + (1,)
    cdf = np.concatenate([np.zeros(shape), cdf, np.ones(shape)], axis=-1)
    return np.diff(cdf, axis=-1)


def dsratio(eta: np.ndarray, thres: np.ndarray, disc: np.ndarray, link: str) -> np.ndarray:
    """Category probabilities of the stopping-ratio model."""
    q = inverse_link(disc * (thres - eta), link)
    survive = _leading_one(np.cumprod(1.0 - q, axis=-1))
    return np.concatenate([q * survive[..., :-1], survive[..., -1:]], axis=-1)


def dcratio(eta: np.ndarray, thres: np.ndarray, disc: np.ndarray, link: str) -> np.ndarray:
    """Category probabilities of the continuation-ratio model."""
    q = inverse_link(disc * (eta - thres), link)
    survive = _leading_one(np.cumprod(q, axis=-1))
    return np.concatenate([(1.0 - q) * survive[..., :-1], survive[..., -1:]], axis=-1)


def dacat(eta: np.ndarray, thres: np.ndarray, disc: np.ndarray, link: str) -> np.ndarray:
    """Category probabilities of the adjacent-category model."""
    if link == "logit":
        steps = disc * (eta - thres)
        shape = steps.shape[:-1] + (1,)
        log_unnorm = np.concatenate([np.zeros(shape), np.cumsum(steps, axis=-1)], axis=-1)
        return softmax(log_unnorm, axis=-1)
    q = inverse_link(disc * (eta - thres), link)
    below = _leading_one(np.cumprod(q, axis=-1))
    # Π_{j≥k} (1 − q_j): reversed cumulative product, then a trailing 1.
    above = np.flip(np.cumprod(np.flip(1.0 - q, axis=-1), axis=-1), axis=-1)
    above = np.concatenate([above, np.ones(above.shape[:-1] + (1,))], axis=-1)
    unnorm = below * above
    return unnorm / np.sum(unnorm, axis=-1, keepdims=True)


ORDINAL_DENSITIES: dict[str, OrdinalDensity] = {
    "cumulative": dcumulative,
    "sratio": dsratio,
    "cratio": dcratio,
    "acat": dacat,
}


# ------------------------------------------------------------------ #
# Ordinal assembly
# ------------------------------------------------------------------ #


def ordinal_expectation(draws: DrawsBundle, density: OrdinalDensity) -> np.ndarray:
    """Category probabilities of an ordinal model.

    Observations are grouped by their threshold window; each group is
    evaluated with one vectorised density call, and shorter category
    vectors are zero-padded to the largest category count.

    Args:
        draws: Bundle with response-scale parameters.  ``mu`` is the
            latent linear predictor; ``disc`` is optional (default 1).
        density: One of the functions in :data:`ORDINAL_DENSITIES`.

    Returns:
        Array of shape ``(nsamples, nobs, max(nthres) + 1)``.
    """
    shape = draws.dim_mu
    eta = np.broadcast_to(get_dpar(draws, "mu", ilink=False), shape)
    if "disc" in draws.dpars:
        disc = np.broadcast_to(get_dpar(draws, "disc"), shape)
    else:
        disc = np.ones(shape)

    windows = threshold_windows(draws)
    nthres = windows[:, 1] - windows[:, 0]
    ncat_max = int(nthres.max()) + 1
    out = np.zeros(shape + (ncat_max,))

    for start, stop in np.unique(windows, axis=0):
        idx = np.flatnonzero((windows[:, 0] == start) & (windows[:, 1] == stop))
        thres = draws.thres[:, None, start:stop]
        probs = density(eta[:, idx, None], thres, disc[:, idx, None], draws.link)
        out[:, idx, : stop - start + 1] = probs
    return out


# ------------------------------------------------------------------ #
# Categorical assembly
# ------------------------------------------------------------------ #


def category_etas(draws: DrawsBundle) -> np.ndarray:
    """Stack the per-category ``mu*`` parameters along a third axis.

    The order of the ``mu*`` entries in ``draws.dpars`` defines the
    category order.

    Returns:
        Array of shape ``(nsamples, nobs, n_mu)``.
    """
    names = [name for name in draws.dpars if name.startswith("mu")]
    if not names:
        msg = "Categorical families require at least one 'mu<category>' parameter."
        raise InvalidParameterError(msg)
    shape = draws.dim_mu
    return np.stack(
        [np.broadcast_to(get_dpar(draws, name, ilink=False), shape) for name in names], axis=2
    )


def _category_probs(draws: DrawsBundle) -> np.ndarray:
    eta = category_etas(draws)
    if draws.refcat is not None:
        eta = np.insert(eta, draws.refcat, 0.0, axis=2)
    ncat = draws.data.get("ncat")
    if ncat is not None and int(ncat) != eta.shape[2]:
        msg = (
            f"data['ncat'] is {int(ncat)} but the draws define "
            f"{eta.shape[2]} categories."
        )
        raise ShapeMismatchError(msg)
    return softmax(eta, axis=2)


def categorical_expectation(draws: DrawsBundle) -> np.ndarray:
    """Category probabilities of a categorical model."""
    return _category_probs(draws)


def multinomial_expectation(draws: DrawsBundle) -> np.ndarray:
    """Expected category counts of a multinomial model."""
    trials = draws.data_vector("trials")
    return _category_probs(draws) * trials[None, :, None]


def dirichlet_expectation(draws: DrawsBundle) -> np.ndarray:
    """Expected simplex of a Dirichlet model.

    Only the ``mu*`` parameters enter; the precision ``phi`` does not
    affect the mean.
    """
    return _category_probs(draws)
