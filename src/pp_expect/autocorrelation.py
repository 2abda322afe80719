"""Spatial-lag (lagsar) correction of the mean.

In a spatial-lag model the response satisfies ``y = ρ·W·y + mu + ε``,
so the implied mean is the solution of

    (I − ρ·W) · y = mu

for every posterior draw, where ``ρ`` is the per-draw lag coefficient
and ``W`` the fixed spatial weight matrix.

Performance
~~~~~~~~~~~
This is the one place where the engine needs a dense linear solve per
posterior draw: the cost is ``O(nobs³)`` per draw and the per-draw
system matrix takes ``O(nobs²)`` memory.  For large ``nobs`` this is
slow by nature; it is not a defect.  Solves are independent across
draws, so when ``n_jobs != 1`` (see :func:`pp_expect.set_n_jobs`) they
run on a ``joblib.Parallel(prefer="threads")`` pool.  LAPACK releases
the GIL during the factorisation, so threads overlap without data
serialisation overhead.
"""

from __future__ import annotations

import logging

import numpy as np
from joblib import Parallel, delayed

from ._compat import _ensure_numpy
from ._config import get_n_jobs
from .draws import DrawsBundle
from .exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)


def has_lagsar(draws: DrawsBundle) -> bool:
    """Whether the bundle carries a spatial-lag structure."""
    return draws.ac.get("lagsar") is not None


def lagsar_expectation(draws: DrawsBundle, mu: np.ndarray) -> np.ndarray:
    """Correct *mu* for a spatial lag by solving ``(I − ρ·W)·y = mu``.

    Args:
        draws: Bundle whose ``ac`` holds ``"lagsar"`` (``nsamples``
            lag coefficients) and ``"Msar"`` (``(nobs, nobs)`` weights).
        mu: Uncorrected mean, broadcastable to ``(nsamples, nobs)``.

    Returns:
        Corrected mean of shape ``(nsamples, nobs)``.

    Raises:
        ShapeMismatchError: If ``lagsar`` or ``Msar`` have the wrong
            shape.
    """
    nsamples, nobs = draws.dim_mu
    rho = np.ravel(_ensure_numpy(draws.ac["lagsar"], name="lagsar"))
    weights = _ensure_numpy(draws.ac.get("Msar"), name="Msar")
    if rho.size != nsamples:
        msg = f"lagsar has {rho.size} draws; expected nsamples={nsamples}."
        raise ShapeMismatchError(msg)
    if weights.shape != (nobs, nobs):
        msg = f"Msar must have shape ({nobs}, {nobs}), got {weights.shape}."
        raise ShapeMismatchError(msg)

    mu = np.broadcast_to(mu, (nsamples, nobs))
    identity = np.eye(nobs)

    def _solve(s: int) -> np.ndarray:
        return np.linalg.solve(identity - rho[s] * weights, mu[s])

    n_jobs = get_n_jobs()
    logger.debug("Solving %d lagsar systems of size %d (n_jobs=%d).", nsamples, nobs, n_jobs)
    if n_jobs == 1:
        rows = [_solve(s) for s in range(nsamples)]
    else:
        rows = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_solve)(s) for s in range(nsamples)
        )
    return np.vstack(rows)
