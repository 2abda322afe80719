"""Observation reordering and posterior summaries.

Expected-value arrays keep posterior draws on axis 0.  This module
restores the caller's observation order and, on request, reduces the
draws axis to a point estimate, an error estimate, and quantiles.

Summary columns
~~~~~~~~~~~~~~~
=============  ==============================================
Column         Meaning
=============  ==============================================
Estimate       posterior mean (median when ``robust``)
Est.Error      standard deviation (normal-consistent MAD when ``robust``)
Q<p>           posterior quantile at probability ``p``
=============  ==============================================
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd
from scipy.stats import median_abs_deviation

DEFAULT_PROBS = (0.025, 0.975)


def reorder_obs(out: np.ndarray, old_order: np.ndarray | None, sort: bool = False) -> np.ndarray:
    """Restore the caller-visible observation order.

    Args:
        out: Array with observations on axis 1.
        old_order: Index array such that ``out[:, old_order]`` is in
            caller order, or ``None``.
        sort: Keep the internal (sorted) order instead.

    Returns:
        The reordered array, or *out* itself when nothing changes.
    """
    if sort or old_order is None:
        return out
    return out[:, old_order]


def _validate_probs(probs: Sequence[float]) -> np.ndarray:
    probs = np.asarray(probs, dtype=float).ravel()
    if probs.size == 0:
        msg = "probs must contain at least one probability."
        raise ValueError(msg)
    if np.any((probs < 0) | (probs > 1)):
        msg = f"probs must lie in [0, 1], got {probs.tolist()}."
        raise ValueError(msg)
    return probs


def summary_labels(probs: Sequence[float] = DEFAULT_PROBS) -> list[str]:
    """Column labels of a posterior summary, e.g. ``["Estimate", "Est.Error", "Q2.5", "Q97.5"]``."""
    probs = _validate_probs(probs)
    return ["Estimate", "Est.Error"] + [f"Q{100 * p:g}" for p in probs]


def posterior_summary(
    x: np.ndarray,
    probs: Sequence[float] = DEFAULT_PROBS,
    robust: bool = False,
) -> np.ndarray:
    """Reduce the draws axis of *x* to summary statistics.

    Args:
        x: Draws of shape ``(nsamples, nobs)`` or
            ``(nsamples, nobs, ncat)``.
        probs: Quantile probabilities.
        robust: Use median and MAD instead of mean and SD.

    Returns:
        ``(nobs, 2 + len(probs))`` for 2-D input, or
        ``(nobs, 2 + len(probs), ncat)`` for 3-D input.

    Raises:
        ValueError: If *probs* is empty or outside ``[0, 1]``, or *x*
            is not 2-D or 3-D.
    """
    probs = _validate_probs(probs)
    x = np.asarray(x, dtype=float)
    if x.ndim not in (2, 3):
        msg = f"posterior_summary expects a 2-D or 3-D array, got {x.ndim}-D."
        raise ValueError(msg)

    if robust:
        estimate = np.median(x, axis=0)
        error = median_abs_deviation(x, axis=0, scale="normal")
    else:
        estimate = np.mean(x, axis=0)
        error = np.std(x, axis=0, ddof=1) if x.shape[0] > 1 else np.full(estimate.shape, np.nan)
    quantiles = np.quantile(x, probs, axis=0)

    # Statistics go on axis 1: (nobs, stat) or (nobs, stat, ncat).
    return np.stack([estimate, error, *quantiles], axis=1)


def summary_frame(
    summary: np.ndarray,
    probs: Sequence[float] = DEFAULT_PROBS,
    index: Sequence | None = None,
) -> pd.DataFrame:
    """Wrap a 2-D posterior summary in a labelled DataFrame.

    Args:
        summary: Output of :func:`posterior_summary` for 2-D draws.
        probs: The probabilities used to build *summary*.
        index: Optional observation labels.

    Raises:
        ValueError: If *summary* is not 2-D or its column count does
            not match *probs*.
    """
    summary = np.asarray(summary)
    columns = summary_labels(probs)
    if summary.ndim != 2 or summary.shape[1] != len(columns):
        msg = (
            f"summary must have shape (nobs, {len(columns)}) for these probs, "
            f"got {summary.shape}."
        )
        raise ValueError(msg)
    return pd.DataFrame(summary, columns=columns, index=index)
