"""Runtime options for the pp_expect package.

Two options are exposed:

* ``n_jobs`` — number of threads used for the per-draw linear solves of
  the spatial-lag correction (see :mod:`pp_expect.autocorrelation`).
* ``series_tolerance`` — stopping tolerance for means that are only
  available as infinite series (discrete Weibull, COM-Poisson).

Resolution order (first match wins):
    1. Programmatic override via :func:`set_n_jobs` /
       :func:`set_series_tolerance`.
    2. The ``PP_EXPECT_N_JOBS`` / ``PP_EXPECT_SERIES_TOL`` environment
       variables.
    3. Built-in defaults (``1`` and ``1e-10``).

Examples:
    Use four threads from the shell::

        export PP_EXPECT_N_JOBS=4

    Tighten the series tolerance programmatically::

        import pp_expect
        pp_expect.set_series_tolerance(1e-14)

    Restore the default resolution order::

        pp_expect.set_series_tolerance("auto")
"""

from __future__ import annotations

import os

_DEFAULT_N_JOBS = 1
_DEFAULT_SERIES_TOL = 1e-10

# Sentinels indicating "no programmatic override has been set".
_n_jobs_override: int | None = None
_series_tol_override: float | None = None


def get_n_jobs() -> int:
    """Return the number of worker threads for per-draw solves.

    Resolution order:
        1. Value set by :func:`set_n_jobs`.
        2. ``PP_EXPECT_N_JOBS`` environment variable.
        3. ``1``.

    Returns:
        A positive integer, or ``-1`` meaning "all cores" (joblib
        convention).
    """
    if _n_jobs_override is not None:
        return _n_jobs_override

    env = os.environ.get("PP_EXPECT_N_JOBS", "").strip()
    if env:
        try:
            return _validate_n_jobs(int(env))
        except ValueError:
            msg = f"PP_EXPECT_N_JOBS must be a non-zero integer >= -1, got {env!r}."
            raise ValueError(msg) from None

    return _DEFAULT_N_JOBS


def set_n_jobs(n_jobs: int | str | None) -> None:
    """Override the number of worker threads.

    Args:
        n_jobs: A positive integer, ``-1`` for all cores, or
            ``None`` / ``"auto"`` to restore the default resolution
            order.

    Raises:
        ValueError: If *n_jobs* is zero or below ``-1``.
    """
    global _n_jobs_override
    if n_jobs is None or (isinstance(n_jobs, str) and n_jobs.strip().lower() == "auto"):
        _n_jobs_override = None
        return
    _n_jobs_override = _validate_n_jobs(int(n_jobs))


def _validate_n_jobs(n_jobs: int) -> int:
    if n_jobs == 0 or n_jobs < -1:
        msg = f"n_jobs must be a positive integer or -1, got {n_jobs}."
        raise ValueError(msg)
    return n_jobs


def get_series_tolerance() -> float:
    """Return the stopping tolerance for infinite-series means.

    Resolution order:
        1. Value set by :func:`set_series_tolerance`.
        2. ``PP_EXPECT_SERIES_TOL`` environment variable.
        3. ``1e-10``.
    """
    if _series_tol_override is not None:
        return _series_tol_override

    env = os.environ.get("PP_EXPECT_SERIES_TOL", "").strip()
    if env:
        try:
            return _validate_tolerance(float(env))
        except ValueError:
            msg = f"PP_EXPECT_SERIES_TOL must be a number in (0, 1), got {env!r}."
            raise ValueError(msg) from None

    return _DEFAULT_SERIES_TOL


def set_series_tolerance(tol: float | str | None) -> None:
    """Override the infinite-series stopping tolerance.

    Args:
        tol: A float in ``(0, 1)``, or ``None`` / ``"auto"`` to restore
            the default resolution order.

    Raises:
        ValueError: If *tol* is outside ``(0, 1)``.
    """
    global _series_tol_override
    if tol is None or (isinstance(tol, str) and tol.strip().lower() == "auto"):
        _series_tol_override = None
        return
    _series_tol_override = _validate_tolerance(float(tol))


def _validate_tolerance(tol: float) -> float:
    if not 0.0 < tol < 1.0:
        msg = f"Series tolerance must lie in (0, 1), got {tol}."
        raise ValueError(msg)
    return tol
