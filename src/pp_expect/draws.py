"""Draws bundle — the posterior-sample container consumed by the engine.

A :class:`DrawsBundle` carries everything needed to compute expected
values for one response variable: the family tag, the distributional
parameters (``dpars``), the non-linear parameters (``nlpars``),
per-observation data (trial counts, truncation bounds, threshold
groupings), ordinal thresholds, autocorrelation terms, and the
permutation that restores the caller's observation order.

Parameter representation
~~~~~~~~~~~~~~~~~~~~~~~~
Each entry of ``dpars`` / ``nlpars`` is one of:

* :class:`LinearPredictor` — predicted parameter on the linear scale,
  shape ``(nsamples, nobs)``, with the link whose inverse maps it to
  the response scale.
* 2-D array ``(nsamples, nobs)`` or ``(nsamples, 1)`` — predicted
  parameter already on the response scale.
* 1-D array ``(nsamples,)`` — parameter constant across observations.
* scalar — parameter fixed across draws and observations.

Constant parameters are stored as vectors and exposed as
``(nsamples, 1)`` columns, so that they broadcast against
``(nsamples, nobs)`` matrices without being replicated in memory.

Bundles are frozen.  Derived bundles (response-scale parameters,
mixture components, spatial-lag corrected means) are created with
:func:`dataclasses.replace`; the caller's bundle is never modified.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
from scipy.special import softmax

from ._compat import DrawsLike, _ensure_numpy
from .exceptions import InvalidParameterError, ShapeMismatchError
from .links import inverse_link

# Per-observation data entries that are numeric vectors of length
# 1 or ``nobs``.  Everything else in ``data`` is passed through.
_VECTOR_DATA = ("trials", "lb", "ub", "nthres")

_DPAR_SUFFIX = re.compile(r"^(?P<cls>[a-z_]+?)(?P<idx>\d+)$")


# ------------------------------------------------------------------ #
# Linear predictors
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class LinearPredictor:
    """A predicted parameter on the linear-predictor scale.

    Attributes:
        eta: Draws of the linear predictor, shape ``(nsamples, nobs)``.
        link: Name of the link function (see
            :func:`pp_expect.links.inverse_link`).
    """

    eta: np.ndarray
    link: str = "identity"

    def __post_init__(self) -> None:
        eta = _ensure_numpy(self.eta, name="eta")
        if eta.ndim != 2:
            msg = f"LinearPredictor.eta must be 2-D (nsamples, nobs), got shape {eta.shape}."
            raise ShapeMismatchError(msg)
        object.__setattr__(self, "eta", eta)


# ------------------------------------------------------------------ #
# Broadcasting
# ------------------------------------------------------------------ #


def broadcast_to(x: DrawsLike | float, rows: int, cols: int) -> np.ndarray:
    """Expand a per-observation vector to a ``(rows, cols)`` draws matrix.

    Every row of the result equals *x*, so that the vector lines up
    with the observation axis of a ``(nsamples, nobs)`` parameter
    matrix.  A length-1 input is repeated across all columns.

    Args:
        x: Scalar or vector of length 1 or *cols*.
        rows: Number of posterior draws.
        cols: Number of observations.

    Returns:
        A new ``float`` array of shape ``(rows, cols)``.

    Raises:
        ShapeMismatchError: If the length of *x* is neither 1 nor
            *cols*.
    """
    vec = np.ravel(_ensure_numpy(x, name="x"))
    if vec.size not in (1, cols):
        msg = (
            f"Cannot broadcast a vector of length {vec.size} to "
            f"({rows}, {cols}); expected length 1 or {cols}."
        )
        raise ShapeMismatchError(msg)
    return np.array(np.broadcast_to(vec, (rows, cols)))


def dpar_class(name: str) -> str:
    """Strip a trailing component index from a parameter name.

    ``"mu2"`` → ``"mu"``, ``"theta1"`` → ``"theta"``, ``"sigma"`` →
    ``"sigma"``.
    """
    match = _DPAR_SUFFIX.match(name)
    return match.group("cls") if match else name


def dpar_id(name: str) -> int | None:
    """Return the 1-based component index of *name*, or ``None``."""
    match = _DPAR_SUFFIX.match(name)
    return int(match.group("idx")) if match else None


# ------------------------------------------------------------------ #
# DrawsBundle
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class DrawsBundle:
    """Posterior draws of one response's distributional parameters.

    Attributes:
        family: Family tag (e.g. ``"gaussian"``), a registered
            :class:`~pp_expect.families.ExpectationProvider`, or a
            :class:`~pp_expect.families.MixtureFamily`.
        dpars: Distributional parameters by name (see module docs).
        nsamples: Number of posterior draws.  Inferred from the
            parameters when omitted.
        nobs: Number of observations.  Inferred from the parameters
            or per-observation data when omitted.
        data: Auxiliary per-observation data: ``trials``, ``lb``,
            ``ub``, ``ncat``, ``nthres``, ``Jthres``.
        link: Link of the response family.  Used as the CDF of the
            ordinal category densities.
        nlpars: Non-linear parameters by name.
        thres: Ordinal thresholds, shape ``(nsamples, T)``.
        ac: Autocorrelation terms; ``"lagsar"`` (``nsamples``) and
            ``"Msar"`` (``(nobs, nobs)``) for a spatial lag.
        old_order: 0-based index array restoring the caller's
            observation order.  ``None`` when no reordering happened.
        refcat: Position of the reference category (linear predictor
            fixed at 0) for categorical-type families.  ``None`` when
            every category has its own ``mu`` parameter.
    """

    family: Any
    dpars: Mapping[str, Any]
    nsamples: int | None = None
    nobs: int | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
    link: str = "identity"
    nlpars: Mapping[str, Any] = field(default_factory=dict)
    thres: np.ndarray | None = None
    ac: Mapping[str, Any] = field(default_factory=dict)
    old_order: np.ndarray | None = None
    refcat: int | None = 0

    def __post_init__(self) -> None:
        dpars = {name: _convert_param(value, name) for name, value in self.dpars.items()}
        nlpars = {
            name: _convert_param(value, name) for name, value in self.nlpars.items()
        }
        data = dict(self.data)
        for key in _VECTOR_DATA:
            if key in data and data[key] is not None:
                data[key] = np.ravel(_ensure_numpy(data[key], name=key))

        nsamples, nobs = _infer_dims(
            {**dpars, **nlpars}, data, self.nsamples, self.nobs
        )
        object.__setattr__(self, "nsamples", nsamples)
        object.__setattr__(self, "nobs", nobs)

        # Scalars are constant across draws too; store them as vectors.
        for params in (dpars, nlpars):
            for name, value in params.items():
                if isinstance(value, np.ndarray) and value.ndim == 0:
                    params[name] = np.full(nsamples, float(value))
                _check_param_shape(params[name], name, nsamples, nobs)
        for key in _VECTOR_DATA:
            if key in data and data[key] is not None and data[key].size not in (1, nobs):
                msg = (
                    f"data[{key!r}] has length {data[key].size}; expected 1 or "
                    f"nobs={nobs}."
                )
                raise ShapeMismatchError(msg)

        object.__setattr__(self, "dpars", dpars)
        object.__setattr__(self, "nlpars", nlpars)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "ac", dict(self.ac))

        if self.thres is not None:
            thres = _ensure_numpy(self.thres, name="thres")
            if thres.ndim == 1:
                thres = thres[None, :] if nsamples == 1 else thres[:, None]
            if thres.ndim != 2 or thres.shape[0] != nsamples:
                msg = f"thres must have shape (nsamples={nsamples}, T), got {thres.shape}."
                raise ShapeMismatchError(msg)
            object.__setattr__(self, "thres", thres)

        if self.old_order is not None:
            order = np.asarray(self.old_order, dtype=int)
            if order.shape != (nobs,):
                msg = f"old_order must have length nobs={nobs}, got shape {order.shape}."
                raise ShapeMismatchError(msg)
            object.__setattr__(self, "old_order", order)

    # ---- Convenience accessors ------------------------------------

    @property
    def dim_mu(self) -> tuple[int, int]:
        """Expected shape ``(nsamples, nobs)`` of the main parameter."""
        return (self.nsamples, self.nobs)

    def data_vector(self, key: str, default: float | None = None) -> np.ndarray:
        """Return ``data[key]`` as a length-``nobs`` vector.

        Raises:
            KeyError: If *key* is absent and no *default* is given.
        """
        value = self.data.get(key)
        if value is None:
            if default is None:
                msg = f"Draws bundle has no data entry {key!r}."
                raise KeyError(msg)
            value = default
        return broadcast_to(value, 1, self.nobs)[0]

    def with_dpars(self, dpars: Mapping[str, Any], **changes: Any) -> DrawsBundle:
        """Return a copy of the bundle with *dpars* replaced."""
        return replace(self, dpars=dict(dpars), **changes)


@dataclass(frozen=True)
class MultivariateDraws:
    """Draws bundles of several responses sharing the same posterior draws.

    Attributes:
        resps: Ordered mapping of response name to :class:`DrawsBundle`.
    """

    resps: Mapping[str, DrawsBundle]

    def __post_init__(self) -> None:
        if not self.resps:
            msg = "MultivariateDraws requires at least one response."
            raise ValueError(msg)
        nsamples = {draws.nsamples for draws in self.resps.values()}
        if len(nsamples) > 1:
            msg = f"All responses must share nsamples, got {sorted(nsamples)}."
            raise ShapeMismatchError(msg)
        object.__setattr__(self, "resps", dict(self.resps))


# ------------------------------------------------------------------ #
# Construction helpers
# ------------------------------------------------------------------ #


def _convert_param(value: Any, name: str) -> LinearPredictor | np.ndarray:
    if isinstance(value, LinearPredictor):
        return value
    arr = _ensure_numpy(value, name=name)
    if arr.ndim > 2:
        msg = f"Parameter {name!r} must be at most 2-D, got shape {arr.shape}."
        raise ShapeMismatchError(msg)
    return arr


def _infer_dims(
    params: dict[str, Any],
    data: dict[str, Any],
    nsamples: int | None,
    nobs: int | None,
) -> tuple[int, int]:
    for value in params.values():
        arr = value.eta if isinstance(value, LinearPredictor) else value
        if nsamples is None and arr.ndim >= 1:
            nsamples = arr.shape[0]
        if nobs is None and arr.ndim == 2 and arr.shape[1] > 1:
            nobs = arr.shape[1]
    if nobs is None:
        sizes = [data[key].size for key in _VECTOR_DATA if data.get(key) is not None]
        nobs = max(sizes, default=1)
    if nsamples is None:
        msg = "Cannot infer nsamples: no parameter varies across draws."
        raise ShapeMismatchError(msg)
    return int(nsamples), int(nobs)


def _check_param_shape(value: Any, name: str, nsamples: int, nobs: int) -> None:
    arr = value.eta if isinstance(value, LinearPredictor) else value
    if arr.shape[0] != nsamples:
        msg = f"Parameter {name!r} has {arr.shape[0]} rows; expected nsamples={nsamples}."
        raise ShapeMismatchError(msg)
    if arr.ndim == 2 and arr.shape[1] not in (1, nobs):
        msg = (
            f"Parameter {name!r} has {arr.shape[1]} columns; expected 1 or "
            f"nobs={nobs}."
        )
        raise ShapeMismatchError(msg)


# ------------------------------------------------------------------ #
# Parameter access
# ------------------------------------------------------------------ #


def is_predicted(value: Any) -> bool:
    """Whether a parameter varies across observations."""
    return isinstance(value, LinearPredictor) or (
        isinstance(value, np.ndarray) and value.ndim == 2
    )


def get_dpar(draws: DrawsBundle, dpar: str, ilink: bool = True) -> np.ndarray:
    """Draws of a distributional parameter as a 2-D array.

    Predicted parameters are returned with shape ``(nsamples, nobs)``
    (or ``(nsamples, 1)``), transformed by their inverse link when
    *ilink* is true.  Constant parameters are returned as a
    ``(nsamples, 1)`` column.
    """
    return _get_param(draws.dpars, dpar, ilink, kind="distributional")


def get_nlpar(draws: DrawsBundle, nlpar: str, ilink: bool = True) -> np.ndarray:
    """Draws of a non-linear parameter as a 2-D array (see :func:`get_dpar`)."""
    return _get_param(draws.nlpars, nlpar, ilink, kind="non-linear")


def _get_param(params: Mapping[str, Any], name: str, ilink: bool, kind: str) -> np.ndarray:
    try:
        value = params[name]
    except KeyError:
        valid = ", ".join(params) or "(none)"
        msg = f"Unknown {kind} parameter {name!r}.  Valid parameters are: {valid}."
        raise InvalidParameterError(msg) from None
    if isinstance(value, LinearPredictor):
        return inverse_link(value.eta, value.link) if ilink else value.eta
    if value.ndim == 1:
        return value[:, None]
    return value


def get_theta(draws: DrawsBundle, ncomponents: int) -> np.ndarray:
    """Mixture weights of a mixture model.

    Weights given as plain arrays are probabilities and are used as they
    are.  When every ``theta<k>`` is constant across observations they
    are stacked column-wise into an ``(nsamples, K)`` matrix; when at
    least one varies across observations they are broadcast to
    ``(nsamples, nobs, K)``.  Either way they must sum to one across
    components.

    When at least one weight is a :class:`LinearPredictor`, the weights
    are on the log-odds scale: missing components are filled with
    zeros, and a softmax across components yields an
    ``(nsamples, nobs, K)`` array.

    Raises:
        InvalidParameterError: If probability weights are missing or do
            not sum to one.
    """
    names = [f"theta{k}" for k in range(1, ncomponents + 1)]
    thetas = {name: draws.dpars.get(name) for name in names}
    shape = draws.dim_mu
    if any(isinstance(value, LinearPredictor) for value in thetas.values()):
        stacked = []
        for name, value in thetas.items():
            if value is None:
                stacked.append(np.zeros(shape))
            else:
                eta = get_dpar(draws, name, ilink=False)
                stacked.append(np.broadcast_to(eta, shape))
        return softmax(np.stack(stacked, axis=2), axis=2)

    missing = [name for name, value in thetas.items() if value is None]
    if missing:
        msg = f"Mixture weights {missing} are missing from the draws bundle."
        raise InvalidParameterError(msg)
    if any(is_predicted(value) for value in thetas.values()):
        theta = np.stack(
            [np.broadcast_to(get_dpar(draws, name), shape) for name in names], axis=2
        )
        total = theta.sum(axis=2)
        where = "draw and observation"
    else:
        theta = np.column_stack([thetas[name] for name in names])
        total = theta.sum(axis=1)
        where = "draw"
    if not np.allclose(total, 1.0, atol=1e-6):
        msg = f"Mixture weights theta1..thetaK must sum to 1 for every {where}."
        raise InvalidParameterError(msg)
    return theta


def mixture_component(draws: DrawsBundle, index: int, family: Any) -> DrawsBundle:
    """Pseudo draws of the *index*-th (1-based) mixture component.

    Parameters named ``<class><index>`` (e.g. ``mu2``, ``sigma2``) are
    renamed to ``<class>``.  Mixture weights are not carried over.
    """
    dpars = {}
    for name, value in draws.dpars.items():
        cls = dpar_class(name)
        if cls != "theta" and dpar_id(name) == index:
            dpars[cls] = value
    return draws.with_dpars(dpars, family=family)


def threshold_windows(draws: DrawsBundle) -> np.ndarray:
    """Threshold columns used by each observation, as ``[start, stop)`` rows.

    Resolution order:
        1. ``data["Jthres"]`` — explicit ``(nobs, 2)`` windows.
        2. ``data["nthres"]`` — observation *i* uses the first
           ``nthres[i]`` columns of ``thres``.
        3. Every observation uses all columns of ``thres``.

    Returns:
        Integer array of shape ``(nobs, 2)``.

    Raises:
        InvalidParameterError: If the bundle carries no thresholds.
        ShapeMismatchError: If a window falls outside ``thres``.
    """
    if draws.thres is None:
        msg = "Ordinal families require thresholds ('thres') in the draws bundle."
        raise InvalidParameterError(msg)
    nthres_total = draws.thres.shape[1]
    jthres = draws.data.get("Jthres")
    if jthres is not None:
        windows = np.asarray(jthres, dtype=int).reshape(-1, 2)
        if windows.shape[0] == 1:
            windows = np.repeat(windows, draws.nobs, axis=0)
    elif draws.data.get("nthres") is not None:
        stops = draws.data_vector("nthres").astype(int)
        windows = np.column_stack([np.zeros(draws.nobs, dtype=int), stops])
    else:
        windows = np.tile([0, nthres_total], (draws.nobs, 1))

    if windows.shape[0] != draws.nobs:
        msg = f"Jthres has {windows.shape[0]} rows; expected nobs={draws.nobs}."
        raise ShapeMismatchError(msg)
    if np.any(windows[:, 0] < 0) or np.any(windows[:, 1] > nthres_total) or np.any(
        windows[:, 1] <= windows[:, 0]
    ):
        msg = f"Threshold windows must lie within the {nthres_total} columns of thres."
        raise ShapeMismatchError(msg)
    return windows


def require_dpar(draws: DrawsBundle, name: str) -> np.ndarray:
    """Response-scale draws of a parameter a family cannot do without.

    Raises:
        InvalidParameterError: If *name* is not in ``draws.dpars``.
    """
    try:
        return draws.dpars[name]
    except KeyError:
        family = getattr(draws.family, "name", draws.family)
        msg = f"Family {family!r} requires the distributional parameter {name!r}."
        raise InvalidParameterError(msg) from None
