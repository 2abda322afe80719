"""Expectation-provider protocol, per-family means, and the family registry.

The ``ExpectationProvider`` protocol defines the interface that every
response family must implement to take part in
:func:`~pp_expect.core.compute_expectation`.  It decouples the
family-specific moment formulas from the orchestrator in ``core.py``,
which dispatches to the resolved provider via one method call instead
of branching on family names.

Built-in families are ``ClosedFormFamily`` instances: frozen
dataclasses that carry a name, a *kind*, and a pure mean function
mapping a response-scale draws bundle to an array of expected values.
They are registered once at import time in the ``_FAMILIES`` table.
``resolve_family`` maps a tag (``"gaussian"``, ``"cumulative"``, ...)
to its provider and fails fast on unknown tags.

Kinds
~~~~~
``"univariate"``
    Output ``(nsamples, nobs)``.
``"ordinal"`` / ``"categorical"``
    Output ``(nsamples, nobs, ncat)``.  Their ``mu`` parameters are
    linear predictors consumed by the category densities, so they are
    *not* passed through the inverse link beforehand.
``"mixture"``
    Reserved for :class:`MixtureFamily`.  A mixture's components must
    not be mixtures themselves; this is checked when the mixture is
    constructed.

Extensibility
~~~~~~~~~~~~~
User-defined families implement the protocol (or wrap a function in
:class:`CustomFamily`) and are added with :func:`register_family`.  The
orchestrator requires no changes per new family.

Mean formulas
~~~~~~~~~~~~~
Most families are parameterised directly by their mean, so the
expected value is ``mu``.  The exceptions:

=============================  ==============================================
Family                         Expected value
=============================  ==============================================
lognormal                      ``exp(mu + sigma²/2)``
shifted_lognormal              ``exp(mu + sigma²/2) + ndt``
binomial                       ``mu · trials``
gen_extreme_value              ``mu + sigma·(Γ(1 − xi) − 1)/xi``
asym_laplace                   ``mu + sigma·(1 − 2q)/(q·(1 − q))``
wiener                         first-passage mean of the drift diffusion
hurdle_poisson                 ``mu / (1 − exp(−mu)) · (1 − hu)``
hurdle_negbinomial             ``mu / (1 − (shape/(mu + shape))^shape) · (1 − hu)``
zero_inflated_*                base mean ``· (1 − zi)``
zero_one_inflated_beta         ``zoi·coi + mu·(1 − zoi)``
discrete_weibull, com_poisson  convergent series (see ``_numeric``)
=============================  ==============================================
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np
from scipy.special import gamma

from ._numeric import mean_com_poisson, mean_discrete_weibull
from .autocorrelation import has_lagsar, lagsar_expectation
from .categorical import (
    ORDINAL_DENSITIES,
    categorical_expectation,
    dirichlet_expectation,
    multinomial_expectation,
    ordinal_expectation,
)
from .draws import (
    DrawsBundle,
    dpar_class,
    dpar_id,
    get_dpar,
    get_theta,
    mixture_component,
    require_dpar,
)
from .exceptions import UnsupportedOperationError

MeanFunction = Callable[[DrawsBundle], np.ndarray]

_KINDS = ("univariate", "ordinal", "categorical", "mixture")

# ------------------------------------------------------------------ #
# ExpectationProvider protocol
# ------------------------------------------------------------------ #
#
# ``runtime_checkable`` enables isinstance() checks against the
# protocol at runtime, which register_family() uses to reject objects
# that do not implement the interface.


@runtime_checkable
class ExpectationProvider(Protocol):
    """Interface that every response family must implement.

    Attributes:
        name: Family tag used in the registry and in error messages.
        kind: One of ``"univariate"``, ``"ordinal"``, ``"categorical"``
            or ``"mixture"``; determines the output shape and whether
            ``mu`` is inverse-link transformed before ``expectation``
            is called.
    """

    @property
    def name(self) -> str: ...

    @property
    def kind(self) -> str: ...

    def expectation(self, draws: DrawsBundle) -> np.ndarray:
        """Expected value of the response distribution.

        Args:
            draws: Bundle whose ``dpars`` are already on the response
                scale (2-D arrays; constant parameters as
                ``(nsamples, 1)`` columns).

        Returns:
            ``(nsamples, nobs)`` for univariate families or
            ``(nsamples, nobs, ncat)`` for ordinal / categorical ones.
        """
        ...


# ------------------------------------------------------------------ #
# Concrete providers
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ClosedFormFamily:
    """Built-in family with a pure mean function.

    Stateless; all data flows through ``expectation``.
    """

    name: str
    mean: MeanFunction
    kind: str = "univariate"

    def expectation(self, draws: DrawsBundle) -> np.ndarray:
        return self.mean(draws)


@dataclass(frozen=True)
class CustomFamily:
    """User-defined family backed by an explicit mean function.

    Example::

        def mean_shifted_poisson(draws):
            return draws.dpars["mu"] + draws.dpars["shift"]

        register_family(
            "shifted_poisson",
            CustomFamily("shifted_poisson", mean_shifted_poisson),
        )
    """

    name: str
    mean: MeanFunction
    kind: str = "univariate"

    def __post_init__(self) -> None:
        if self.kind == "mixture" or self.kind not in _KINDS:
            msg = f"CustomFamily kind must be one of {_KINDS[:3]}, got {self.kind!r}."
            raise ValueError(msg)

    def expectation(self, draws: DrawsBundle) -> np.ndarray:
        return np.asarray(self.mean(draws), dtype=float)


@dataclass(frozen=True)
class MixtureFamily:
    """Finite mixture of non-mixture families.

    The expected value is ``Σ_k theta_k · E_k`` where ``E_k`` is the
    mean of component *k* computed from the parameters named
    ``<class><k>`` (``mu1``, ``sigma1``, ``mu2``, ...).

    Args:
        components: Component family tags or providers, in order.

    Raises:
        TypeError: If a component is itself a mixture.
        ValueError: If fewer than two components are given.
    """

    components: tuple[ExpectationProvider, ...]

    def __post_init__(self) -> None:
        resolved = tuple(resolve_family(component) for component in self.components)
        if len(resolved) < 2:
            msg = "A mixture requires at least two components."
            raise ValueError(msg)
        for component in resolved:
            if component.kind == "mixture":
                msg = "Mixtures of mixtures are not allowed."
                raise TypeError(msg)
            if component.kind == "categorical":
                msg = f"Categorical family {component.name!r} cannot be a mixture component."
                raise TypeError(msg)
        object.__setattr__(self, "components", resolved)

    @property
    def name(self) -> str:
        return "mixture(" + ", ".join(c.name for c in self.components) + ")"

    @property
    def kind(self) -> str:
        return "mixture"

    def expectation(self, draws: DrawsBundle) -> np.ndarray:
        theta = get_theta(draws, len(self.components))
        out = 0.0
        for k, component in enumerate(self.components):
            comp_draws = mixture_component(draws, k + 1, component)
            mean = component.expectation(comp_draws)
            weight = theta[:, k][:, None] if theta.ndim == 2 else theta[:, :, k]
            if mean.ndim == 3:
                weight = weight[..., None]
            out = out + weight * mean
        return np.asarray(out)


# ------------------------------------------------------------------ #
# Response-scale preparation
# ------------------------------------------------------------------ #


def _transforms_mu(family: ExpectationProvider, name: str) -> bool:
    """Whether the ``mu``-type parameter *name* is inverse-link transformed."""
    if family.kind in ("ordinal", "categorical"):
        return not name.startswith("mu")
    if isinstance(family, MixtureFamily) and dpar_class(name) == "mu":
        k = dpar_id(name)
        if k is not None and 1 <= k <= len(family.components):
            return family.components[k - 1].kind == "univariate"
    return True


def response_scale_draws(draws: DrawsBundle, family: ExpectationProvider) -> DrawsBundle:
    """Copy of *draws* with every parameter on the response scale.

    Mixture weights stay on their original scale; :func:`get_theta`
    handles them.  The returned bundle carries the resolved *family*.
    """
    dpars = {}
    for name, value in draws.dpars.items():
        if family.kind == "mixture" and dpar_class(name) == "theta":
            dpars[name] = value
        else:
            dpars[name] = get_dpar(draws, name, ilink=_transforms_mu(family, name))
    return draws.with_dpars(dpars, family=family)


# ------------------------------------------------------------------ #
# Mean functions
# ------------------------------------------------------------------ #


def _mean_identity(draws: DrawsBundle) -> np.ndarray:
    return require_dpar(draws, "mu")


def _mean_location(draws: DrawsBundle) -> np.ndarray:
    """Gaussian / Student-t mean, corrected for a spatial lag if present."""
    mu = require_dpar(draws, "mu")
    if has_lagsar(draws):
        return lagsar_expectation(draws, mu)
    return mu


def _trials(draws: DrawsBundle) -> np.ndarray:
    return draws.data_vector("trials")[None, :]


def _mean_lognormal(draws: DrawsBundle) -> np.ndarray:
    mu, sigma = require_dpar(draws, "mu"), require_dpar(draws, "sigma")
    return np.exp(mu + sigma**2 / 2)


def _mean_shifted_lognormal(draws: DrawsBundle) -> np.ndarray:
    return _mean_lognormal(draws) + require_dpar(draws, "ndt")


def _mean_binomial(draws: DrawsBundle) -> np.ndarray:
    return require_dpar(draws, "mu") * _trials(draws)


def _mean_discrete_weibull(draws: DrawsBundle) -> np.ndarray:
    return mean_discrete_weibull(require_dpar(draws, "mu"), require_dpar(draws, "shape"))


def _mean_com_poisson(draws: DrawsBundle) -> np.ndarray:
    return mean_com_poisson(require_dpar(draws, "mu"), require_dpar(draws, "shape"))


def _mean_gen_extreme_value(draws: DrawsBundle) -> np.ndarray:
    mu, sigma, xi = (require_dpar(draws, p) for p in ("mu", "sigma", "xi"))
    return mu + sigma * (gamma(1 - xi) - 1) / xi


def _mean_wiener(draws: DrawsBundle) -> np.ndarray:
    # mu is the drift rate, bs the boundary separation.
    mu, bs, ndt, bias = (require_dpar(draws, p) for p in ("mu", "bs", "ndt", "bias"))
    return ndt - bias / mu + bs / mu * (np.exp(-2 * mu * bias) - 1) / (
        np.exp(-2 * mu * bs) - 1
    )


def _mean_asym_laplace(draws: DrawsBundle) -> np.ndarray:
    mu, sigma, q = (require_dpar(draws, p) for p in ("mu", "sigma", "quantile"))
    return mu + sigma * (1 - 2 * q) / (q * (1 - q))


def _mean_cox(draws: DrawsBundle) -> np.ndarray:  # noqa: ARG001
    msg = (
        "Cannot compute expected values of the posterior predictive "
        "distribution for family 'cox'."
    )
    raise UnsupportedOperationError(msg)


def _mean_hurdle_poisson(draws: DrawsBundle) -> np.ndarray:
    mu, hu = require_dpar(draws, "mu"), require_dpar(draws, "hu")
    return mu / (1 - np.exp(-mu)) * (1 - hu)


def _mean_hurdle_negbinomial(draws: DrawsBundle) -> np.ndarray:
    mu, shape, hu = (require_dpar(draws, p) for p in ("mu", "shape", "hu"))
    return mu / (1 - (shape / (mu + shape)) ** shape) * (1 - hu)


def _mean_zero_one_inflated_beta(draws: DrawsBundle) -> np.ndarray:
    mu, zoi, coi = (require_dpar(draws, p) for p in ("mu", "zoi", "coi"))
    return zoi * coi + mu * (1 - zoi)


def _scaled(base: MeanFunction, dpar: str) -> MeanFunction:
    """Scale *base* by ``1 − dpar`` (hurdle and zero-inflated families)."""

    def mean(draws: DrawsBundle) -> np.ndarray:
        return base(draws) * (1 - require_dpar(draws, dpar))

    return mean


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #

_FAMILIES: dict[str, ExpectationProvider] = {}
"""Registry mapping family tags to expectation providers."""


def register_family(name: str, provider: ExpectationProvider) -> None:
    """Register an expectation provider under *name*.

    Args:
        name: Lookup key (e.g. ``"gaussian"``).
        provider: An object implementing :class:`ExpectationProvider`.

    Raises:
        TypeError: If *provider* does not satisfy the protocol or
            declares an unknown kind.
    """
    if not isinstance(provider, ExpectationProvider):
        msg = f"{provider!r} does not implement the ExpectationProvider protocol."
        raise TypeError(msg)
    if provider.kind not in _KINDS:
        msg = f"{provider!r} declares unknown kind {provider.kind!r}; expected one of {_KINDS}."
        raise TypeError(msg)
    _FAMILIES[name] = provider


def available_families() -> list[str]:
    """Return the sorted tags of all registered families."""
    return sorted(_FAMILIES)


def resolve_family(
    family: str | ExpectationProvider | Sequence[str | ExpectationProvider],
) -> ExpectationProvider:
    """Resolve a family tag, provider, or component list to a provider.

    * Providers (including :class:`MixtureFamily`) are returned as-is.
    * Strings are looked up in the registry.
    * A list or tuple of components builds a :class:`MixtureFamily`.

    Raises:
        UnsupportedOperationError: If a string tag is not registered.
    """
    if isinstance(family, ExpectationProvider):
        return family
    if isinstance(family, str):
        try:
            return _FAMILIES[family]
        except KeyError:
            available = ", ".join(available_families()) or "(none registered)"
            msg = f"Unknown family {family!r}.  Available families: {available}."
            raise UnsupportedOperationError(msg) from None
    if isinstance(family, (list, tuple)):
        return MixtureFamily(tuple(family))
    msg = f"Cannot resolve family from {type(family).__name__}."
    raise TypeError(msg)


# ------------------------------------------------------------------ #
# Register built-in families
# ------------------------------------------------------------------ #

_BUILTIN_MEANS: dict[str, MeanFunction] = {
    "gaussian": _mean_location,
    "student": _mean_location,
    "skew_normal": _mean_identity,
    "lognormal": _mean_lognormal,
    "shifted_lognormal": _mean_shifted_lognormal,
    "binomial": _mean_binomial,
    "bernoulli": _mean_identity,
    "poisson": _mean_identity,
    "negbinomial": _mean_identity,
    "geometric": _mean_identity,
    "discrete_weibull": _mean_discrete_weibull,
    "com_poisson": _mean_com_poisson,
    "exponential": _mean_identity,
    "gamma": _mean_identity,
    "weibull": _mean_identity,
    "frechet": _mean_identity,
    "gen_extreme_value": _mean_gen_extreme_value,
    "inverse.gaussian": _mean_identity,
    "exgaussian": _mean_identity,
    "wiener": _mean_wiener,
    "beta": _mean_identity,
    "von_mises": _mean_identity,
    "asym_laplace": _mean_asym_laplace,
    "zero_inflated_asym_laplace": _scaled(_mean_asym_laplace, "zi"),
    "cox": _mean_cox,
    "hurdle_poisson": _mean_hurdle_poisson,
    "hurdle_negbinomial": _mean_hurdle_negbinomial,
    "hurdle_gamma": _scaled(_mean_identity, "hu"),
    "hurdle_lognormal": _scaled(_mean_lognormal, "hu"),
    "zero_inflated_poisson": _scaled(_mean_identity, "zi"),
    "zero_inflated_negbinomial": _scaled(_mean_identity, "zi"),
    "zero_inflated_binomial": _scaled(_mean_binomial, "zi"),
    "zero_inflated_beta": _scaled(_mean_identity, "zi"),
    "zero_one_inflated_beta": _mean_zero_one_inflated_beta,
}

for _name, _mean in _BUILTIN_MEANS.items():
    register_family(_name, ClosedFormFamily(_name, _mean))

for _name, _density in ORDINAL_DENSITIES.items():
    register_family(
        _name,
        ClosedFormFamily(
            _name, functools.partial(ordinal_expectation, density=_density), kind="ordinal"
        ),
    )

for _name, _mean in (
    ("categorical", categorical_expectation),
    ("multinomial", multinomial_expectation),
    ("dirichlet", dirichlet_expectation),
):
    register_family(_name, ClosedFormFamily(_name, _mean, kind="categorical"))
