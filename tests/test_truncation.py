"""Tests for truncated means."""

import warnings

import numpy as np
import pytest
from scipy import integrate, stats

from pp_expect.draws import DrawsBundle
from pp_expect.exceptions import (
    InvalidBoundsError,
    SlowComputationWarning,
    UnsupportedOperationError,
)
from pp_expect.families import resolve_family, response_scale_draws
from pp_expect.truncation import is_truncated, supports_truncation, truncated_expectation


def _truncated(family, lb=-np.inf, ub=np.inf, data=None, **dpars):
    provider = resolve_family(family)
    data = {"lb": lb, "ub": ub, **(data or {})}
    draws = DrawsBundle(family=family, dpars=dpars, data=data)
    return truncated_expectation(response_scale_draws(draws, provider))


def _numeric_mean(dist, lb, ub):
    lo, hi = max(lb, dist.support()[0]), min(ub, dist.support()[1])
    m1, _ = integrate.quad(lambda x: x * dist.pdf(x), lo, hi)
    return m1 / (dist.cdf(hi) - dist.cdf(lo))


class TestIsTruncated:
    def test_no_bounds(self):
        draws = DrawsBundle(family="gaussian", dpars={"mu": np.zeros((2, 3))})
        assert not is_truncated(draws)

    def test_infinite_bounds_are_not_truncation(self):
        draws = DrawsBundle(
            family="gaussian", dpars={"mu": np.zeros((2, 3))}, data={"lb": -np.inf, "ub": np.inf}
        )
        assert not is_truncated(draws)

    def test_single_finite_bound(self):
        draws = DrawsBundle(
            family="gaussian", dpars={"mu": np.zeros((2, 3))}, data={"ub": [np.inf, 2.0, np.inf]}
        )
        assert is_truncated(draws)

    def test_supported_families(self):
        for name in ("gaussian", "student", "lognormal", "gamma", "exponential", "weibull"):
            assert supports_truncation(name)
        for name in ("binomial", "poisson", "negbinomial", "geometric"):
            assert supports_truncation(name)
        assert not supports_truncation("beta")


# ------------------------------------------------------------------ #
# Continuous families
# ------------------------------------------------------------------ #


class TestContinuous:
    def test_gaussian_formula(self):
        mu, sigma, lb, ub = 1.0, 2.0, 0.0, 4.0
        out = _truncated("gaussian", lb=lb, ub=ub, mu=np.array([[mu]]), sigma=np.array([sigma]))
        expected = stats.truncnorm.mean((lb - mu) / sigma, (ub - mu) / sigma, loc=mu, scale=sigma)
        np.testing.assert_allclose(out, [[expected]])

    def test_student(self):
        mu, sigma, nu, lb, ub = 0.5, 1.5, 5.0, -1.0, 3.0
        out = _truncated(
            "student",
            lb=lb,
            ub=ub,
            mu=np.array([[mu]]),
            sigma=np.array([sigma]),
            nu=np.array([nu]),
        )
        expected = _numeric_mean(stats.t(nu, loc=mu, scale=sigma), lb, ub)
        np.testing.assert_allclose(out, [[expected]], rtol=1e-7)

    def test_student_large_nu_is_finite(self):
        out = _truncated(
            "student",
            lb=0.0,
            mu=np.array([[0.0]]),
            sigma=np.array([1.0]),
            nu=np.array([1000.0]),
        )
        assert np.isfinite(out).all()
        np.testing.assert_allclose(out, [[np.sqrt(2 / np.pi)]], rtol=1e-2)

    def test_lognormal_negative_lb_clamped(self):
        mu, sigma = 0.2, 0.7
        out = _truncated("lognormal", lb=-5.0, ub=3.0, mu=np.array([[mu]]), sigma=np.array([sigma]))
        expected = _numeric_mean(stats.lognorm(sigma, scale=np.exp(mu)), 0.0, 3.0)
        np.testing.assert_allclose(out, [[expected]], rtol=1e-7)

    def test_gamma(self):
        mu, shape, lb, ub = 2.0, 3.0, 1.0, 4.0
        out = _truncated("gamma", lb=lb, ub=ub, mu=np.array([[mu]]), shape=np.array([shape]))
        expected = _numeric_mean(stats.gamma(shape, scale=mu / shape), lb, ub)
        np.testing.assert_allclose(out, [[expected]], rtol=1e-7)

    def test_exponential(self):
        mu, lb, ub = 2.0, 0.5, 5.0
        out = _truncated("exponential", lb=lb, ub=ub, mu=np.array([[mu]]))
        expected = _numeric_mean(stats.expon(scale=mu), lb, ub)
        np.testing.assert_allclose(out, [[expected]], rtol=1e-7)

    def test_weibull(self):
        from scipy.special import gamma

        mu, shape, lb, ub = 2.0, 1.5, 0.5, 4.0
        out = _truncated("weibull", lb=lb, ub=ub, mu=np.array([[mu]]), shape=np.array([shape]))
        scale = mu / gamma(1 + 1 / shape)
        expected = _numeric_mean(stats.weibull_min(shape, scale=scale), lb, ub)
        np.testing.assert_allclose(out, [[expected]], rtol=1e-7)

    @pytest.mark.parametrize(
        ("family", "dpars", "untruncated"),
        [
            ("gaussian", {"mu": [[1.0]], "sigma": [2.0]}, 1.0),
            ("student", {"mu": [[1.0]], "sigma": [2.0], "nu": [6.0]}, 1.0),
            ("lognormal", {"mu": [[0.0]], "sigma": [0.5]}, np.exp(0.125)),
            ("gamma", {"mu": [[2.0]], "shape": [3.0]}, 2.0),
            ("exponential", {"mu": [[2.0]]}, 2.0),
            ("weibull", {"mu": [[2.0]], "shape": [2.0]}, 2.0),
        ],
    )
    def test_wide_bounds_converge_to_untruncated_mean(self, family, dpars, untruncated):
        dpars = {k: np.asarray(v, dtype=float) for k, v in dpars.items()}
        out = _truncated(family, lb=-1e6, ub=1e6, **dpars)
        np.testing.assert_allclose(out, [[untruncated]], rtol=1e-6)

    def test_per_observation_bounds(self):
        mu = np.zeros((3, 2))
        out = _truncated("gaussian", lb=[0.0, -np.inf], ub=[np.inf, 0.0], mu=mu, sigma=np.ones(3))
        np.testing.assert_allclose(out[:, 0], np.sqrt(2 / np.pi))
        np.testing.assert_allclose(out[:, 1], -np.sqrt(2 / np.pi))


# ------------------------------------------------------------------ #
# Discrete families
# ------------------------------------------------------------------ #


class TestDiscrete:
    def test_poisson_mean_within_window(self):
        mu = np.array([[1.0, 4.0, 10.0]])
        with pytest.warns(SlowComputationWarning):
            out = _truncated("poisson", lb=[0, 2, -1], ub=[3, 6, 12], mu=mu)
        assert np.all(out >= np.array([1, 3, 0]))
        assert np.all(out <= np.array([3, 6, 12]))

    def test_poisson_by_hand(self):
        mu, lb, ub = 3.0, 1, 5
        with pytest.warns(SlowComputationWarning):
            out = _truncated("poisson", lb=lb, ub=ub, mu=np.array([[mu]]))
        x = np.arange(lb + 1, ub + 1)
        p = stats.poisson.pmf(x, mu)
        np.testing.assert_allclose(out, [[np.sum(x * p) / np.sum(p)]])

    def test_binomial_ub_clamped_to_trials(self):
        with pytest.warns(SlowComputationWarning):
            clamped = _truncated(
                "binomial", lb=0, ub=np.inf, data={"trials": [5]}, mu=np.array([[0.3]])
            )
        x = np.arange(1, 6)
        p = stats.binom.pmf(x, 5, 0.3)
        np.testing.assert_allclose(clamped, [[np.sum(x * p) / np.sum(p)]])

    def test_negbinomial(self):
        mu, shape = 4.0, 2.0
        with pytest.warns(SlowComputationWarning):
            out = _truncated(
                "negbinomial", lb=-1, ub=8, mu=np.array([[mu]]), shape=np.array([shape])
            )
        dist = stats.nbinom(shape, shape / (shape + mu))
        x = np.arange(0, 9)
        np.testing.assert_allclose(out, [[np.sum(x * dist.pmf(x)) / dist.cdf(8)]])

    def test_geometric(self):
        mu = 2.0
        with pytest.warns(SlowComputationWarning):
            out = _truncated("geometric", lb=0, ub=4, mu=np.array([[mu]]))
        dist = stats.nbinom(1, 1 / (1 + mu))
        x = np.arange(1, 5)
        np.testing.assert_allclose(out, [[np.sum(x * dist.pmf(x)) / np.sum(dist.pmf(x))]])

    def test_wide_window_approaches_untruncated(self):
        with pytest.warns(SlowComputationWarning):
            out = _truncated("poisson", lb=-1, ub=200, mu=np.array([[7.5]]))
        np.testing.assert_allclose(out, [[7.5]], rtol=1e-10)

    @pytest.mark.parametrize(
        ("family", "dpars"),
        [
            ("poisson", {"mu": np.array([[2.0]])}),
            ("negbinomial", {"mu": np.array([[2.0]]), "shape": 3.0}),
            ("geometric", {"mu": np.array([[2.0]])}),
        ],
    )
    def test_infinite_ub_raises(self, family, dpars):
        with pytest.warns(SlowComputationWarning):
            with pytest.raises(InvalidBoundsError, match="finite"):
                _truncated(family, lb=0, **dpars)

    def test_negative_lb_clamped(self):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", SlowComputationWarning)
            a = _truncated("poisson", lb=-50, ub=4, mu=np.array([[2.0]]))
            b = _truncated("poisson", lb=-1, ub=4, mu=np.array([[2.0]]))
        np.testing.assert_allclose(a, b)


# ------------------------------------------------------------------ #
# Bounds handling
# ------------------------------------------------------------------ #


class TestBounds:
    def test_lb_greater_than_ub_raises(self):
        with pytest.raises(InvalidBoundsError, match="lb <= ub"):
            _truncated("gaussian", lb=[0.0, 3.0], ub=[1.0, 2.0], mu=np.zeros((2, 2)), sigma=np.ones(2))

    def test_degenerate_window_returns_bound(self):
        out = _truncated(
            "gaussian", lb=[1.5, 0.0], ub=[1.5, 1.0], mu=np.zeros((2, 2)), sigma=np.ones(2)
        )
        np.testing.assert_array_equal(out[:, 0], [1.5, 1.5])
        assert np.all((out[:, 1] > 0) & (out[:, 1] < 1))

    def test_degenerate_discrete_window(self):
        with pytest.warns(SlowComputationWarning):
            out = _truncated("poisson", lb=[3, 0], ub=[3, 2], mu=np.full((2, 2), 2.0))
        np.testing.assert_array_equal(out[:, 0], [3.0, 3.0])

    def test_binomial_window_empty_after_clamping(self):
        with pytest.warns(SlowComputationWarning):
            with pytest.raises(InvalidBoundsError, match=r"no support points.*\[0\]"):
                _truncated("binomial", lb=5, ub=8, data={"trials": [3]}, mu=np.array([[0.5]]))

    def test_binomial_exclusive_lb_at_trials_is_empty(self):
        with pytest.warns(SlowComputationWarning):
            with pytest.raises(InvalidBoundsError, match="no support points"):
                _truncated(
                    "binomial",
                    lb=[0, 3],
                    ub=[2, 8],
                    data={"trials": [3, 3]},
                    mu=np.full((1, 2), 0.5),
                )

    def test_non_integer_window_without_support_raises(self):
        with pytest.warns(SlowComputationWarning):
            with pytest.raises(InvalidBoundsError, match="no support points"):
                _truncated("poisson", lb=2.2, ub=2.7, mu=np.array([[2.0]]))

    def test_degenerate_window_beyond_trials_returns_bound(self):
        with pytest.warns(SlowComputationWarning):
            out = _truncated(
                "binomial",
                lb=[5, 0],
                ub=[5, 2],
                data={"trials": [3, 3]},
                mu=np.full((2, 2), 0.5),
            )
        np.testing.assert_array_equal(out[:, 0], [5.0, 5.0])
        assert np.all(np.isfinite(out))

    def test_unsupported_family_raises(self):
        with pytest.raises(UnsupportedOperationError, match="truncated 'beta'"):
            _truncated("beta", lb=0.1, ub=0.9, mu=np.array([[0.5]]))
