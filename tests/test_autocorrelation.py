"""Tests for the spatial-lag mean correction."""

import numpy as np
import pytest

from pp_expect import compute_expectation, set_n_jobs
from pp_expect.autocorrelation import has_lagsar, lagsar_expectation
from pp_expect.draws import DrawsBundle
from pp_expect.exceptions import ShapeMismatchError


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


def _weights(nobs):
    """Row-standardised ring neighbourhood."""
    w = np.zeros((nobs, nobs))
    for i in range(nobs):
        w[i, (i - 1) % nobs] = 0.5
        w[i, (i + 1) % nobs] = 0.5
    return w


def _draws(rng, nsamples=4, nobs=5, rho=None):
    rho = rng.uniform(-0.5, 0.5, size=nsamples) if rho is None else rho
    return DrawsBundle(
        family="gaussian",
        dpars={"mu": rng.standard_normal((nsamples, nobs)), "sigma": np.ones(nsamples)},
        ac={"lagsar": rho, "Msar": _weights(nobs)},
    )


class TestLagsar:
    def teardown_method(self):
        set_n_jobs(None)

    def test_detection(self, rng):
        assert has_lagsar(_draws(rng))
        assert not has_lagsar(DrawsBundle(family="gaussian", dpars={"mu": np.zeros((2, 2))}))

    def test_solves_linear_system(self, rng):
        draws = _draws(rng)
        out = lagsar_expectation(draws, draws.dpars["mu"])
        w = draws.ac["Msar"]
        for s in range(draws.nsamples):
            rho = draws.ac["lagsar"][s]
            np.testing.assert_allclose((np.eye(5) - rho * w) @ out[s], draws.dpars["mu"][s])

    def test_zero_rho_is_identity(self, rng):
        draws = _draws(rng, rho=np.zeros(4))
        np.testing.assert_allclose(compute_expectation(draws), draws.dpars["mu"])

    def test_orchestrator_applies_correction(self, rng):
        draws = _draws(rng)
        out = compute_expectation(draws)
        np.testing.assert_allclose(out, lagsar_expectation(draws, draws.dpars["mu"]))
        assert not np.allclose(out, draws.dpars["mu"])

    def test_threaded_matches_serial(self, rng):
        draws = _draws(rng, nsamples=8)
        serial = lagsar_expectation(draws, draws.dpars["mu"])
        set_n_jobs(2)
        threaded = lagsar_expectation(draws, draws.dpars["mu"])
        np.testing.assert_allclose(threaded, serial)

    def test_wrong_rho_length(self, rng):
        draws = _draws(rng, rho=np.zeros(3))
        with pytest.raises(ShapeMismatchError, match="lagsar"):
            lagsar_expectation(draws, draws.dpars["mu"])

    def test_wrong_weight_shape(self, rng):
        draws = DrawsBundle(
            family="gaussian",
            dpars={"mu": np.zeros((2, 3))},
            ac={"lagsar": np.zeros(2), "Msar": np.eye(4)},
        )
        with pytest.raises(ShapeMismatchError, match="Msar"):
            lagsar_expectation(draws, draws.dpars["mu"])

    @pytest.mark.slow
    def test_large_system(self, rng):
        draws = _draws(rng, nsamples=50, nobs=300)
        out = compute_expectation(draws)
        assert out.shape == (50, 300)
        assert np.all(np.isfinite(out))
