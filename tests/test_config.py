"""Tests for the runtime configuration system."""

import os

import numpy as np
import pytest

from pp_expect._config import (
    get_n_jobs,
    get_series_tolerance,
    set_n_jobs,
    set_series_tolerance,
)


def _reset():
    import pp_expect._config as _cfg

    _cfg._n_jobs_override = None
    _cfg._series_tol_override = None
    os.environ.pop("PP_EXPECT_N_JOBS", None)
    os.environ.pop("PP_EXPECT_SERIES_TOL", None)


class TestGetNJobs:
    """Tests for get_n_jobs() resolution order."""

    def setup_method(self):
        _reset()

    def teardown_method(self):
        _reset()

    def test_default_is_single_thread(self):
        assert get_n_jobs() == 1

    def test_env_var_overrides_default(self):
        os.environ["PP_EXPECT_N_JOBS"] = "4"
        assert get_n_jobs() == 4

    def test_env_var_all_cores(self):
        os.environ["PP_EXPECT_N_JOBS"] = "-1"
        assert get_n_jobs() == -1

    def test_programmatic_override_wins_over_env(self):
        os.environ["PP_EXPECT_N_JOBS"] = "4"
        set_n_jobs(2)
        assert get_n_jobs() == 2

    def test_auto_restores_default(self):
        set_n_jobs(3)
        assert get_n_jobs() == 3
        set_n_jobs("auto")
        assert get_n_jobs() == 1

    def test_none_restores_default(self):
        set_n_jobs(3)
        set_n_jobs(None)
        assert get_n_jobs() == 1

    def test_invalid_env_var_raises(self):
        os.environ["PP_EXPECT_N_JOBS"] = "many"
        with pytest.raises(ValueError, match="PP_EXPECT_N_JOBS"):
            get_n_jobs()


class TestSetNJobs:
    """Tests for set_n_jobs() validation."""

    def setup_method(self):
        _reset()

    def teardown_method(self):
        _reset()

    def test_rejects_zero(self):
        with pytest.raises(ValueError, match="n_jobs"):
            set_n_jobs(0)

    def test_rejects_below_minus_one(self):
        with pytest.raises(ValueError, match="n_jobs"):
            set_n_jobs(-2)


class TestSeriesTolerance:
    """Tests for get/set_series_tolerance()."""

    def setup_method(self):
        _reset()

    def teardown_method(self):
        _reset()

    def test_default(self):
        assert get_series_tolerance() == 1e-10

    def test_env_var(self):
        os.environ["PP_EXPECT_SERIES_TOL"] = "1e-6"
        assert get_series_tolerance() == 1e-6

    def test_override_wins_over_env(self):
        os.environ["PP_EXPECT_SERIES_TOL"] = "1e-6"
        set_series_tolerance(1e-12)
        assert get_series_tolerance() == 1e-12

    def test_auto_restores_default(self):
        set_series_tolerance(1e-4)
        set_series_tolerance("auto")
        assert get_series_tolerance() == 1e-10

    @pytest.mark.parametrize("tol", [0.0, 1.0, -1e-3, 2.0])
    def test_rejects_out_of_range(self, tol):
        with pytest.raises(ValueError, match="Series tolerance"):
            set_series_tolerance(tol)

    def test_invalid_env_var_raises(self):
        os.environ["PP_EXPECT_SERIES_TOL"] = "tiny"
        with pytest.raises(ValueError, match="PP_EXPECT_SERIES_TOL"):
            get_series_tolerance()

    def test_looser_tolerance_changes_series_mean(self):
        """The discrete Weibull series stops earlier with a looser tolerance."""
        from pp_expect._numeric import mean_discrete_weibull

        mu = np.array([[0.9]])
        shape = np.array([[1.0]])
        tight = mean_discrete_weibull(mu, shape)
        set_series_tolerance(1e-1)
        loose = mean_discrete_weibull(mu, shape)
        assert loose[0, 0] < tight[0, 0]


class TestPublicApi:
    def test_exports(self):
        import pp_expect

        for name in ("get_n_jobs", "set_n_jobs", "get_series_tolerance", "set_series_tolerance"):
            assert hasattr(pp_expect, name)
