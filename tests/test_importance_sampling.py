"""
Tests for the importance sampling estimators.

Run tests:
    pytest tests/test_importance_sampling.py -v
"""

import math

import numpy as np
import pytest

from api.simulations.importance_sampling import (
    ImportanceSamplingParams,
    calculate_true_value,
    convergence_data,
    convergence_sizes,
    distribution_data,
    effective_sample_size,
    estimate_pair,
    h,
    importance_weights,
    is_estimate,
    mc_estimate,
    normalized_is_estimate,
    run_importance_sampling,
    variance_data,
)

FAST_PARAMS = dict(n_demo=100, n_trials_conv=5, n_trials_var=5, max_samples=1000)


class TestDensities:
    def test_true_values(self):
        assert calculate_true_value(0.6, "exp") == pytest.approx(math.exp(0.18))
        assert calculate_true_value(0.6, "linear") == 0.0

    def test_integrand_kinds(self):
        assert h(1.0, 0.5, "exp") == pytest.approx(math.exp(0.5))
        assert h(2.0, 0.5, "linear") == pytest.approx(1.0)
        with pytest.raises(ValueError):
            h(1.0, 0.5, "cubic")

    def test_weights_are_density_ratio(self):
        # f(x)/g(x) = exp(-t x + t^2 / 2) for unit-variance normals
        x = np.array([-1.0, 0.0, 2.0])
        np.testing.assert_allclose(importance_weights(x, 1.0), np.exp(-x + 0.5))

    def test_distribution_records(self):
        records = distribution_data(1.0, 0.6)
        assert records[0]["x"] == pytest.approx(-5.0)
        assert records[-1]["x"] == pytest.approx(7.0)
        assert max(abs(r["h_scaled"]) for r in records) == pytest.approx(1.0)
        assert max(abs(r["area"]) for r in records) == pytest.approx(1.0)


class TestEstimators:
    def test_monte_carlo_is_close(self):
        result = mc_estimate(20000, 0.6, rng=1)
        assert result.estimate == pytest.approx(calculate_true_value(0.6), abs=5 * result.error)

    def test_standard_is_is_close(self):
        result = is_estimate(20000, t=0.6, scale=0.6, rng=2)
        assert result.estimate == pytest.approx(calculate_true_value(0.6), abs=5 * result.error)

    def test_normalized_is_is_close(self):
        result = normalized_is_estimate(20000, t=0.3, scale=0.6, rng=3)
        assert result.estimate == pytest.approx(calculate_true_value(0.6), abs=0.05)
        assert result.error > 0

    def test_linear_integrand(self):
        result = is_estimate(20000, t=0.5, scale=1.0, h_kind="linear", rng=4)
        assert abs(result.estimate) < 5 * result.error + 1e-9

    def test_pair_uses_same_samples(self):
        samples = np.array([0.5, 1.0, 1.5])
        pair = estimate_pair(samples, 1.0, 0.6)
        weights = importance_weights(samples, 1.0)
        expected = np.mean(h(samples, 0.6) * weights)
        assert pair["standard"]["estimate"] == pytest.approx(expected)
        assert pair["normalized"]["estimate"] == pytest.approx(np.sum(weights * h(samples, 0.6)) / weights.sum())


class TestDegenerateWeights:
    def test_ess_of_equal_weights_is_n(self):
        assert effective_sample_size(np.ones(40)) == pytest.approx(40.0)

    def test_ess_is_nan_for_zero_or_infinite_weights(self):
        assert math.isnan(effective_sample_size(np.zeros(5)))
        assert math.isnan(effective_sample_size(np.array([1.0, np.inf])))

    def test_underflowing_weights_do_not_raise(self):
        # log w = -t x + t^2 / 2 = -800 underflows to zero
        pair = estimate_pair(np.full(5, 40.0), 40.0, 0.6)
        assert math.isnan(pair["normalized"]["estimate"])
        assert math.isnan(pair["ess"])
        assert pair["standard"]["estimate"] == 0.0


class TestCharts:
    def test_convergence_sizes(self):
        assert convergence_sizes(5000) == [10, 50, 100, 500, 1000, 5000]
        assert convergence_sizes(1000) == [10, 50, 100, 500, 1000]

    def test_convergence_records(self):
        records = convergence_data(ImportanceSamplingParams(**FAST_PARAMS), rng=5)
        assert [r["sample_size"] for r in records] == [10, 50, 100, 500, 1000]
        for record in records:
            assert set(record) == {
                "sample_size", "mc_estimate", "mc_error", "is_estimate", "is_error", "std_error", "norm_error",
            }
        # error shrinks with more samples
        assert records[-1]["mc_error"] < records[0]["mc_error"]

    @pytest.mark.parametrize("h_kind", ["exp", "linear"])
    def test_both_estimators_converge(self, h_kind):
        params = ImportanceSamplingParams(
            h_kind=h_kind, n_demo=100, n_trials_conv=30, n_trials_var=5, max_samples=1000,
        )
        records = convergence_data(params, rng=12)
        first, last = records[0], records[-1]
        assert last["std_error"] < first["std_error"]
        assert last["norm_error"] < first["norm_error"]
        assert last["std_error"] < 0.2
        assert last["norm_error"] < 0.2

    def test_variance_sweep_standard(self):
        records = variance_data(ImportanceSamplingParams(**FAST_PARAMS), rng=6)
        assert records[0]["parameter"] == -2.0
        assert records[-1]["parameter"] == 3.0
        assert all(r["variance"] >= 0 for r in records)

    def test_variance_sweep_normalized(self):
        params = ImportanceSamplingParams(method="normalized", **FAST_PARAMS)
        records = variance_data(params, rng=7)
        assert records[0]["parameter"] == -3.0
        assert all("error_ratio" in r and r["variance"] == 0.0 for r in records)

    def test_invalid_method_rejected(self):
        with pytest.raises(ValueError):
            ImportanceSamplingParams(method="adaptive")


class TestRun:
    def test_full_payload(self):
        result = run_importance_sampling(ImportanceSamplingParams(**FAST_PARAMS), rng=8)
        assert result["true_value"] == pytest.approx(math.exp(0.18))
        assert len(result["samples"]["f_samples"]) == 100
        assert len(result["samples"]["g_samples"]) == 100
        assert len(result["histogram"]) == 20
        assert sum(r["target"] for r in result["histogram"]) == 100
        assert result["demo_estimates"]["ess"] <= 100
