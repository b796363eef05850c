"""
Tests for alias method sampling.

Run tests:
    pytest tests/test_alias.py -v
"""

import numpy as np
import pytest

from api.simulations.alias import (
    DEFAULT_PROBABILITIES,
    build_alias_tables,
    implied_distribution,
    normalize,
    run_alias,
    sample,
)


class TestTables:
    def test_default_distribution(self):
        prob, alias = build_alias_tables(DEFAULT_PROBABILITIES)
        np.testing.assert_allclose(implied_distribution(prob, alias), DEFAULT_PROBABILITIES)
        assert prob[0] == 1.0

    def test_random_distributions(self, rng):
        for n in (2, 7, 30):
            probabilities = normalize(rng.random(n))
            prob, alias = build_alias_tables(probabilities)
            assert np.all((prob >= 0) & (prob <= 1))
            assert np.all((alias >= 0) & (alias < n))
            np.testing.assert_allclose(implied_distribution(prob, alias), probabilities, atol=1e-12)

    def test_uniform_needs_no_aliases(self):
        prob, alias = build_alias_tables(np.full(4, 0.25))
        np.testing.assert_allclose(prob, 1.0)
        assert alias.tolist() == [0, 1, 2, 3]


class TestNormalize:
    def test_scales_to_one(self):
        np.testing.assert_allclose(normalize([2.0, 6.0]), [0.25, 0.75])

    def test_zero_weights_become_uniform(self):
        np.testing.assert_allclose(normalize([0.0, 0.0, 0.0]), [1 / 3] * 3)

    def test_rejects_negative_weights(self):
        with pytest.raises(ValueError):
            normalize([0.5, -0.1])
        with pytest.raises(ValueError):
            normalize([])


class TestSampling:
    def test_frequencies_match(self):
        prob, alias = build_alias_tables(DEFAULT_PROBABILITIES)
        draws = sample(prob, alias, 100_000, rng=5)
        frequencies = np.bincount(draws, minlength=5) / draws.size
        np.testing.assert_allclose(frequencies, DEFAULT_PROBABILITIES, atol=0.01)

    def test_zero_weight_never_drawn(self):
        result = run_alias([1.0, 0.0, 1.0], 5000, rng=2)
        assert result["frequencies"][1] == 0.0

    def test_empty_sample(self):
        result = run_alias(DEFAULT_PROBABILITIES, 0, rng=1)
        assert result["frequencies"] == [0.0] * 5
        assert result["max_abs_error"] is None
