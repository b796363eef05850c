"""
Tests for the simulated annealing tour and bit-string toy.

Run tests:
    pytest tests/test_annealing.py -v
"""

import math

import pytest

from api.simulations.annealing import (
    EARTH_RADIUS_KM,
    INDIA_LNG,
    MIN_TEMPERATURE,
    ToyParams,
    TSPParams,
    acceptance_probability,
    evaluate_polynomial,
    flip_bits,
    haversine,
    neighbor,
    path_distance,
    random_cities,
    run_toy,
    run_tsp,
    temperature_at,
    to_bits,
)


class TestDistances:
    def test_quarter_of_the_equator(self):
        # (0.5, 0.5) is lon 0, lat 0; (0.75, 0.5) is lon 90, lat 0
        assert haversine({"x": 0.5, "y": 0.5}, {"x": 0.75, "y": 0.5}) == pytest.approx(EARTH_RADIUS_KM * math.pi / 2)

    def test_closed_tour(self):
        cities = [{"x": 0.5, "y": 0.5}, {"x": 0.75, "y": 0.5}, {"x": 0.5, "y": 0.25}]
        expected = (
            haversine(cities[0], cities[1]) + haversine(cities[1], cities[2]) + haversine(cities[2], cities[0])
        )
        assert path_distance(cities, [1, 2]) == pytest.approx(expected)
        assert path_distance(cities, [2, 1]) == pytest.approx(expected)

    def test_random_cities_in_box(self):
        cities = random_cities(50, rng=1)
        low, high = ((lng + 180) / 360 for lng in INDIA_LNG)
        assert all(low <= c["x"] <= high for c in cities)
        assert [c["id"] for c in cities] == list(range(50))


class TestTSP:
    def test_run_records(self):
        result = run_tsp(TSPParams(num_cities=12, total_iterations=500), rng=4)
        assert len(result.distances) == 501
        assert result.best_distance == pytest.approx(min(result.distances))
        assert result.best_distance == pytest.approx(path_distance(result.cities, result.best_path))
        assert sorted(result.best_path) == list(range(1, 12))
        assert result.best_distance <= result.distances[0]

    def test_same_seed_same_tour(self):
        params = TSPParams(num_cities=8, total_iterations=200)
        assert run_tsp(params, rng=9).to_dict() == run_tsp(params, rng=9).to_dict()

    def test_frozen_temperature_does_not_raise(self):
        result = run_tsp(TSPParams(num_cities=6, cooling_rate=0.01, total_iterations=400), rng=2)
        assert result.temperatures[-1] == 0.0
        assert len(result.distances) == 401

    def test_validation(self):
        with pytest.raises(ValueError):
            TSPParams(num_cities=2)
        with pytest.raises(ValueError):
            run_tsp(TSPParams(), cities=[{"x": 0.5, "y": 0.5}] * 2)


class TestToyPieces:
    def test_polynomial(self):
        assert evaluate_polynomial(2, [1.0, -2.0, 3.0]) == pytest.approx(9.0)

    def test_bits(self):
        assert to_bits(5, 4) == [0, 1, 0, 1]
        assert flip_bits(0, [0], 4) == 8
        assert flip_bits(0b1111, [1, 3], 4) == 0b1010

    def test_two_bit_flip_changes_two_bits(self, rng):
        for _ in range(20):
            assert bin(neighbor(0b10110, 5, "two_bit_flip", rng) ^ 0b10110).count("1") == 2

    def test_schedules(self):
        params = ToyParams(initial_temperature=2.0, cooling_rate=0.5, max_iterations=10)
        assert temperature_at(3, params) == pytest.approx(0.25)

        linear = ToyParams(cooling_schedule="linear", max_iterations=10)
        assert temperature_at(5, linear) == pytest.approx(0.5)
        assert temperature_at(10, linear) == MIN_TEMPERATURE

        logarithmic = ToyParams(cooling_schedule="logarithmic")
        assert temperature_at(0, logarithmic) == pytest.approx(1 / (1 + math.log(2)))

    def test_acceptance(self):
        assert acceptance_probability(1.0, 1.0, 0.5) == 1.0
        assert acceptance_probability(1.0, 0.0, 0.0) == 0.0
        assert acceptance_probability(1.0, 0.0, 0.5) == pytest.approx(math.exp(-2))

    def test_validation(self):
        with pytest.raises(ValueError):
            ToyParams(neighbor_type="teleport")
        with pytest.raises(ValueError):
            ToyParams(r=1, neighbor_type="two_bit_flip")


class TestToyRun:
    def test_history_and_best(self):
        result = run_toy(ToyParams(), rng=5)
        history = result["history"]
        assert len(history) == 101
        assert history[0]["acceptance_probability"] == 1.0
        assert result["best_value"] == pytest.approx(max(h["value"] for h in history))
        assert all(len(h["bits"]) == 5 for h in history)
        assert len(result["search_space"]) == 32

    def test_large_state_space_omits_search_space(self):
        result = run_toy(ToyParams(r=9, max_iterations=5), rng=1)
        assert result["search_space"] == []

    def test_random_walk_finds_the_top_of_a_small_space(self):
        # n² is largest at the last state
        params = ToyParams(r=3, neighbor_type="random_walk", coefficients=[0.0, 0.0, 1.0], max_iterations=300)
        assert run_toy(params, rng=0)["best_state"] == 7
