"""
Tests for the K-means city game.

Run tests:
    pytest tests/test_kmeans.py -v
"""

import numpy as np
import pytest

from api.simulations.generators import cities_to_array
from api.simulations.kmeans import (
    GamePhase,
    KMeansGame,
    assign_clusters,
    compute_wcss,
    elbow_data,
    pick_elbow,
    reseed_empty_clusters,
    update_centroids,
)


def _blobs(centers, per_blob=10, spread=3.0, seed=0):
    rng = np.random.default_rng(seed)
    points = np.concatenate([rng.normal(c, spread, size=(per_blob, 2)) for c in centers])
    return [{"x": float(x), "y": float(y), "name": f"C{i}", "population": 10000} for i, (x, y) in enumerate(points)]


class TestPrimitives:
    def test_assign_and_update(self):
        points = np.array([[0.0, 0.0], [1.0, 0.0], [10.0, 0.0], [11.0, 0.0]])
        centroids = np.array([[0.0, 0.0], [10.0, 0.0]])
        labels = assign_clusters(points, centroids)
        assert labels.tolist() == [0, 0, 1, 1]

        updated = update_centroids(points, labels, centroids)
        np.testing.assert_allclose(updated, [[0.5, 0.0], [10.5, 0.0]])
        assert compute_wcss(points, labels, updated) == pytest.approx(1.0)

    def test_empty_cluster_takes_farthest_point(self):
        points = np.array([[0.0, 0.0], [1.0, 0.0], [10.0, 0.0]])
        labels = np.array([0, 0, 0])
        centroids = np.array([[3.6, 0.0], [100.0, 100.0]])
        assert reseed_empty_clusters(points, labels, centroids).tolist() == [0, 0, 1]

    def test_pick_elbow(self):
        assert pick_elbow([1, 2, 3, 4, 5], [100.0, 90.0, 20.0, 15.0, 12.0]) == 3
        assert pick_elbow([1, 2], [10.0, 5.0]) == 2


class TestGame:
    def test_fifty_cities_three_clusters(self, cities):
        game = KMeansGame(cities, 3, rng=0).run()
        points = cities_to_array(cities)

        assert game.converged
        assert len(np.unique(game.labels)) == 3
        for cluster in range(3):
            members = points[game.labels == cluster]
            assert len(members) > 0
            np.testing.assert_allclose(game.centroids[cluster], members.mean(axis=0))

    def test_wcss_never_increases(self, cities):
        game = KMeansGame(cities, 5, rng=3).run()
        wcss = [record["wcss"] for record in game.convergence]
        assert all(b <= a + 1e-6 for a, b in zip(wcss, wcss[1:]))
        assert [r["iteration"] for r in game.convergence] == list(range(1, game.iteration + 1))

    def test_phases(self, cities):
        game = KMeansGame(cities, 3, rng=1)
        assert game.phase == GamePhase.UNINITIALIZED
        assert game.step() == GamePhase.ASSIGN
        assert game.iteration == 0
        assert len({tuple(c) for c in game.centroids.tolist()}) == 3

        assert game.step() in (GamePhase.UPDATE, GamePhase.CONVERGED)
        assert game.iteration == 1

    def test_converged_game_ignores_ticks(self, cities):
        game = KMeansGame(cities, 2, rng=2).run()
        iteration = game.iteration
        assert game.step() == GamePhase.CONVERGED
        assert game.iteration == iteration

    def test_max_iterations_bound(self, cities):
        game = KMeansGame(cities, 6, max_iterations=1, rng=4).run()
        assert game.converged
        assert game.iteration == 1

    def test_too_few_cities(self, cities):
        with pytest.raises(ValueError):
            KMeansGame(cities[:2], 3)

    def test_tight_cluster_levels_up(self):
        # ~99 points per tick plus the early convergence bonus passes 1000
        cities = _blobs([(400, 200)], per_blob=12, spread=2.0)
        game = KMeansGame(cities, 1, rng=5).run()
        assert game.wcss < 50000
        assert game.score > 1000
        assert game.level == 2

    def test_snapshot(self, cities):
        game = KMeansGame(cities, 4, rng=6).run()
        snapshot = game.snapshot()
        assert snapshot["phase"] == "converged"
        assert len(snapshot["clusters"]) == 4
        assert sum(len(c["cities"]) for c in snapshot["clusters"]) == 50
        assert snapshot["wcss"] == game.convergence[-1]["wcss"]

    def test_snapshot_before_start(self, cities):
        snapshot = KMeansGame(cities, 3).snapshot()
        assert snapshot["clusters"] == []
        assert snapshot["wcss"] is None


class TestElbow:
    def test_elbow_records(self, cities):
        data = elbow_data(cities)
        assert [p["k"] for p in data["points"]] == list(range(1, 9))
        assert sum(p["is_optimal"] for p in data["points"]) == 1
        assert data["points"][0]["wcss"] > data["points"][-1]["wcss"]
        assert 1 <= data["optimal_k"] <= 8

    def test_k_limited_by_distinct_cities(self):
        cities = [{"x": float(x), "y": 50.0} for x in (10, 10, 200, 200, 400)]
        data = elbow_data(cities)
        assert [p["k"] for p in data["points"]] == [1, 2, 3]

    def test_no_cities(self):
        assert elbow_data([]) == {"points": [], "optimal_k": None}
