"""
HTTP API tests for the Simulix backend.

Exercises every router through the FastAPI application with small
parameter sets so the suite stays fast.

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from api.bias_variance import get_tradeoff_calculator
from api.jobs import JobStatus, job_manager
from api.simulations.tradeoff import InlineTradeoffCalculator
from main import app

client = TestClient(app)


@pytest.fixture()
def inline_tradeoff():
    app.dependency_overrides[get_tradeoff_calculator] = InlineTradeoffCalculator
    yield
    app.dependency_overrides.pop(get_tradeoff_calculator, None)


def _wait_for_job(job_id: str, timeout: float = 60.0):
    future = job_manager.get_future(job_id)
    assert future is not None
    future.result(timeout=timeout)
    return client.get(f"/api/jobs/{job_id}").json()


class TestSystem:
    def test_health(self):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_system_info(self):
        data = client.get("/api/system/info").json()
        assert "numpy" in data["packages"]
        assert data["settings"]["max_workers"] >= 1
        assert "running" in data["jobs"]

    def test_error_log_roundtrip(self):
        client.delete("/api/system/errors")
        data = client.get("/api/system/errors").json()
        assert data == {"errors": [], "total": 0}

    def test_websocket_stats(self):
        assert client.get("/api/ws/stats").json()["total_connections"] >= 0


class TestBootstrap:
    def test_run_with_generated_data(self):
        response = client.post(
            "/api/bootstrap/run",
            json={"sample_size": 20, "num_bootstrap_samples": 100, "data_size": 50, "seed": 1},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["original_data"]) == 50
        assert len(data["statistics"]) == 100
        low, high = data["confidence_interval"]
        assert low <= high
        assert data["params"]["statistic"] == "mean"

    def test_run_is_reproducible(self):
        payload = {"statistic": "median", "num_bootstrap_samples": 50, "seed": 3}
        first = client.post("/api/bootstrap/run", json=payload).json()
        second = client.post("/api/bootstrap/run", json=payload).json()
        assert first["statistics"] == second["statistics"]

    def test_rejects_out_of_range(self):
        response = client.post("/api/bootstrap/run", json={"sample_size": 5})
        assert response.status_code == 422


class TestBiasVariance:
    def test_predictions(self):
        response = client.post(
            "/api/bias-variance/predictions",
            json={"degree": 2, "samples": 20, "n_trials": 5, "seed": 0},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["predictions"]) == 5
        assert len(data["x_plot"]) == len(data["true_values"])
        assert set(data["averages"]) >= {"bias", "variance"}

    def test_tradeoff_inline(self, inline_tradeoff):
        response = client.post(
            "/api/bias-variance/tradeoff",
            json={"samples": 20, "n_trials": 3, "degrees": [1, 3, 5], "seed": 11},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["calculator"] == "inline"
        assert data["degrees"] == [1, 3, 5]
        assert data["seed"] == 11
        assert len(data["points"]) == 3

    def test_tradeoff_background_matches_inline(self, inline_tradeoff):
        payload = {"samples": 20, "n_trials": 3, "degrees": [1, 4], "seed": 5}
        inline = client.post("/api/bias-variance/tradeoff", json=payload).json()

        app.dependency_overrides.pop(get_tradeoff_calculator, None)
        background = client.post("/api/bias-variance/tradeoff", json=payload).json()

        assert inline["total"] == background["total"]

    def test_tradeoff_rejects_bad_degree(self, inline_tradeoff):
        response = client.post("/api/bias-variance/tradeoff", json={"degrees": [0, 3]})
        assert response.status_code == 400

    def test_tradeoff_job(self):
        response = client.post(
            "/api/bias-variance/tradeoff/jobs",
            json={"samples": 20, "n_trials": 2, "degrees": [1, 2], "seed": 4},
        )
        assert response.status_code == 200
        job_id = response.json()["job_id"]
        assert response.json()["websocket_url"] == f"/ws/job/{job_id}"

        job = _wait_for_job(job_id)
        assert job["status"] == JobStatus.COMPLETED.value
        assert job["result"]["degrees"] == [1, 2]

    def test_worker_protocol(self, inline_tradeoff):
        reply = client.post(
            "/api/bias-variance/worker",
            json={"type": "CALCULATE_TRADEOFF", "params": {"samples": 20, "nTrials": 2, "degrees": [2]}},
        ).json()
        assert reply["type"] == "TRADEOFF_COMPLETE"
        assert reply["data"]["degrees"] == [2]

    def test_worker_errors_are_replies(self, inline_tradeoff):
        reply = client.post(
            "/api/bias-variance/worker",
            json={"type": "CALCULATE_TRADEOFF", "params": {"samples": 1}},
        )
        assert reply.status_code == 200
        assert reply.json()["type"] == "TRADEOFF_ERROR"


class TestImportanceSampling:
    def test_run(self):
        response = client.post(
            "/api/importance-sampling/run",
            json={"n_demo": 50, "n_trials_conv": 2, "n_trials_var": 2, "max_samples": 1000, "seed": 8},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["true_value"] > 0
        assert len(data["samples"]["f_samples"]) == 50
        assert set(data["demo_estimates"]) >= {"standard", "normalized"}
        assert data["convergence"]
        assert data["variance"]

    def test_linear_integrand(self):
        data = client.post(
            "/api/importance-sampling/run",
            json={"h_kind": "linear", "n_demo": 20, "n_trials_conv": 1, "n_trials_var": 1,
                  "max_samples": 1000, "seed": 2},
        ).json()
        assert data["true_value"] == pytest.approx(0.0)


class TestRandomForest:
    def test_train(self):
        response = client.post(
            "/api/random-forest/train",
            json={"n_estimators": 10, "max_depth": 3, "random_state": 7},
        )
        assert response.status_code == 200
        data = response.json()
        assert 0.0 <= data["metrics"]["accuracy"] <= 1.0
        assert len(data["feature_importances"]) == 10
        assert data["feature_importances"][0]["rank"] == 1
        assert data["tree_data"]["tree_index"] == 0

    def test_rejects_unknown_max_features(self):
        response = client.post("/api/random-forest/train", json={"max_features": "all"})
        assert response.status_code == 422


class TestNeuralNetwork:
    payload = {
        "input_neurons": 3,
        "neurons_per_hidden": 4,
        "num_samples": 60,
        "max_epochs": 5,
        "random_seed": 1,
    }

    def test_train(self):
        response = client.post("/api/neural-network/train", json=self.payload)
        assert response.status_code == 200
        data = response.json()
        assert 1 <= len(data["history"]) <= 5

    def test_training_job_publishes_metrics(self):
        response = client.post("/api/neural-network/train/jobs", json=self.payload)
        assert response.status_code == 200
        job_id = response.json()["job_id"]

        job = _wait_for_job(job_id)
        assert job["status"] == JobStatus.COMPLETED.value
        assert job["type"] == "training"
        assert "epoch" in job["metrics"]
        assert job["history"]

    def test_rejects_unknown_activation(self):
        response = client.post("/api/neural-network/train", json={"activation": "gelu"})
        assert response.status_code == 422


class TestKMeans:
    def test_cities(self):
        data = client.post("/api/kmeans/cities", json={"count": 12, "seed": 1}).json()
        assert len(data["cities"]) == 12

    def test_cities_count_bounds(self):
        assert client.post("/api/kmeans/cities", json={"count": 5}).status_code == 422

    def test_run_to_convergence(self):
        data = client.post("/api/kmeans/run", json={"count": 20, "k": 3, "seed": 2}).json()
        assert data["phase"] == "converged"
        assert len(data["clusters"]) == 3
        assert len(data["labels"]) == 20
        assert len(data["cities"]) == 20

    def test_run_with_frames(self):
        data = client.post(
            "/api/kmeans/run",
            json={"count": 15, "k": 2, "steps": 2, "include_frames": True, "seed": 3},
        ).json()
        assert len(data["frames"]) == 2
        assert data["frames"][0]["phase"] == "assign"

    def test_elbow(self):
        cities = client.post("/api/kmeans/cities", json={"count": 20, "seed": 4}).json()["cities"]
        data = client.post("/api/kmeans/elbow", json={"cities": cities, "max_k": 5}).json()
        assert [p["k"] for p in data["points"]] == [1, 2, 3, 4, 5]
        assert 1 <= data["optimal_k"] <= 5


class TestVAE:
    def test_simulate(self):
        response = client.post("/api/vae/simulate", json={"epochs": 3, "seed": 1})
        assert response.status_code == 200
        data = response.json()
        assert len(data["epochs"]) == 3
        assert data["params"]["regularization"] == "nuc"

    def test_digits(self):
        data = client.get("/api/vae/digits", params={"batch_size": 4, "seed": 0}).json()
        assert data["labels"] == [0, 1, 2, 3]
        assert data["image_size"] == 28
        assert len(data["images"][0]) == 28

    def test_optimizer_traces(self):
        mm = client.post("/api/vae/optimizers/mm", json={"epochs": 4, "seed": 1}).json()
        assert len(mm["f"]) == 4

        svrg = client.post("/api/vae/optimizers/svrg", json={"epochs": 10, "batch_size": 4, "seed": 1}).json()
        assert len(svrg["variance"]) == 10
        assert svrg["snapshot_epochs"] == [5, 10]

    def test_optimizer_rejects_empty_batch(self):
        assert client.post("/api/vae/optimizers/svrg", json={"batch_size": 0}).status_code == 422


class TestJobs:
    def test_unknown_job(self):
        assert client.get("/api/jobs/does-not-exist").status_code == 404
        assert client.post("/api/jobs/does-not-exist/cancel").status_code == 404

    def test_list_filters_by_type(self):
        client.post(
            "/api/bias-variance/tradeoff/jobs",
            json={"samples": 10, "n_trials": 1, "degrees": [1], "seed": 0},
        )
        data = client.get("/api/jobs", params={"type": "tradeoff"}).json()
        assert data["total"] >= 1
        assert all(job["type"] == "tradeoff" for job in data["jobs"])

    def test_cancel_finished_job_conflicts(self):
        job_id = client.post(
            "/api/bias-variance/tradeoff/jobs",
            json={"samples": 10, "n_trials": 1, "degrees": [1], "seed": 0},
        ).json()["job_id"]
        _wait_for_job(job_id)
        assert client.post(f"/api/jobs/{job_id}/cancel").status_code == 409


class TestQLearning:
    def test_train(self):
        response = client.post("/api/qlearning/train", json={"maze_size": 4, "episodes": 20, "seed": 1})
        assert response.status_code == 200
        data = response.json()
        assert len(data["episode_rewards"]) == 20
        assert len(data["q_table"]) == 4
        assert data["path"][0] == [0, 0]

    def test_custom_maze_sets_size(self):
        maze = [[0] * 5 for _ in range(5)]
        maze[2][2] = 1
        data = client.post("/api/qlearning/train", json={"maze": maze, "episodes": 5, "seed": 2}).json()
        assert data["maze"][2][2] == 1
        assert len(data["policy"]) == 5

    def test_walled_start_rejected(self):
        maze = [[1, 0, 0, 0]] + [[0] * 4 for _ in range(3)]
        assert client.post("/api/qlearning/train", json={"maze": maze}).status_code == 400


class TestEMClustering:
    def test_data(self):
        data = client.post("/api/em/data", json={"samples_per_cluster": 10, "n_clusters": 2}).json()
        assert len(data["data"]) == 20

    def test_run(self):
        data = client.post(
            "/api/em/run",
            json={"samples_per_cluster": 20, "n_clusters": 2, "max_iterations": 10, "contour_resolution": 8},
        ).json()
        assert 1 <= data["iterations"] <= 10
        assert len(data["clusters"]) == 2
        assert len(data["contours"][0]["z"]) == 8

    def test_supplied_points(self):
        points = [{"x": float(i), "y": float(i % 3)} for i in range(12)]
        data = client.post("/api/em/run", json={"points": points, "n_clusters": 2}).json()
        assert len(data["labels"]) == 12


class TestHuber:
    def test_irls_defaults(self):
        data = client.post("/api/huber/irls", json={}).json()
        assert data["converged"]
        assert data["estimate"] == pytest.approx(3.667, abs=0.01)
        assert data["history"][0]["estimate"] == 20.0

    def test_single_iteration(self):
        data = client.post("/api/huber/iteration", json={"data": [0.0, 10.0], "estimate": 0.0, "k": 5.0}).json()
        assert data["estimate"] == pytest.approx(5.0)

    def test_rejects_non_positive_k(self):
        assert client.post("/api/huber/irls", json={"k": 0}).status_code == 422


class TestAnnealing:
    def test_tsp(self):
        data = client.post("/api/annealing/tsp", json={"num_cities": 6, "total_iterations": 50, "seed": 1}).json()
        assert len(data["cities"]) == 6
        assert len(data["distances"]) == 51
        assert data["best_distance"] <= data["initial_distance"]

    def test_tsp_with_cities(self):
        cities = [{"x": 0.7, "y": 0.3}, {"x": 0.72, "y": 0.35}, {"x": 0.75, "y": 0.31}, {"x": 0.71, "y": 0.4}]
        data = client.post("/api/annealing/tsp", json={"cities": cities, "total_iterations": 20, "seed": 2}).json()
        assert sorted(data["best_path"]) == [1, 2, 3]

    def test_toy(self):
        data = client.post("/api/annealing/toy", json={"r": 4, "max_iterations": 30, "seed": 3}).json()
        assert len(data["history"]) == 31
        assert len(data["search_space"]) == 16

    def test_toy_rejects_unknown_schedule(self):
        assert client.post("/api/annealing/toy", json={"cooling_schedule": "cubic"}).status_code == 422

    def test_toy_two_bit_flip_needs_two_bits(self):
        response = client.post("/api/annealing/toy", json={"r": 1, "neighbor_type": "two_bit_flip"})
        assert response.status_code == 400


class TestHiLo:
    def test_play(self):
        data = client.post("/api/hilo/play", json={"rounds": 10, "seed": 4}).json()
        assert len(data["history"]) == 10
        assert data["cards_left"] == 41
        assert len(data["probabilities"]) == 13

    def test_explicit_guesses(self):
        data = client.post("/api/hilo/play", json={"guesses": ["higher", "lower"], "seed": 4}).json()
        assert [h["guess"] for h in data["history"]] == ["higher", "lower"]

    def test_rejects_unknown_guess(self):
        assert client.post("/api/hilo/play", json={"guesses": ["same"]}).status_code == 422

    def test_beta(self):
        data = client.get("/api/hilo/beta", params={"alpha": 2, "beta": 5, "points": 20}).json()
        assert len(data["x"]) == 21
        assert max(data["y"]) == pytest.approx(1.0)


class TestAlias:
    def test_sample(self):
        data = client.post("/api/alias/sample", json={"sample_size": 2000, "seed": 1}).json()
        assert data["probabilities"] == pytest.approx([0.3, 0.1, 0.1, 0.25, 0.25])
        assert len(data["alias_table"]) == 5
        assert sum(data["frequencies"]) == pytest.approx(1.0)

    def test_rejects_negative_weights(self):
        assert client.post("/api/alias/sample", json={"weights": [0.5, -1.0]}).status_code == 400
