"""
Tests for the MLP trainer and its validation helpers.

Run tests:
    pytest tests/test_neural_network.py -v
"""

import numpy as np
import pytest

from api.simulations.generators import generate_classification_dataset
from api.simulations.neural_network import MLPParams, SimpleMLP, activate, activation_derivative, train_with_validation
from api.simulations.nn_validation import (
    EarlyStopping,
    TrainingMetrics,
    calculate_cross_entropy_loss,
    detect_overfitting,
    train_validation_split,
    validate_dataset,
    validate_model_quality,
)


def _loss(model, x, target):
    _, activations = model.forward(x)
    return calculate_cross_entropy_loss(activations[-1], [target])


class TestActivations:
    @pytest.mark.parametrize("name", ["relu", "sigmoid", "tanh"])
    def test_derivative_matches_finite_difference(self, name):
        z = np.array([-1.3, -0.2, 0.4, 2.1])
        eps = 1e-6
        numeric = (activate(z + eps, name) - activate(z - eps, name)) / (2 * eps)
        np.testing.assert_allclose(activation_derivative(z, name), numeric, atol=1e-5)

    def test_unknown_activation(self):
        with pytest.raises(ValueError):
            activate(np.zeros(2), "softplus")


class TestSimpleMLP:
    @pytest.mark.parametrize("activation", ["sigmoid", "tanh"])
    def test_backpropagation_follows_the_gradient(self, activation):
        model = SimpleMLP([3, 4, 1], activation, learning_rate=1e-3, alpha=0.0, rng=0)
        x = np.array([0.3, -0.7, 1.1])
        target = 1.0

        eps = 1e-6
        numeric = np.zeros_like(model.weights[0])
        for i in range(numeric.shape[0]):
            for j in range(numeric.shape[1]):
                model.weights[0][i, j] += eps
                up = _loss(model, x, target)
                model.weights[0][i, j] -= 2 * eps
                down = _loss(model, x, target)
                model.weights[0][i, j] += eps
                numeric[i, j] = (up - down) / (2 * eps)

        before = model.weights[0].copy()
        pre_activations, activations = model.forward(x)
        model._backpropagate(pre_activations, activations, target)
        analytic = (before - model.weights[0]) / model.learning_rate

        np.testing.assert_allclose(analytic, numeric, rtol=1e-4, atol=1e-7)

    def test_layers_must_end_with_one_output(self):
        with pytest.raises(ValueError):
            SimpleMLP([4, 3, 2])

    def test_training_reduces_loss(self):
        X, y = generate_classification_dataset(200, 3, random_seed=1)
        model = SimpleMLP([3, 6, 1], "tanh", learning_rate=0.05, rng=1)
        initial, _ = model.evaluate(X, y)
        model.train(X, y, epochs=15)
        final, accuracy = model.evaluate(X, y)
        assert final < initial
        assert accuracy > 0.85
        assert model.iteration == 15

    def test_predictions_are_probabilities(self):
        model = SimpleMLP([2, 1], "relu", rng=0)
        proba = model.predict_proba(np.random.default_rng(0).normal(size=(10, 2)))
        assert proba.shape == (10,)
        assert np.all((proba > 0) & (proba < 1))

    def test_params_validation(self):
        assert MLPParams(input_neurons=4, hidden_layers=2, neurons_per_hidden=5).layers == [4, 5, 5, 1]
        with pytest.raises(ValueError):
            MLPParams(activation="gelu")
        with pytest.raises(ValueError):
            MLPParams(hidden_layers=9)


class TestValidationHelpers:
    def test_early_stopping_patience(self):
        stopper = EarlyStopping(patience=3, min_delta=0.01)
        assert stopper.check(1.0) is False
        assert stopper.check(0.995) is False
        assert stopper.check(0.999) is False
        assert stopper.check(0.998) is True
        assert stopper.best_loss == 1.0

    def test_improvement_resets_counter(self):
        stopper = EarlyStopping(patience=2, min_delta=0.0)
        stopper.check(1.0)
        stopper.check(1.1)
        stopper.check(0.5)
        assert stopper.counter == 0
        stopper.reset()
        assert stopper.best_loss == float("inf")

    def test_stratified_split(self):
        X = np.arange(100, dtype=float).reshape(50, 2)
        y = np.array([0] * 30 + [1] * 20)
        X_train, X_val, y_train, y_val = train_validation_split(X, y, test_size=0.2, random_seed=3)
        assert np.bincount(y_train).tolist() == [24, 16]
        assert np.bincount(y_val).tolist() == [6, 4]
        assert not {tuple(r) for r in X_train.tolist()} & {tuple(r) for r in X_val.tolist()}

    def test_split_is_seeded(self):
        X, y = generate_classification_dataset(60, 2, random_seed=0)
        a = train_validation_split(X, y, random_seed=5)
        b = train_validation_split(X, y, random_seed=5)
        np.testing.assert_array_equal(a[0], b[0])

    def test_validate_dataset_flags_problems(self):
        X_train = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [3.0, 3.0], [4.0, 4.0], [5.0, 5.0]])
        y_train = np.array([0, 0, 0, 0, 0, 1])
        X_val = np.array([[0.0, 0.0], [5.0, 5.0]])
        y_val = np.array([0, 1])

        validation = validate_dataset(X_train, X_val, y_train, y_val)
        assert validation.duplicates_found == 2
        assert validation.train_class_distribution == [5, 1]
        assert "Severe class imbalance detected" in validation.warnings

    def test_cross_entropy(self):
        assert calculate_cross_entropy_loss([0.5, 0.5], [0, 1]) == pytest.approx(np.log(2))
        assert np.isfinite(calculate_cross_entropy_loss([0.0, 1.0], [1, 0]))

    def test_detect_overfitting(self):
        assert detect_overfitting([1.0] * 5) is False
        assert detect_overfitting([0.5] * 5 + [0.9] * 5) is True
        assert detect_overfitting([0.9] * 5 + [0.5] * 5) is False

    def test_model_quality_warnings(self):
        history = [TrainingMetrics(epoch=1, train_loss=0.1, val_loss=0.2, train_accuracy=0.99, val_accuracy=0.7)]
        warnings = validate_model_quality(history)
        assert any("data leakage" in w for w in warnings)
        assert any("accuracy gap" in w for w in warnings)
        assert any("fewer than 20 epochs" in w for w in warnings)
        assert validate_model_quality([]) == []


class TestTrainWithValidation:
    def test_training_run(self):
        X, y = generate_classification_dataset(150, 4, random_seed=2, label_noise=0.1)
        result = train_with_validation(X, y, MLPParams(), max_epochs=30, patience=5, rng=2)

        history = result["history"]
        assert 1 <= len(history) <= 30
        assert [h["epoch"] for h in history] == list(range(1, len(history) + 1))
        assert result["stopped_epoch"] == history[-1]["epoch"]
        assert result["train_samples"] + result["val_samples"] == 150
        assert result["network"]["layers"] == [4, 6, 1]

    def test_early_stopping_triggers(self):
        X, y = generate_classification_dataset(100, 2, random_seed=4, label_noise=0.4)
        result = train_with_validation(
            X, y, MLPParams(input_neurons=2, learning_rate=0.0001), max_epochs=200, patience=3, min_delta=0.5, rng=0,
        )
        assert result["early_stopped"] is True
        # best loss set at epoch 1, then three epochs without a 0.5 improvement
        assert result["stopped_epoch"] == 4

    def test_epoch_callback_can_interrupt(self):
        X, y = generate_classification_dataset(80, 4, random_seed=3)
        seen = []

        def on_epoch(metrics):
            seen.append(metrics.epoch)
            return metrics.epoch < 4

        result = train_with_validation(X, y, MLPParams(), max_epochs=50, epoch_callback=on_epoch, rng=0)
        assert seen == [1, 2, 3, 4]
        assert result["stopped_epoch"] == 4

    def test_wrong_feature_count(self):
        X, y = generate_classification_dataset(40, 3)
        with pytest.raises(ValueError):
            train_with_validation(X, y, MLPParams(input_neurons=4))
