"""
Small fully-connected network trained with per-sample SGD.

Hidden layers use ReLU, sigmoid or tanh; the single output unit is a
sigmoid trained with binary cross-entropy and an L2 penalty (``alpha``).
``train_with_validation`` wraps the network with a stratified split, early
stopping and the diagnostics from ``nn_validation``.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng
from .nn_validation import (
    EarlyStopping,
    TrainingMetrics,
    calculate_cross_entropy_loss,
    detect_overfitting,
    train_validation_split,
    validate_dataset,
    validate_model_quality,
)

logger = get_logger(__name__)

ACTIVATIONS = ("relu", "sigmoid", "tanh")
PARAM_LIMITS = {
    "max_input": 8,
    "max_hidden_layers": 3,
    "max_neurons": 15,
    "max_samples": 500,
}


def sigmoid(z):
    return 1.0 / (1.0 + np.exp(-np.clip(z, -250, 250)))


def activate(z, name: str):
    if name == "relu":
        return np.maximum(0.0, z)
    if name == "sigmoid":
        return sigmoid(z)
    if name == "tanh":
        return np.tanh(z)
    raise ValueError(f"Unknown activation: {name!r}")


def activation_derivative(z, name: str):
    """Derivative with respect to the pre-activation ``z``."""
    if name == "relu":
        return (z > 0).astype(float)
    if name == "sigmoid":
        s = sigmoid(z)
        return s * (1.0 - s)
    if name == "tanh":
        t = np.tanh(z)
        return 1.0 - t * t
    raise ValueError(f"Unknown activation: {name!r}")


@dataclass(frozen=True)
class MLPParams:
    input_neurons: int = 4
    hidden_layers: int = 1
    neurons_per_hidden: int = 6
    activation: str = "relu"
    alpha: float = 0.001
    learning_rate: float = 0.01

    def __post_init__(self):
        if self.activation not in ACTIVATIONS:
            raise ValueError(f"Unknown activation: {self.activation!r}")
        if not 1 <= self.input_neurons <= PARAM_LIMITS["max_input"]:
            raise ValueError(f"input_neurons must be in [1, {PARAM_LIMITS['max_input']}]")
        if not 0 <= self.hidden_layers <= PARAM_LIMITS["max_hidden_layers"]:
            raise ValueError(f"hidden_layers must be in [0, {PARAM_LIMITS['max_hidden_layers']}]")
        if not 1 <= self.neurons_per_hidden <= PARAM_LIMITS["max_neurons"]:
            raise ValueError(f"neurons_per_hidden must be in [1, {PARAM_LIMITS['max_neurons']}]")

    @property
    def layers(self) -> List[int]:
        return [self.input_neurons] + [self.neurons_per_hidden] * self.hidden_layers + [1]


class SimpleMLP:
    """Binary classifier MLP.

    Weights are stored per layer as (n_out, n_in) arrays and initialised
    uniformly in ±1/sqrt(n_in); biases start at zero.
    """

    def __init__(
        self,
        layers: List[int],
        activation: str = "relu",
        learning_rate: float = 0.01,
        alpha: float = 0.001,
        rng: RngLike = None,
    ):
        if len(layers) < 2 or layers[-1] != 1:
            raise ValueError("layers must have an input size and end with a single output")
        if activation not in ACTIVATIONS:
            raise ValueError(f"Unknown activation: {activation!r}")

        self.layers = list(layers)
        self.activation = activation
        self.learning_rate = learning_rate
        self.alpha = alpha
        self.rng = ensure_rng(rng)
        self.iteration = 0
        self.loss = 0.0
        self.training_history: Dict[str, List[float]] = {"loss": [], "accuracy": [], "iteration": []}

        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        for n_in, n_out in zip(self.layers[:-1], self.layers[1:]):
            self.weights.append((self.rng.random((n_out, n_in)) - 0.5) * 2 / np.sqrt(n_in))
            self.biases.append(np.zeros(n_out))

    def forward(self, x: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        """Forward pass for one sample.

        Returns:
            (pre_activations, activations); activations[0] is the input.
        """
        activations = [np.asarray(x, dtype=float)]
        pre_activations = []
        last = len(self.weights) - 1
        for i, (W, b) in enumerate(zip(self.weights, self.biases)):
            z = W @ activations[-1] + b
            pre_activations.append(z)
            activations.append(sigmoid(z) if i == last else activate(z, self.activation))
        return pre_activations, activations

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Positive-class probability for every row of ``X``."""
        A = np.asarray(X, dtype=float)
        last = len(self.weights) - 1
        for i, (W, b) in enumerate(zip(self.weights, self.biases)):
            Z = A @ W.T + b
            A = sigmoid(Z) if i == last else activate(Z, self.activation)
        return A[:, 0]

    def predict(self, X: np.ndarray) -> np.ndarray:
        return (self.predict_proba(X) > 0.5).astype(int)

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        y = np.asarray(y)
        if y.size == 0:
            return 0.0
        return float(np.mean(self.predict(X) == y))

    def evaluate(self, X: np.ndarray, y: np.ndarray) -> Tuple[float, float]:
        """(cross-entropy loss, accuracy) over a dataset."""
        proba = self.predict_proba(X)
        y = np.asarray(y)
        accuracy = float(np.mean((proba > 0.5).astype(int) == y)) if y.size else 0.0
        return calculate_cross_entropy_loss(proba, y), accuracy

    def _backpropagate(self, pre_activations, activations, target: float) -> None:
        deltas = [np.array([activations[-1][0] - target])]
        for i in range(len(self.weights) - 2, -1, -1):
            error = self.weights[i + 1].T @ deltas[0]
            deltas.insert(0, error * activation_derivative(pre_activations[i], self.activation))

        for i, delta in enumerate(deltas):
            gradient = np.outer(delta, activations[i])
            self.weights[i] -= self.learning_rate * (gradient + self.alpha * self.weights[i])
            self.biases[i] -= self.learning_rate * delta

    def train_epoch(self, X: np.ndarray, y: np.ndarray, shuffle: bool = True) -> Tuple[float, float]:
        """One SGD pass; returns the running (loss, accuracy) of the pass."""
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        order = self.rng.permutation(len(y)) if shuffle else np.arange(len(y))

        total_loss = 0.0
        correct = 0
        for i in order:
            pre_activations, activations = self.forward(X[i])
            prediction = float(activations[-1][0])
            total_loss += calculate_cross_entropy_loss([prediction], [y[i]])
            correct += int((prediction > 0.5) == (y[i] == 1))
            self._backpropagate(pre_activations, activations, y[i])

        n = max(len(y), 1)
        self.loss = total_loss / n
        self.iteration += 1
        self.training_history["loss"].append(self.loss)
        self.training_history["accuracy"].append(correct / n)
        self.training_history["iteration"].append(self.iteration)
        return self.loss, correct / n

    def train(self, X: np.ndarray, y: np.ndarray, epochs: int = 1) -> None:
        for _ in range(epochs):
            self.train_epoch(X, y)

    def describe(self) -> Dict[str, Any]:
        """Layer sizes and parameters for the network diagram."""
        return {
            "layers": self.layers,
            "activation": self.activation,
            "weights": [W.tolist() for W in self.weights],
            "biases": [b.tolist() for b in self.biases],
        }


def train_with_validation(
    X: np.ndarray,
    y: np.ndarray,
    params: MLPParams,
    max_epochs: int = 100,
    patience: int = 10,
    min_delta: float = 0.001,
    test_size: float = 0.2,
    random_seed: int = 42,
    rng: RngLike = None,
    epoch_callback: Optional[Callable[[TrainingMetrics], bool]] = None,
) -> Dict[str, Any]:
    """Train until ``max_epochs`` or until early stopping triggers.

    Args:
        epoch_callback: Called with every epoch's metrics; returning False
            stops training (used for job cancellation).

    Returns:
        Dict with the per-epoch ``history``, ``dataset_validation``,
        quality ``warnings``, stop information and the trained network.
    """
    if max_epochs < 1:
        raise ValueError("max_epochs must be >= 1")
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=int)
    if X.ndim != 2 or X.shape[1] != params.input_neurons:
        raise ValueError(f"X must have {params.input_neurons} feature columns")

    X_train, X_val, y_train, y_val = train_validation_split(X, y, test_size, random_seed)
    if len(y_train) == 0 or len(y_val) == 0:
        raise ValueError("Not enough samples for a train/validation split")

    dataset_validation = validate_dataset(X_train, X_val, y_train, y_val)
    for warning in dataset_validation.warnings:
        logger.info("Dataset check: %s", warning)

    model = SimpleMLP(params.layers, params.activation, params.learning_rate, params.alpha, rng)
    early_stopping = EarlyStopping(patience, min_delta)
    history: List[TrainingMetrics] = []
    val_losses: List[float] = []

    for epoch in range(1, max_epochs + 1):
        model.train_epoch(X_train, y_train)
        train_loss, train_accuracy = model.evaluate(X_train, y_train)
        val_loss, val_accuracy = model.evaluate(X_val, y_val)
        val_losses.append(val_loss)

        stop = early_stopping.check(val_loss)
        metrics = TrainingMetrics(
            epoch=epoch,
            train_loss=train_loss,
            val_loss=val_loss,
            train_accuracy=train_accuracy,
            val_accuracy=val_accuracy,
            overfitting_warning=detect_overfitting(val_losses),
            early_stopped=stop,
        )
        history.append(metrics)

        if epoch_callback is not None and epoch_callback(metrics) is False:
            logger.info("Training interrupted at epoch %d", epoch)
            break
        if stop:
            logger.info("Early stopping at epoch %d (best val loss %.4f)", epoch, early_stopping.best_loss)
            break

    final = history[-1]
    return {
        "history": [m.to_dict() for m in history],
        "dataset_validation": dataset_validation.to_dict(),
        "warnings": validate_model_quality(history),
        "early_stopped": final.early_stopped,
        "stopped_epoch": final.epoch,
        "best_val_loss": early_stopping.best_loss,
        "train_samples": int(len(y_train)),
        "val_samples": int(len(y_val)),
        "network": model.describe(),
    }
