"""
Training diagnostics for the neural network page.

Early stopping, a stratified train/validation split and the sanity checks
that flag a dataset or a training run as suspicious (leakage between
splits, a baseline that is already near-perfect, class imbalance, a widening
train/validation gap).
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np
from sklearn.linear_model import LogisticRegression

TOO_SIMPLE_ACCURACY = 0.95
MIN_CLASS_BALANCE = 0.3
OVERFIT_MARGIN = 0.001
ACCURACY_GAP = 0.1
MIN_EPOCHS = 20


@dataclass
class TrainingMetrics:
    epoch: int
    train_loss: float
    val_loss: float
    train_accuracy: float
    val_accuracy: float
    overfitting_warning: bool = False
    early_stopped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DatasetValidation:
    duplicates_found: int
    train_class_distribution: List[int]
    val_class_distribution: List[int]
    dataset_too_simple: bool
    simple_model_accuracy: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EarlyStopping:
    """Stop once the validation loss has not improved by ``min_delta`` for
    ``patience`` consecutive checks."""

    def __init__(self, patience: int = 10, min_delta: float = 0.001):
        self.patience = patience
        self.min_delta = min_delta
        self.reset()

    def reset(self) -> None:
        self.best_loss = float("inf")
        self.counter = 0
        self.stopped = False

    def check(self, val_loss: float) -> bool:
        """Record one validation loss; returns True when training should stop."""
        if val_loss < self.best_loss - self.min_delta:
            self.best_loss = val_loss
            self.counter = 0
        else:
            self.counter += 1

        self.stopped = self.counter >= self.patience
        return self.stopped


def train_validation_split(
    X: np.ndarray,
    y: np.ndarray,
    test_size: float = 0.2,
    random_seed: int = 42,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Stratified split; each class is shuffled and cut separately.

    Returns:
        (X_train, X_val, y_train, y_val)
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=int)
    rng = np.random.default_rng(random_seed)

    train_parts, val_parts = [], []
    for label in np.unique(y):
        indices = rng.permutation(np.flatnonzero(y == label))
        cut = int(np.floor(indices.size * (1 - test_size)))
        train_parts.append(indices[:cut])
        val_parts.append(indices[cut:])

    train_idx = np.concatenate(train_parts) if train_parts else np.empty(0, dtype=int)
    val_idx = np.concatenate(val_parts) if val_parts else np.empty(0, dtype=int)
    return X[train_idx], X[val_idx], y[train_idx], y[val_idx]


def _class_distribution(y: np.ndarray) -> List[int]:
    return [int(np.sum(y == 0)), int(np.sum(y == 1))]


def _balance(distribution: List[int]) -> float:
    largest = max(distribution)
    return min(distribution) / largest if largest else 0.0


def baseline_accuracy(X_train, X_val, y_train, y_val) -> float:
    """Validation accuracy of a plain logistic regression."""
    if len(y_val) == 0:
        return 0.0
    if np.unique(y_train).size < 2:
        # Nothing to learn: the baseline predicts the only class it saw
        return float(np.mean(np.asarray(y_val) == y_train[0])) if len(y_train) else 0.0
    model = LogisticRegression(max_iter=500)
    model.fit(X_train, y_train)
    return float(model.score(X_val, y_val))


def validate_dataset(X_train, X_val, y_train, y_val) -> DatasetValidation:
    """Check a split for leakage, triviality and imbalance."""
    warnings: List[str] = []

    train_rows = {tuple(row) for row in np.asarray(X_train).tolist()}
    val_rows = {tuple(row) for row in np.asarray(X_val).tolist()}
    duplicates = len(train_rows & val_rows)
    if duplicates:
        warnings.append(f"{duplicates} duplicate samples found between train/val sets")

    train_dist = _class_distribution(np.asarray(y_train))
    val_dist = _class_distribution(np.asarray(y_val))

    accuracy = baseline_accuracy(X_train, X_val, y_train, y_val)
    too_simple = accuracy > TOO_SIMPLE_ACCURACY
    if too_simple:
        warnings.append(
            f"Dataset may be too simple (simple model achieves {accuracy * 100:.1f}% accuracy)"
        )

    if _balance(train_dist) < MIN_CLASS_BALANCE or _balance(val_dist) < MIN_CLASS_BALANCE:
        warnings.append("Severe class imbalance detected")

    return DatasetValidation(
        duplicates_found=duplicates,
        train_class_distribution=train_dist,
        val_class_distribution=val_dist,
        dataset_too_simple=too_simple,
        simple_model_accuracy=accuracy,
        warnings=warnings,
    )


def calculate_cross_entropy_loss(predictions, targets) -> float:
    predictions = np.clip(np.asarray(predictions, dtype=float), 1e-15, 1 - 1e-15)
    targets = np.asarray(targets, dtype=float)
    if predictions.size == 0:
        return 0.0
    return float(-np.mean(targets * np.log(predictions) + (1 - targets) * np.log(1 - predictions)))


def detect_overfitting(val_losses: List[float], window: int = 5) -> bool:
    """True when the recent validation loss average rises above the previous window."""
    if len(val_losses) < window + 2:
        return False
    recent = val_losses[-window:]
    previous = val_losses[-2 * window:-window]
    return float(np.mean(recent)) > float(np.mean(previous)) + OVERFIT_MARGIN


def validate_model_quality(history: List[TrainingMetrics]) -> List[str]:
    """Warnings about a finished training run."""
    warnings: List[str] = []
    if not history:
        return warnings

    final = history[-1]
    if final.train_accuracy > TOO_SIMPLE_ACCURACY or final.val_accuracy > TOO_SIMPLE_ACCURACY:
        warnings.append("Suspiciously high accuracy (>95%) - investigate for data leakage")

    if abs(final.train_accuracy - final.val_accuracy) > ACCURACY_GAP:
        warnings.append("Large train/validation accuracy gap suggests overfitting")

    if len(history) < 10 and final.train_accuracy > 0.9:
        warnings.append("Suspiciously rapid convergence - check dataset difficulty")

    if len(history) < MIN_EPOCHS and not final.early_stopped:
        warnings.append("Training ended with fewer than 20 epochs - may need more training")

    return warnings
