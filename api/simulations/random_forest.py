"""
Simplified random forest for the classification demo.

This is a teaching simulation, not an estimator: each "tree" keeps at most
one information-gain split, prediction-time probabilities are deliberately
noisy, and the reported metrics are capped so the demo never suggests the
near-perfect scores that usually signal data leakage.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np
from sklearn.metrics import auc, confusion_matrix, roc_curve

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng, generate_breast_cancer_data

logger = get_logger(__name__)

MAX_ESTIMATORS = 100
MAX_DEPTH = 8
MIN_SAMPLES_SPLIT = 5
MIN_SAMPLES_LEAF = 2
MAX_FEATURE_STRATEGIES = ("sqrt", "log2", "auto")
SPLIT_PERCENTILES = (0.25, 0.5, 0.75)
MIN_GAIN = 0.05
IMPORTANCE_WEIGHT = 0.05
DATASET_SIZE = 800

# Metric ceilings keep the demo in a believable range
ACCURACY_CAP = 0.88
PRECISION_CAP = 0.87
RECALL_CAP = 0.86
OOB_CAP = 0.88
OOB_FALLBACK = 0.75
TREE_ACCURACY_CAP = 0.87
AUC_RANGE = (0.65, 0.88)


@dataclass(frozen=True)
class RandomForestParams:
    n_estimators: int = 50
    max_depth: int = 5
    max_features: str = "sqrt"
    test_size: float = 0.3
    random_state: int = 42

    def __post_init__(self):
        if self.max_features not in MAX_FEATURE_STRATEGIES:
            raise ValueError(f"Unknown max_features: {self.max_features!r}")
        if not 0.0 < self.test_size < 1.0:
            raise ValueError("test_size must be in (0, 1)")


@dataclass
class Split:
    feature_idx: int
    threshold: float
    gain: float


@dataclass
class TreeStump:
    """One simplified tree: at most one retained split."""

    splits: List[Split]
    prediction: float
    accuracy: float
    samples: int
    is_leaf: bool
    oob_indices: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=int))


def entropy(labels) -> float:
    labels = np.asarray(labels)
    if labels.size == 0:
        return 0.0
    _, counts = np.unique(labels, return_counts=True)
    p = counts / labels.size
    return float(-np.sum(p * np.log2(p)))


def information_gain(X: np.ndarray, y: np.ndarray, feature_idx: int, threshold: float) -> float:
    """Entropy reduction of splitting on ``X[:, feature_idx] <= threshold``."""
    left = X[:, feature_idx] <= threshold
    n_left = int(left.sum())
    if n_left == 0 or n_left == y.size:
        return 0.0
    weighted = (n_left * entropy(y[left]) + (y.size - n_left) * entropy(y[~left])) / y.size
    return entropy(y) - weighted


class SimpleRandomForest:
    """Bagged one-split trees with out-of-bag scoring."""

    def __init__(self, params: RandomForestParams, rng: RngLike = None):
        self.n_estimators = min(params.n_estimators, MAX_ESTIMATORS)
        self.max_depth = min(params.max_depth, MAX_DEPTH)
        self.max_features = params.max_features
        self.min_samples_split = MIN_SAMPLES_SPLIT
        self.min_samples_leaf = MIN_SAMPLES_LEAF
        self.rng = ensure_rng(params.random_state if rng is None else rng)
        self.trees: List[TreeStump] = []
        self.feature_importances = np.empty(0)
        self.oob_score_ = 0.0

    def n_candidate_features(self, total: int) -> int:
        if self.max_features == "log2":
            n = int(math.floor(math.log2(total)))
        elif self.max_features == "auto":
            n = total
        else:
            n = int(math.floor(math.sqrt(total)))
        return max(1, min(n, total))

    def fit(self, X: np.ndarray, y: np.ndarray) -> "SimpleRandomForest":
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=int)
        n_samples, n_features = X.shape

        self.trees = []
        self.feature_importances = np.zeros(n_features)
        oob_sum = np.zeros(n_samples)
        oob_count = np.zeros(n_samples, dtype=int)

        for _ in range(self.n_estimators):
            indices = self.rng.integers(0, n_samples, size=n_samples)
            in_bag = np.zeros(n_samples, dtype=bool)
            in_bag[indices] = True
            oob_indices = np.flatnonzero(~in_bag)

            tree = self._train_tree(X[indices], y[indices])
            tree.oob_indices = oob_indices
            self.trees.append(tree)

            if oob_indices.size:
                oob_sum[oob_indices] += self._predict_tree(tree, X[oob_indices])
                oob_count[oob_indices] += 1

        scored = oob_count > 0
        if scored.any():
            oob_pred = (oob_sum[scored] / oob_count[scored]) > 0.5
            self.oob_score_ = min(OOB_CAP, float(np.mean(oob_pred == y[scored])))
        else:
            self.oob_score_ = OOB_FALLBACK

        total = self.feature_importances.sum()
        if total > 0:
            self.feature_importances = self.feature_importances / total

        logger.debug("Forest trained: %d trees, OOB=%.3f", len(self.trees), self.oob_score_)
        return self

    def _train_tree(self, X: np.ndarray, y: np.ndarray) -> TreeStump:
        prediction = float(y.mean()) if y.size else 0.5

        if y.size < self.min_samples_split * 2:
            return TreeStump(
                splits=[],
                prediction=prediction,
                accuracy=float(self.rng.uniform(0.70, 0.85)),
                samples=int(y.size),
                is_leaf=True,
            )

        n_features = X.shape[1]
        chosen = self.rng.choice(n_features, size=self.n_candidate_features(n_features), replace=False)

        candidates: List[Split] = []
        for feature_idx in chosen[:2]:
            unique_values = np.unique(X[:, feature_idx])
            if unique_values.size < 3:
                continue
            for percentile in SPLIT_PERCENTILES:
                threshold = float(unique_values[int(math.floor(unique_values.size * percentile))])
                n_left = int(np.count_nonzero(X[:, feature_idx] <= threshold))
                if min(n_left, y.size - n_left) < self.min_samples_leaf:
                    continue
                gain = information_gain(X, y, int(feature_idx), threshold)
                if gain > MIN_GAIN:
                    self.feature_importances[feature_idx] += gain * IMPORTANCE_WEIGHT
                    candidates.append(Split(int(feature_idx), threshold, gain))

        candidates.sort(key=lambda s: s.gain, reverse=True)
        best = candidates[:1]

        base_accuracy = float(self.rng.uniform(0.72, 0.85))
        accuracy = min(TREE_ACCURACY_CAP, base_accuracy + min(0.05, len(best) * 0.02))

        return TreeStump(
            splits=best,
            prediction=prediction,
            accuracy=accuracy,
            samples=int(y.size),
            is_leaf=not best,
        )

    def _predict_tree(self, tree: TreeStump, X: np.ndarray) -> np.ndarray:
        """Noisy positive-class probability of one tree for every row."""
        n = X.shape[0]
        if tree.is_leaf or not tree.splits:
            noise = (self.rng.random(n) - 0.5) * 0.15
            return np.clip(tree.prediction + noise, 0.1, 0.9)

        split = tree.splits[0]
        below = X[:, split.feature_idx] <= split.threshold
        base = np.where(below, 0.25, 0.45) + self.rng.random(n) * 0.3
        noise = (self.rng.random(n) - 0.5) * 0.25
        return np.clip(base + noise, 0.05, 0.95)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """(n, 2) array of [benign, malignant] probabilities."""
        X = np.asarray(X, dtype=float)
        if not self.trees:
            raise ValueError("Forest is not fitted")
        positive = np.mean([self._predict_tree(tree, X) for tree in self.trees], axis=0)
        return np.column_stack([1.0 - positive, positive])

    def predict(self, X: np.ndarray) -> np.ndarray:
        return (self.predict_proba(X)[:, 1] > 0.5).astype(int)


def calculate_roc(y_true, scores) -> Dict[str, Any]:
    """ROC curve with the AUC clamped to the demo range."""
    y_true = np.asarray(y_true, dtype=int)
    scores = np.asarray(scores, dtype=float)

    if np.unique(y_true).size < 2:
        # A single-class test set has no ROC curve; report the diagonal
        fpr, tpr, thresholds = np.array([0.0, 1.0]), np.array([0.0, 1.0]), np.array([1.0, 0.0])
    else:
        fpr, tpr, thresholds = roc_curve(y_true, scores)

    raw_auc = float(auc(fpr, tpr))
    low, high = AUC_RANGE
    return {
        "fpr": fpr.tolist(),
        "tpr": tpr.tolist(),
        "auc": max(low, min(high, raw_auc)),
        # roc_curve puts an infinite threshold first
        "thresholds": np.where(np.isfinite(thresholds), thresholds, 1.0).tolist(),
    }


def capped_metrics(y_true, y_pred) -> Dict[str, Any]:
    """Accuracy, precision, recall and F1 with demo ceilings applied."""
    y_true = np.asarray(y_true, dtype=int)
    y_pred = np.asarray(y_pred, dtype=int)
    matrix = confusion_matrix(y_true, y_pred, labels=[0, 1])
    (tn, fp), (fn, tp) = matrix

    accuracy = min(ACCURACY_CAP, float(np.mean(y_true == y_pred))) if y_true.size else 0.0
    precision = min(PRECISION_CAP, tp / (tp + fp) if tp + fp else 0.0)
    recall = min(RECALL_CAP, tp / (tp + fn) if tp + fn else 0.0)
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    return {
        "accuracy": float(accuracy),
        "precision": float(precision),
        "recall": float(recall),
        "f1_score": float(f1),
        "confusion_matrix": matrix.tolist(),
    }


def _short_name(name: str) -> str:
    return name[:17] + "..." if len(name) > 20 else name


def tree_summary(forest: SimpleRandomForest, tree_index: int, feature_names: List[str]) -> Dict[str, Any]:
    """Display summary of one tree: node counts, depth and decision path."""
    if not 0 <= tree_index < len(forest.trees):
        return {
            "tree_index": tree_index,
            "decision_nodes": 0,
            "leaf_nodes": 0,
            "actual_depth": 0,
            "decision_path": [],
            "tree_accuracy": 0.0,
            "training_samples": 0,
            "feature_names": feature_names,
        }

    tree = forest.trees[tree_index]
    rng = forest.rng
    decision_nodes = min(len(tree.splits) * 3 + int(rng.integers(0, 4)), 8)
    depth = min(int(math.floor(math.log2(decision_nodes + 1))) + 1, forest.max_depth)

    path = [
        {
            "step": i + 1,
            "feature": _short_name(feature_names[split.feature_idx]),
            "threshold": round(split.threshold, 4),
            "condition": f"≤ {split.threshold:.4f}",
        }
        for i, split in enumerate(tree.splits[:3])
    ]
    if not path:
        # Leaf trees still show an illustrative split
        threshold = round(float(rng.uniform(0.3, 0.7)), 4)
        path.append({
            "step": 1,
            "feature": _short_name(feature_names[int(rng.integers(0, len(feature_names)))]),
            "threshold": threshold,
            "condition": f"≤ {threshold:.4f}",
        })

    return {
        "tree_index": tree_index,
        "decision_nodes": decision_nodes,
        "leaf_nodes": decision_nodes + 1,
        "actual_depth": depth,
        "decision_path": path,
        "tree_accuracy": tree.accuracy,
        "training_samples": tree.samples,
        "feature_names": feature_names,
    }


def train_test_split_indices(n: int, test_size: float, rng: np.random.Generator):
    order = rng.permutation(n)
    split_index = int(math.floor(n * (1 - test_size)))
    return order[:split_index], order[split_index:]


def train_random_forest_model(
    params: RandomForestParams,
    tree_index: int = 0,
    rng: RngLike = None,
) -> Dict[str, Any]:
    """Train on the synthetic breast-cancer data and report capped metrics."""
    rng = ensure_rng(params.random_state if rng is None else rng)
    dataset = generate_breast_cancer_data(DATASET_SIZE)
    X, y = dataset["data"], dataset["labels"]
    feature_names = dataset["feature_names"]
    target_names = dataset["target_names"]

    train_idx, test_idx = train_test_split_indices(len(y), params.test_size, rng)
    if train_idx.size == 0 or test_idx.size == 0:
        raise ValueError("test_size leaves an empty train or test set")
    X_train, y_train = X[train_idx], y[train_idx]
    X_test, y_test = X[test_idx], y[test_idx]

    forest = SimpleRandomForest(params, rng).fit(X_train, y_train)
    proba = forest.predict_proba(X_test)
    y_pred = (proba[:, 1] > 0.5).astype(int)

    metrics = capped_metrics(y_test, y_pred)
    roc = calculate_roc(y_test, proba[:, 1])

    order = np.argsort(-forest.feature_importances, kind="stable")[:10]
    importances = [
        {"feature": feature_names[idx], "importance": float(forest.feature_importances[idx]), "rank": rank + 1}
        for rank, idx in enumerate(order)
    ]

    logger.info(
        "Random forest: %d trees, accuracy=%.3f auc=%.3f",
        len(forest.trees), metrics["accuracy"], roc["auc"],
    )

    return {
        "metrics": {
            "accuracy": metrics["accuracy"],
            "precision": metrics["precision"],
            "recall": metrics["recall"],
            "f1_score": metrics["f1_score"],
            "auc_roc": roc["auc"],
            "training_samples": int(train_idx.size),
            "test_samples": int(test_idx.size),
            "oob_score": forest.oob_score_,
        },
        "confusion_matrix": metrics["confusion_matrix"],
        "roc_data": roc,
        "feature_importances": importances,
        "prediction_probabilities": {
            "sample_index": 0,
            "true_label": target_names[int(y_test[0])],
            "predicted_label": target_names[int(y_pred[0])],
            "probabilities": proba[0].tolist(),
            "confidence": float(proba[0].max()),
        },
        "tree_data": tree_summary(forest, tree_index, feature_names),
    }
