"""
Huber location estimate by iteratively reweighted least squares.

Each iteration computes residuals from the current estimate, turns them
into Huber weights ``psi(r) / r`` and takes the weighted mean as the new
estimate. Points within ``k`` of the estimate get weight 2; outliers get
``2k / |r|`` and lose influence as they move away.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np

from ..shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DATA = (1.0, 1.0, 2.0, 3.0, 2.0, 3.0, 50.0, 100.0)
ZERO_RESIDUAL = 1e-6
OBJECTIVE_POINTS = 200


@dataclass
class HuberParams:
    data: Sequence[float] = DEFAULT_DATA
    initial_estimate: float = 20.0
    k: float = 5.0
    max_iterations: int = 10
    convergence_threshold: float = 1e-3

    def __post_init__(self):
        if len(self.data) == 0:
            raise ValueError("data must not be empty")
        if self.k <= 0:
            raise ValueError("k must be > 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.convergence_threshold <= 0:
            raise ValueError("convergence_threshold must be > 0")


@dataclass
class IRLSIteration:
    estimate: float
    weights: np.ndarray
    residuals: np.ndarray
    weighted_sum: float
    weight_sum: float


@dataclass
class HuberResult:
    params: HuberParams
    estimate: float
    converged: bool
    iterations: int
    weights: np.ndarray
    residuals: np.ndarray
    history: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = np.asarray(self.params.data, dtype=float)
        return {
            "estimate": self.estimate,
            "converged": self.converged,
            "iterations": self.iterations,
            "weights": self.weights.tolist(),
            "residuals": self.residuals.tolist(),
            "history": self.history,
            "mean": float(data.mean()),
            "median": float(np.median(data)),
            "objective": objective_curve(data, self.params.k),
        }


def psi(residuals, k: float) -> np.ndarray:
    """Derivative of the Huber loss: 2r inside [-k, k], ±2k outside."""
    return 2.0 * np.clip(np.asarray(residuals, dtype=float), -k, k)


def huber_weights(residuals, k: float) -> np.ndarray:
    residuals = np.asarray(residuals, dtype=float)
    small = np.abs(residuals) < ZERO_RESIDUAL
    safe = np.where(small, 1.0, residuals)
    return np.where(small, 1.0, psi(safe, k) / safe)


def huber_loss(x, k: float) -> np.ndarray:
    """x² inside [-k, k], 2k|x| - k² outside."""
    x = np.asarray(x, dtype=float)
    abs_x = np.abs(x)
    return np.where(abs_x <= k, x * x, 2 * k * abs_x - k * k)


def irls_iteration(data, estimate: float, k: float) -> IRLSIteration:
    """One reweighting step; a zero total weight keeps the old estimate."""
    data = np.asarray(data, dtype=float)
    residuals = data - estimate
    weights = huber_weights(residuals, k)
    weighted_sum = float(np.sum(weights * data))
    weight_sum = float(np.sum(weights))
    new_estimate = weighted_sum / weight_sum if weight_sum != 0 else estimate
    return IRLSIteration(
        estimate=new_estimate,
        weights=weights,
        residuals=residuals,
        weighted_sum=weighted_sum,
        weight_sum=weight_sum,
    )


def run_irls(params: HuberParams) -> HuberResult:
    """Iterate until the estimate moves less than the threshold."""
    estimate = float(params.initial_estimate)
    history = [{"iteration": 0, "estimate": estimate}]
    step = irls_iteration(params.data, estimate, params.k)
    converged = False
    iterations = 0

    for iterations in range(1, params.max_iterations + 1):
        step = irls_iteration(params.data, estimate, params.k)
        change = abs(step.estimate - estimate)
        estimate = step.estimate
        history.append({"iteration": iterations, "estimate": estimate})
        if change < params.convergence_threshold:
            converged = True
            break

    logger.debug("IRLS k=%.2f: estimate %.4f after %d iterations", params.k, estimate, iterations)
    return HuberResult(
        params=params,
        estimate=estimate,
        converged=converged,
        iterations=iterations,
        weights=step.weights,
        residuals=step.residuals,
        history=history,
    )


def objective_curve(data, k: float, points: int = OBJECTIVE_POINTS) -> List[Dict[str, float]]:
    """Total Huber loss and squared loss over a grid of candidate locations."""
    data = np.asarray(data, dtype=float)
    span = max(float(data.max() - data.min()), 1.0)
    grid = np.linspace(data.min() - 0.1 * span, data.max() + 0.1 * span, points)
    residuals = data[None, :] - grid[:, None]
    huber = huber_loss(residuals, k).sum(axis=1)
    squared = (residuals ** 2).sum(axis=1)
    return [
        {"mu": float(m), "huber": float(h), "squared": float(s)}
        for m, h, s in zip(grid, huber, squared)
    ]
