"""
Bias-variance decomposition of polynomial regression.

Many polynomial models of the same degree are trained on independent noisy
draws of the true function and evaluated on a fixed grid. The spread of
their predictions gives the variance, the distance of their average from
the truth gives the squared bias, and the configured noise level gives the
irreducible error. ``total`` is always the sum of those three arrays.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng, generate_data, generate_plot_x, true_function

logger = get_logger(__name__)

# Chart range of the prediction plot. Only the serialised curves are clipped;
# the decomposition always uses the raw predictions.
PREDICTION_LIMITS = (-5.0, 5.0)

DEFAULT_TRIALS = 50
TRADEOFF_TRIALS = 30
TRADEOFF_DEGREES = tuple(range(1, 16))


@dataclass(frozen=True)
class BiasVarianceParams:
    degree: int = 3
    noise: float = 0.3
    samples: int = 75


@dataclass
class ErrorDecomposition:
    """Per-grid-point error components; ``total = bias + variance + noise``."""

    bias: np.ndarray
    variance: np.ndarray
    noise: np.ndarray
    total: np.ndarray

    def averages(self) -> Dict[str, float]:
        return {
            "bias": float(self.bias.mean()),
            "variance": float(self.variance.mean()),
            "noise": float(self.noise.mean()),
            "total": float(self.total.mean()),
        }

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "bias": self.bias.tolist(),
            "variance": self.variance.tolist(),
            "noise": self.noise.tolist(),
            "total": self.total.tolist(),
        }


@dataclass
class BiasVarianceResult:
    params: BiasVarianceParams
    x_plot: np.ndarray
    true_values: np.ndarray
    predictions: np.ndarray
    mean_prediction: np.ndarray
    errors: ErrorDecomposition
    train_mse: List[float]
    test_mse: List[float]
    sample_X: np.ndarray
    sample_y: np.ndarray
    history: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "params": {
                "degree": self.params.degree,
                "noise": self.params.noise,
                "samples": self.params.samples,
            },
            "x_plot": self.x_plot.tolist(),
            "true_values": self.true_values.tolist(),
            "predictions": np.clip(self.predictions, *PREDICTION_LIMITS).tolist(),
            "mean_prediction": np.clip(self.mean_prediction, *PREDICTION_LIMITS).tolist(),
            "errors": self.errors.to_dict(),
            "averages": self.errors.averages(),
            "train_mse": self.train_mse,
            "test_mse": self.test_mse,
            "sample_data": [
                {"x": float(x), "y": float(y)} for x, y in zip(self.sample_X, self.sample_y)
            ],
            "history": self.history,
        }


@dataclass
class TradeoffCurve:
    degrees: List[int]
    bias: List[float]
    variance: List[float]
    total: List[float]
    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "degrees": self.degrees,
            "bias": self.bias,
            "variance": self.variance,
            "total": self.total,
            "seed": self.seed,
            "points": [
                {"degree": d, "bias": b, "variance": v, "total": t}
                for d, b, v, t in zip(self.degrees, self.bias, self.variance, self.total)
            ],
        }


def train_polynomial_model(X, y, degree: int) -> np.ndarray:
    """Least-squares polynomial coefficients, lowest order first."""
    if degree < 0:
        raise ValueError("degree must be >= 0")
    vandermonde = np.polynomial.polynomial.polyvander(np.asarray(X, dtype=float), degree)
    coefficients, *_ = np.linalg.lstsq(vandermonde, np.asarray(y, dtype=float), rcond=None)
    return coefficients


def predict(coefficients, X) -> np.ndarray:
    return np.polynomial.polynomial.polyval(np.asarray(X, dtype=float), coefficients)


def calculate_errors(predictions, mean_prediction, x_plot, noise: float) -> ErrorDecomposition:
    """Decompose the expected squared error over the evaluation grid.

    Args:
        predictions: Array (n_models, n_grid) of model predictions.
        mean_prediction: Average prediction per grid point.
        x_plot: Evaluation grid.
        noise: Noise standard deviation; the noise component is its square.
    """
    predictions = np.asarray(predictions, dtype=float)
    mean_prediction = np.asarray(mean_prediction, dtype=float)
    truth = true_function(np.asarray(x_plot, dtype=float))

    bias = (mean_prediction - truth) ** 2
    variance = np.mean((predictions - mean_prediction) ** 2, axis=0)
    noise_component = np.full_like(bias, noise * noise)
    total = bias + variance + noise_component
    return ErrorDecomposition(bias=bias, variance=variance, noise=noise_component, total=total)


def calculate_mse(predictions, targets) -> float:
    predictions = np.asarray(predictions, dtype=float)
    targets = np.asarray(targets, dtype=float)
    if predictions.size == 0:
        return 0.0
    return float(np.mean((predictions - targets) ** 2))


def _fit_trials(
    degree: int,
    noise: float,
    samples: int,
    n_trials: int,
    x_plot: np.ndarray,
    rng: np.random.Generator,
) -> np.ndarray:
    predictions = np.empty((n_trials, x_plot.size))
    for trial in range(n_trials):
        X, y = generate_data(samples, noise, rng)
        predictions[trial] = predict(train_polynomial_model(X, y, degree), x_plot)
    return predictions


def generate_predictions(
    params: BiasVarianceParams,
    n_trials: int = DEFAULT_TRIALS,
    rng: RngLike = None,
) -> BiasVarianceResult:
    """Train ``n_trials`` models of one degree and decompose their error.

    Each trial also reports its training MSE and its MSE on a fresh test
    draw of the same size. ``history`` holds the running grid-averaged bias
    and variance after 2, 3, ... trials for the playback chart.
    """
    if n_trials < 1:
        raise ValueError("n_trials must be >= 1")
    rng = ensure_rng(rng)
    x_plot = generate_plot_x()

    predictions = np.empty((n_trials, x_plot.size))
    train_mse: List[float] = []
    test_mse: List[float] = []
    sample_X = sample_y = np.empty(0)

    for trial in range(n_trials):
        X, y = generate_data(params.samples, params.noise, rng)
        coefficients = train_polynomial_model(X, y, params.degree)
        predictions[trial] = predict(coefficients, x_plot)

        X_test, y_test = generate_data(params.samples, params.noise, rng)
        train_mse.append(calculate_mse(predict(coefficients, X), y))
        test_mse.append(calculate_mse(predict(coefficients, X_test), y_test))
        if trial == 0:
            sample_X, sample_y = X, y

    mean_prediction = predictions.mean(axis=0)
    errors = calculate_errors(predictions, mean_prediction, x_plot, params.noise)

    history = []
    for count in range(2, n_trials + 1):
        partial = predictions[:count]
        running = calculate_errors(partial, partial.mean(axis=0), x_plot, params.noise)
        history.append({
            "iteration": count,
            "bias": float(running.bias.mean()),
            "variance": float(running.variance.mean()),
        })

    logger.debug(
        "Bias-variance degree=%d noise=%.2f samples=%d: bias²=%.4f variance=%.4f",
        params.degree, params.noise, params.samples,
        float(errors.bias.mean()), float(errors.variance.mean()),
    )

    return BiasVarianceResult(
        params=params,
        x_plot=x_plot,
        true_values=true_function(x_plot),
        predictions=predictions,
        mean_prediction=mean_prediction,
        errors=errors,
        train_mse=train_mse,
        test_mse=test_mse,
        sample_X=sample_X,
        sample_y=sample_y,
        history=history,
    )


def calculate_tradeoff_curve(
    samples: int,
    noise: float,
    degrees: Sequence[int] = TRADEOFF_DEGREES,
    n_trials: int = TRADEOFF_TRIALS,
    seed: Optional[int] = None,
    progress_callback: Optional[Callable[[float, str], bool]] = None,
) -> TradeoffCurve:
    """Grid-averaged bias², variance and total error for each degree.

    The result depends only on the arguments: the same seed gives the same
    curve on any thread.

    Args:
        progress_callback: Called after every degree with a percentage and a
            message; returning False stops the sweep early.
    """
    rng = np.random.default_rng(seed)
    x_plot = generate_plot_x()
    degrees = [int(d) for d in degrees]

    curve = TradeoffCurve(degrees=[], bias=[], variance=[], total=[], seed=seed)
    for index, degree in enumerate(degrees):
        predictions = _fit_trials(degree, noise, samples, n_trials, x_plot, rng)
        averages = calculate_errors(predictions, predictions.mean(axis=0), x_plot, noise).averages()

        curve.degrees.append(degree)
        curve.bias.append(averages["bias"])
        curve.variance.append(averages["variance"])
        curve.total.append(averages["total"])

        if progress_callback is not None:
            keep_going = progress_callback(100.0 * (index + 1) / len(degrees), f"Degree {degree} done")
            if keep_going is False:
                logger.info("Tradeoff sweep stopped after degree %d", degree)
                break

    return curve
