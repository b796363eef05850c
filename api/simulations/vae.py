"""
Toy low-rank VAE training approximator.

Nothing is actually trained. Loss, latent rank and reconstruction quality
follow fixed curves calibrated to look like a VAE run with a nuclear-norm
or log-det majorizer penalty on the latent codes; the reconstructions are
the synthetic digits blurred according to the current quality.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from ..shared.logger import get_logger
from .digits import IMAGE_SIZE, draw_digit
from .generators import RngLike, ensure_rng

logger = get_logger(__name__)

REGULARIZATIONS = ("nuc", "majorizer", "none")
SIMULATED_DIGITS = tuple(range(8))
MIN_QUALITY = 0.1
MIN_LOSS = 5.0


@dataclass(frozen=True)
class VAEParams:
    latent_dim: int = 50
    regularization: str = "nuc"
    lambda_nuc: float = 100.0
    lambda_majorizer: float = 0.09
    epochs: int = 10

    def __post_init__(self):
        if self.regularization not in REGULARIZATIONS:
            raise ValueError(f"Unknown regularization: {self.regularization!r}")
        if self.epochs < 1:
            raise ValueError("epochs must be >= 1")
        if self.latent_dim < 1:
            raise ValueError("latent_dim must be >= 1")

    @property
    def lambda_value(self) -> float:
        if self.regularization == "nuc":
            return self.lambda_nuc
        if self.regularization == "majorizer":
            return self.lambda_majorizer
        return 0.0


def reconstruction_quality(epoch: int, total_epochs: int, regularization: str, lambda_value: float) -> float:
    """Quality in [0.1, 0.9]: grows with progress, reduced by the penalty strength."""
    progress = epoch / total_epochs
    base = 0.1 + progress * 0.8
    if regularization == "nuc":
        penalty = min(0.4, lambda_value / 1000)
    elif regularization == "majorizer":
        penalty = min(0.3, lambda_value * 0.3)
    else:
        penalty = 0.0
    return max(MIN_QUALITY, base - penalty)


def blurred_reconstruction(image: np.ndarray, quality: float, rng: RngLike = None) -> np.ndarray:
    """Blend the interior pixels with their 3x3 mean, then add quality-scaled noise."""
    rng = ensure_rng(rng)
    image = np.asarray(image, dtype=float)
    result = image.copy()

    padded = np.pad(image, 1)
    neighbourhood = sum(
        padded[1 + di:1 + di + image.shape[0], 1 + dj:1 + dj + image.shape[1]]
        for di in (-1, 0, 1)
        for dj in (-1, 0, 1)
    ) / 9.0

    interior = (slice(1, -1), slice(1, -1))
    blended = image[interior] * quality + neighbourhood[interior] * (1 - quality)
    noise = (rng.random(blended.shape) - 0.5) * (1 - quality) * 0.1
    result[interior] = np.clip(blended + noise, 0.0, 1.0)
    return result


def epoch_loss(epoch: int, params: VAEParams, rng: RngLike = None) -> float:
    rng = ensure_rng(rng)
    reconstruction = 50 * np.exp(-epoch / 8)
    kl = 5 * np.exp(-epoch / 5)
    if params.regularization == "nuc":
        penalty = params.lambda_nuc * np.exp(-epoch / 10)
    elif params.regularization == "majorizer":
        penalty = params.lambda_majorizer * 10 * np.exp(-epoch / 10)
    else:
        penalty = 0.0
    return float(max(MIN_LOSS, reconstruction + kl + penalty + rng.random() * 2))


def epoch_rank(epoch: int, params: VAEParams, rng: RngLike = None) -> float:
    """Latent rank decaying from 0.8·latent_dim towards the penalty's target."""
    rng = ensure_rng(rng)
    initial = params.latent_dim * 0.8
    if params.regularization == "nuc":
        target = max(1.0, 10 - params.lambda_nuc / 50)
    elif params.regularization == "majorizer":
        target = max(2.0, 15 - params.lambda_majorizer * 20)
    else:
        target = initial
    progress = 1 - np.exp(-epoch / 10)
    return float(initial - (initial - target) * progress + (rng.random() - 0.5))


def nuclear_norm_penalty(latent_vectors, lam: float) -> float:
    """λ · RMS(latent) · 0.01, a cheap stand-in for the nuclear norm."""
    values = np.asarray(latent_vectors, dtype=float)
    if values.size == 0:
        return 0.0
    return float(lam * np.sqrt(np.mean(values ** 2)) * 0.01)


def log_det_majorizer(latent_vectors, lam: float, epsilon: float = 1e-6) -> float:
    values = np.abs(np.asarray(latent_vectors, dtype=float))
    if values.size == 0:
        return 0.0
    return float(lam * np.mean(np.log1p(values / (values + epsilon))))


def effective_rank(matrix) -> float:
    """exp of the entropy of the normalised singular values (0 for a zero matrix)."""
    matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
    if matrix.size == 0:
        return 0.0
    singular_values = np.linalg.svd(matrix, compute_uv=False)
    total = singular_values.sum()
    if total <= 0:
        return 0.0
    p = singular_values[singular_values > 0] / total
    return float(np.exp(-np.sum(p * np.log(p))))


def regularization_penalty(latent_vectors, params: VAEParams) -> float:
    if params.regularization == "nuc":
        return nuclear_norm_penalty(latent_vectors, params.lambda_nuc)
    if params.regularization == "majorizer":
        return log_det_majorizer(latent_vectors, params.lambda_majorizer)
    return 0.0


def simulate_training(params: VAEParams, rng: RngLike = None) -> Dict[str, Any]:
    """Run the whole toy training and return per-epoch curves and images."""
    rng = ensure_rng(rng)
    originals = [draw_digit(d, rng) for d in SIMULATED_DIGITS]
    latent_vectors = rng.uniform(-1.0, 1.0, size=(len(originals), params.latent_dim))

    epochs: List[Dict[str, float]] = []
    reconstructions: List[np.ndarray] = []
    for epoch in range(1, params.epochs + 1):
        quality = reconstruction_quality(epoch, params.epochs, params.regularization, params.lambda_value)
        reconstructions = [blurred_reconstruction(image, quality, rng) for image in originals]
        train_loss = epoch_loss(epoch, params, rng)
        epochs.append({
            "epoch": epoch,
            "train_loss": train_loss,
            "val_loss": train_loss + 2 + rng.random() * 3,
            "latent_rank": epoch_rank(epoch, params, rng),
            "quality": quality,
        })

    logger.debug(
        "VAE simulation: %d epochs, %s (lambda=%s), final quality %.2f",
        params.epochs, params.regularization, params.lambda_value, epochs[-1]["quality"],
    )

    return {
        "epochs": epochs,
        "digit_labels": list(SIMULATED_DIGITS),
        "original_digits": [image.tolist() for image in originals],
        "reconstructions": [image.tolist() for image in reconstructions],
        "latent_effective_rank": effective_rank(latent_vectors),
        "regularization_penalty": regularization_penalty(latent_vectors, params),
        "image_size": IMAGE_SIZE,
    }
