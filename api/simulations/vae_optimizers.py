"""
Illustrative optimizer traces for the low-rank VAE page.

Both traces run a one-dimensional surrogate of the VAE objective whose
shape is scaled by the latent dimension and the active regularisation
weight (``VAEParams.lambda_value``):

- ``simulate_mm`` follows majorize-minimize steps on a noisy Gaussian
  bump and records the log objective next to its surrogate.
- ``simulate_svrg`` runs stochastic variance-reduced gradient steps with
  periodic full-gradient snapshots and records the batch variance next
  to a plain SGD baseline.
"""

import math
from typing import Dict, List

import numpy as np

from ..shared.logger import get_logger
from .generators import RngLike, ensure_rng
from .vae import VAEParams

logger = get_logger(__name__)

EPS = 1e-8
MIN_SVRG_SAMPLES = 100


def simulate_mm(params: VAEParams, rng: RngLike = None) -> Dict[str, List[float]]:
    """One MM step per epoch, each followed by a little parameter noise."""
    rng = ensure_rng(rng)
    lam = params.lambda_value
    width = params.latent_dim * 0.1
    complexity = math.log(params.latent_dim + 1) * (1 + lam / 300)
    lipschitz = 10.0 * (1 + lam / 100)
    reg_scale = 1 + lam / 100
    latent_cap = math.sqrt(params.latent_dim / 10)
    eta_scale = (0.1 / (1 + lam / 100)) * math.sqrt(params.latent_dim / 50)
    grad_scale = 1 + lam / 200
    noise_scale = 0.1 * math.sqrt(params.latent_dim / 50) / (1 + lam / 200)

    def objective(x: float) -> float:
        return math.exp(-x * x / width) * (50 + rng.random() * 10) * complexity

    def gradient(x: float) -> float:
        return -2 * x * objective(x) / width * (1 + lam / 500)

    history: Dict[str, List[float]] = {
        "x": [], "f": [], "g": [], "grad_f_norm": [], "grad_g_norm": [],
        "learning_rates": [], "iterations": [], "lambda_values": [], "z_dim_values": [],
    }

    x = rng.random() * 2 - 1
    for iteration in range(1, params.epochs + 1):
        x0 = x
        f_x0 = objective(x0)
        f_x = objective(x)
        eta = (f_x0 / lipschitz) * eta_scale
        surrogate = math.log(f_x0 + EPS) + (f_x - f_x0) / (f_x0 + EPS) * reg_scale * latent_cap

        grad_f = gradient(x)
        grad_g = grad_f / (f_x0 + EPS)

        history["x"].append(x)
        history["f"].append(math.log(f_x + EPS))
        history["g"].append(surrogate)
        history["grad_f_norm"].append(abs(grad_f / (objective(x) + EPS)))
        history["grad_g_norm"].append(abs(grad_g * grad_scale))
        history["learning_rates"].append(eta)
        history["iterations"].append(iteration)
        history["lambda_values"].append(lam)
        history["z_dim_values"].append(params.latent_dim)

        x = x - eta * grad_g * grad_scale
        x += (rng.random() - 0.5) * noise_scale

    return history


def snapshot_interval(total_epochs: int, params: VAEParams) -> int:
    """Epochs between full-gradient snapshots.

    Strong regularisation halves the interval, a small latent space
    stretches it by half (capped at a third of the run).
    """
    interval = max(5, total_epochs // 10)
    if params.lambda_value > 300:
        interval = max(3, interval // 2)
    if params.latent_dim < 20:
        interval = min(total_epochs / 3, interval * 1.5)
    return max(1, int(interval))


def simulate_svrg(params: VAEParams, batch_size: int = 32, rng: RngLike = None) -> Dict[str, list]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    rng = ensure_rng(rng)
    lam = params.lambda_value
    n_samples = max(MIN_SVRG_SAMPLES, params.latent_dim * 10)
    param_scale = math.sqrt(params.latent_dim / 50) * (1 + lam / 400)
    correction_scale = 1 + lam / 200
    lr = 0.01 / (1 + lam / 100) * math.sqrt(params.latent_dim / 50)
    noise_scale = 0.05 * math.sqrt(params.latent_dim / 50) / (1 + lam / 300)
    interval = snapshot_interval(params.epochs, params)

    def sample_gradients(x: float, indices: np.ndarray) -> np.ndarray:
        noise = (rng.random(indices.size) - 0.5) * 0.1
        return -2 * x * param_scale + noise + np.sin(indices * 0.1) * 0.05

    all_indices = np.arange(n_samples)

    def full_gradient(x: float) -> float:
        return float(sample_gradients(x, all_indices).mean() * (1 + lam / 300))

    history: Dict[str, list] = {
        "variance": [], "sgd_variance": [], "snapshots": [], "corrections": [],
        "grad_norms": [], "iterations": [], "snapshot_epochs": [],
        "lambda_influence": [], "z_dim_capacity": [],
    }

    x = rng.random() * 2 - 1
    snapshot_x = x
    snapshot_grad = full_gradient(x)

    for epoch in range(1, params.epochs + 1):
        if epoch % interval == 0:
            snapshot_x = x
            snapshot_grad = full_gradient(x)
            history["snapshots"].append(len(history["iterations"]))
            history["snapshot_epochs"].append(epoch)

        batch = rng.integers(n_samples, size=batch_size)
        corrections = (sample_gradients(x, batch) - sample_gradients(snapshot_x, batch)) * correction_scale
        batch_grads = corrections + snapshot_grad
        mean_grad = float(batch_grads.mean())
        variance = float(batch_grads.var())

        history["variance"].append(variance)
        history["sgd_variance"].append(variance * (2 + lam / 100))
        history["corrections"].append(corrections.tolist())
        history["grad_norms"].append(abs(mean_grad))
        history["iterations"].append(epoch)
        history["lambda_influence"].append(lam)
        history["z_dim_capacity"].append(params.latent_dim)

        x -= lr * mean_grad
        x += (rng.random() - 0.5) * noise_scale

    logger.debug("SVRG trace: %d epochs, %d snapshots", params.epochs, len(history["snapshot_epochs"]))
    return history
