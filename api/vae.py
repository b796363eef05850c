"""
Low-rank VAE toy API routes for the Simulix backend.

- /vae/simulate: simulated training curves and reconstructions
- /vae/digits: synthetic digit batches
- /vae/optimizers/mm, /vae/optimizers/svrg: optimizer traces
"""

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from .simulations.digits import IMAGE_SIZE, generate_synthetic_mnist
from .simulations.vae import VAEParams, simulate_training
from .simulations.vae_optimizers import simulate_mm, simulate_svrg

router = APIRouter(prefix="/vae", tags=["vae"])


class VAERequest(BaseModel):
    """Request model for the simulated VAE training run."""

    latent_dim: int = Field(50, ge=2, le=200, description="Latent dimension")
    regularization: Literal["nuc", "majorizer", "none"] = Field("nuc", description="Latent rank penalty")
    lambda_nuc: float = Field(100.0, ge=0.0, le=1000.0, description="Nuclear norm weight")
    lambda_majorizer: float = Field(0.09, ge=0.0, le=1.0, description="Log-det majorizer weight")
    epochs: int = Field(10, ge=1, le=100)
    seed: Optional[int] = Field(None, ge=0)


@router.post("/simulate")
def vae_simulate(request: VAERequest):
    """Per-epoch loss, latent rank and quality plus blurred reconstructions."""
    try:
        params = VAEParams(**request.model_dump(exclude={"seed"}))
        result = simulate_training(params, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"params": request.model_dump(), **result}


@router.get("/digits")
def vae_digits(
    batch_size: int = Query(8, ge=1, le=64),
    seed: Optional[int] = Query(None, ge=0),
):
    """A batch of synthetic 28x28 digits (labels cycle through 0..9)."""
    images, labels = generate_synthetic_mnist(batch_size, rng=seed)
    return {
        "images": images.tolist(),
        "labels": labels.tolist(),
        "image_size": IMAGE_SIZE,
    }


class OptimizerRequest(VAERequest):
    batch_size: int = Field(32, ge=1, le=512, description="SVRG minibatch size")


def _optimizer_params(request: OptimizerRequest) -> VAEParams:
    try:
        return VAEParams(**request.model_dump(exclude={"seed", "batch_size"}))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/optimizers/mm")
def vae_mm_trace(request: OptimizerRequest):
    """Majorize-minimize trace: log objective, surrogate and step sizes per epoch."""
    return simulate_mm(_optimizer_params(request), rng=request.seed)


@router.post("/optimizers/svrg")
def vae_svrg_trace(request: OptimizerRequest):
    """SVRG trace: batch variance against an SGD baseline, with snapshot epochs."""
    return simulate_svrg(_optimizer_params(request), batch_size=request.batch_size, rng=request.seed)
