"""
Neural network API routes for the Simulix backend.

Trains the small MLP on the synthetic classification dataset, either
synchronously or as a background job that publishes per-epoch metrics.
"""

from typing import Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .jobs import JobType, job_manager
from .shared.logger import get_logger
from .simulations.generators import generate_classification_dataset
from .simulations.neural_network import PARAM_LIMITS, MLPParams, train_with_validation

logger = get_logger(__name__)

router = APIRouter(prefix="/neural-network", tags=["neural-network"])


class TrainingRequest(BaseModel):
    """Request model for MLP training."""

    input_neurons: int = Field(4, ge=1, le=PARAM_LIMITS["max_input"], description="Number of input features")
    hidden_layers: int = Field(1, ge=0, le=PARAM_LIMITS["max_hidden_layers"])
    neurons_per_hidden: int = Field(6, ge=1, le=PARAM_LIMITS["max_neurons"])
    activation: Literal["relu", "sigmoid", "tanh"] = "relu"
    alpha: float = Field(0.001, ge=0.0, le=1.0, description="L2 penalty")
    learning_rate: float = Field(0.01, gt=0.0, le=1.0)
    num_samples: int = Field(200, ge=20, le=PARAM_LIMITS["max_samples"], description="Dataset size")
    label_noise: float = Field(0.05, ge=0.0, le=0.5, description="Fraction of flipped labels")
    max_epochs: int = Field(100, ge=1, le=500)
    patience: int = Field(10, ge=1, le=100, description="Early stopping patience (epochs)")
    min_delta: float = Field(0.001, ge=0.0, description="Minimum validation loss improvement")
    test_size: float = Field(0.2, gt=0.0, lt=1.0)
    random_seed: int = Field(42, ge=0)

    def to_params(self) -> MLPParams:
        return MLPParams(
            input_neurons=self.input_neurons,
            hidden_layers=self.hidden_layers,
            neurons_per_hidden=self.neurons_per_hidden,
            activation=self.activation,
            alpha=self.alpha,
            learning_rate=self.learning_rate,
        )


def _train(request: TrainingRequest, epoch_callback=None):
    X, y = generate_classification_dataset(
        request.num_samples,
        request.input_neurons,
        random_seed=request.random_seed,
        label_noise=request.label_noise,
    )
    return train_with_validation(
        X,
        y,
        request.to_params(),
        max_epochs=request.max_epochs,
        patience=request.patience,
        min_delta=request.min_delta,
        test_size=request.test_size,
        random_seed=request.random_seed,
        rng=request.random_seed,
        epoch_callback=epoch_callback,
    )


@router.post("/train")
def neural_network_train(request: TrainingRequest):
    """Train to completion (or early stop) and return the full history."""
    try:
        return _train(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/train/jobs")
def start_training_job(request: TrainingRequest):
    """Start training as a background job.

    Every epoch's metrics are merged into the job and pushed to websocket
    subscribers of ``job:{id}``; cancelling the job stops training after the
    current epoch.
    """
    try:
        request.to_params()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    def task(job, progress_callback):
        def on_epoch(metrics):
            job_manager.update_job_metrics(job.id, metrics.to_dict())
            return progress_callback(
                metrics.epoch / request.max_epochs * 100,
                f"Epoch {metrics.epoch}/{request.max_epochs}",
            )

        return _train(request, epoch_callback=on_epoch)

    job = job_manager.create_job(JobType.TRAINING, request.model_dump())
    try:
        job_manager.submit_job(job, task)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=f"Job pool unavailable: {e}")

    logger.info("Training job %s started (%d epochs max)", job.id, request.max_epochs)
    return {
        "success": True,
        "job_id": job.id,
        "message": "Training started",
        "websocket_url": f"/ws/job/{job.id}",
    }
