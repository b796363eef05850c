"""
Bias-variance API routes for the Simulix backend.

- /bias-variance/predictions: decomposition for a single polynomial degree
- /bias-variance/tradeoff: the degree sweep, served by the configured
  calculator (inline or on the job pool)
- /bias-variance/tradeoff/jobs: the sweep as a tracked background job
- /bias-variance/worker: the worker message protocol over HTTP
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from .jobs import JobType, job_manager
from .settings import get_settings
from .shared.logger import get_logger
from .simulations.bias_variance import (
    DEFAULT_TRIALS,
    TRADEOFF_DEGREES,
    TRADEOFF_TRIALS,
    BiasVarianceParams,
    generate_predictions,
)
from .simulations.tradeoff import (
    TradeoffCalculator,
    TradeoffParams,
    compute_tradeoff,
    handle_worker_message,
    select_calculator,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/bias-variance", tags=["bias-variance"])


@lru_cache()
def get_tradeoff_calculator() -> TradeoffCalculator:
    """Process-wide tradeoff calculator, chosen from the settings."""
    calculator = select_calculator(get_settings())
    logger.info("Tradeoff calculator: %s", calculator.name)
    return calculator


# ============= Pydantic Models =============


class PredictionsRequest(BaseModel):
    """Request model for a single-degree decomposition."""

    degree: int = Field(3, ge=1, le=15, description="Polynomial degree")
    noise: float = Field(0.3, ge=0.0, le=2.0, description="Standard deviation of the observation noise")
    samples: int = Field(75, ge=10, le=500, description="Training points per trial")
    n_trials: int = Field(DEFAULT_TRIALS, ge=1, le=200, description="Number of models trained")
    seed: Optional[int] = Field(None, ge=0, description="Random seed for reproducibility")


class TradeoffRequest(BaseModel):
    """Request model for the degree sweep."""

    samples: int = Field(75, ge=10, le=500)
    noise: float = Field(0.3, ge=0.0, le=2.0)
    n_trials: int = Field(TRADEOFF_TRIALS, ge=1, le=200)
    degrees: List[int] = Field(default_factory=lambda: list(TRADEOFF_DEGREES), min_length=1)
    seed: Optional[int] = Field(None, ge=0)

    def to_params(self) -> TradeoffParams:
        try:
            return TradeoffParams.from_mapping(self.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))


class WorkerMessage(BaseModel):
    """Worker protocol message: ``{"type": "CALCULATE_TRADEOFF", "params": {...}}``."""

    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


# ============= Routes =============


@router.post("/predictions")
def bias_variance_predictions(request: PredictionsRequest):
    """Train ``n_trials`` polynomial models and decompose their error."""
    params = BiasVarianceParams(degree=request.degree, noise=request.noise, samples=request.samples)
    try:
        result = generate_predictions(params, n_trials=request.n_trials, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.post("/tradeoff")
async def bias_variance_tradeoff(
    request: TradeoffRequest,
    calculator: TradeoffCalculator = Depends(get_tradeoff_calculator),
):
    """Bias², variance and total error across polynomial degrees."""
    params = request.to_params()
    try:
        curve = await calculator.calculate(params)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"calculator": calculator.name, **curve.to_dict()}


@router.post("/tradeoff/jobs")
def start_tradeoff_job(request: TradeoffRequest):
    """Start the sweep as a background job.

    Progress is pushed on the ``job:{id}`` websocket channel; the curve is
    available from ``GET /api/jobs/{id}`` once the job completes.
    """
    params = request.to_params().with_seed()

    def task(job, progress_callback):
        return compute_tradeoff(params, progress_callback).to_dict()

    job = job_manager.create_job(JobType.TRADEOFF, params.to_dict())
    try:
        job_manager.submit_job(job, task)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=f"Job pool unavailable: {e}")

    return {
        "success": True,
        "job_id": job.id,
        "message": "Tradeoff sweep started",
        "websocket_url": f"/ws/job/{job.id}",
    }


@router.post("/worker")
async def bias_variance_worker(
    message: WorkerMessage,
    calculator: TradeoffCalculator = Depends(get_tradeoff_calculator),
):
    """Answer one worker-protocol message (errors are replies, not HTTP errors)."""
    return await handle_worker_message(message.model_dump(), calculator)
