"""
Bootstrap API routes for the Simulix backend.

Resamples a normal dataset and returns the statistics distribution, the
percentile confidence interval and the convergence trace.
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .shared.logger import get_logger
from .simulations.bootstrap import BootstrapParams, run_bootstrap

logger = get_logger(__name__)

router = APIRouter(prefix="/bootstrap", tags=["bootstrap"])


class BootstrapRequest(BaseModel):
    """Request model for a bootstrap run."""

    sample_size: int = Field(50, ge=10, le=100, description="Size of each bootstrap resample")
    num_bootstrap_samples: int = Field(500, ge=10, le=5000, description="Number of resamples")
    confidence_level: float = Field(0.95, gt=0.5, lt=1.0, description="Confidence level of the interval")
    statistic: Literal["mean", "median"] = Field("mean", description="Statistic to bootstrap")
    data_size: int = Field(100, ge=2, le=1000, description="Size of the generated dataset")
    data: Optional[List[float]] = Field(None, min_length=2, description="Original data (generated when omitted)")
    seed: Optional[int] = Field(None, ge=0, description="Random seed for reproducibility")


@router.post("/run")
def bootstrap_run(request: BootstrapRequest):
    """Run a complete bootstrap analysis."""
    params = BootstrapParams(
        sample_size=request.sample_size,
        num_bootstrap_samples=request.num_bootstrap_samples,
        confidence_level=request.confidence_level,
        statistic=request.statistic,
        data_size=request.data_size,
    )
    try:
        result = run_bootstrap(params, data=request.data, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"params": request.model_dump(exclude={"data"}), **result.to_dict()}
