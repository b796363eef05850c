"""
Importance sampling API routes for the Simulix backend.
"""

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.importance_sampling import ImportanceSamplingParams, run_importance_sampling

router = APIRouter(prefix="/importance-sampling", tags=["importance-sampling"])


class ImportanceSamplingRequest(BaseModel):
    """Request model for the importance sampling page."""

    method: Literal["standard", "normalized"] = Field("standard", description="Estimator shown in the variance chart")
    proposal_t: float = Field(1.0, ge=-3.0, le=3.0, description="Mean of the proposal N(t, 1)")
    scale_h: float = Field(0.6, ge=0.1, le=1.5, description="Scale of the integrand h")
    h_kind: Literal["exp", "linear"] = Field("exp", description="h(x) = exp(scale*x) or scale*x")
    n_demo: int = Field(200, ge=10, le=2000, description="Samples drawn for the demo charts")
    n_trials_conv: int = Field(100, ge=1, le=500, description="Trials per convergence point")
    n_trials_var: int = Field(80, ge=1, le=500, description="Trials per proposal shift")
    max_samples: int = Field(5000, ge=1000, le=20000, description="Largest convergence sample size")
    seed: Optional[int] = Field(None, ge=0, description="Random seed for reproducibility")


@router.post("/run")
def importance_sampling_run(request: ImportanceSamplingRequest):
    """Distributions, weighted samples, convergence and variance sweep."""
    try:
        params = ImportanceSamplingParams(**request.model_dump(exclude={"seed"}))
        result = run_importance_sampling(params, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"params": request.model_dump(), **result}
