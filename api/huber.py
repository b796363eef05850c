"""
Huber mean (IRLS) API routes for the Simulix backend.
"""

from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.huber import DEFAULT_DATA, HuberParams, irls_iteration, run_irls

router = APIRouter(prefix="/huber", tags=["huber"])


class HuberRequest(BaseModel):
    data: List[float] = Field(list(DEFAULT_DATA), min_length=1, max_length=1000)
    initial_estimate: float = 20.0
    k: float = Field(5.0, gt=0.0, le=1000.0, description="Huber tuning constant")
    max_iterations: int = Field(10, ge=1, le=1000)
    convergence_threshold: float = Field(1e-3, gt=0.0)


class IterationRequest(BaseModel):
    data: List[float] = Field(..., min_length=1, max_length=1000)
    estimate: float
    k: float = Field(5.0, gt=0.0, le=1000.0)


@router.post("/irls")
def huber_irls(request: HuberRequest):
    """Iterate to convergence and return the path of estimates."""
    try:
        params = HuberParams(**request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return run_irls(params).to_dict()


@router.post("/iteration")
def huber_iteration(request: IterationRequest):
    """A single reweighting step, for stepping through the algorithm by hand."""
    step = irls_iteration(request.data, request.estimate, request.k)
    return {
        "estimate": step.estimate,
        "weights": step.weights.tolist(),
        "residuals": step.residuals.tolist(),
        "weighted_sum": step.weighted_sum,
        "weight_sum": step.weight_sum,
    }
