"""
Alias method API routes for the Simulix backend.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.alias import DEFAULT_PROBABILITIES, MAX_OUTCOMES, run_alias

router = APIRouter(prefix="/alias", tags=["alias"])


class AliasRequest(BaseModel):
    weights: List[float] = Field(list(DEFAULT_PROBABILITIES), min_length=1, max_length=MAX_OUTCOMES)
    sample_size: int = Field(1000, ge=0, le=1_000_000)
    seed: Optional[int] = Field(None, ge=0)


@router.post("/sample")
def alias_sample(request: AliasRequest):
    """Normalise the weights, build the tables and draw ``sample_size`` outcomes."""
    try:
        return run_alias(request.weights, request.sample_size, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
