"""
Random forest API routes for the Simulix backend.

Trains the simplified forest on the synthetic breast-cancer data and
returns capped metrics, the ROC curve, feature importances and a summary of
one tree.
"""

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .simulations.random_forest import MAX_DEPTH, MAX_ESTIMATORS, RandomForestParams, train_random_forest_model

router = APIRouter(prefix="/random-forest", tags=["random-forest"])


class RandomForestRequest(BaseModel):
    """Request model for forest training."""

    n_estimators: int = Field(50, ge=1, le=MAX_ESTIMATORS, description="Number of trees")
    max_depth: int = Field(5, ge=1, le=MAX_DEPTH, description="Maximum tree depth")
    max_features: Literal["sqrt", "log2", "auto"] = Field("sqrt", description="Feature subset strategy")
    test_size: float = Field(0.3, gt=0.0, lt=1.0, description="Fraction of rows held out")
    random_state: int = Field(42, ge=0, description="Seed for the split and the trees")
    tree_index: int = Field(0, ge=0, description="Tree shown in the tree view")
    seed: Optional[int] = Field(None, ge=0, description="Override for the forest random source")


@router.post("/train")
def random_forest_train(request: RandomForestRequest):
    """Train the forest and evaluate it on the held-out rows."""
    try:
        params = RandomForestParams(
            n_estimators=request.n_estimators,
            max_depth=request.max_depth,
            max_features=request.max_features,
            test_size=request.test_size,
            random_state=request.random_state,
        )
        result = train_random_forest_model(params, tree_index=request.tree_index, rng=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result
