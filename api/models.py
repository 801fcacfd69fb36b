"""
Model API routes for the neural network interpreter.

Serves the architecture recommendation for the session's dataset and builds
the network, either from the recommendation or from user-edited parameters.
"""

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .session_manager import Session
from .sessions import require_not_training, require_session
from .shared.architecture import LossKind, ModelSpec
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

ActivationName = Literal["relu", "sigmoid", "tanh", "linear"]
OptimizerName = Literal["adam", "sgd"]


# ============= Request/Response Models =============


class BuildModelRequest(BaseModel):
    """Model parameters; omitted values come from the recommendation."""

    hidden_layers: Optional[List[int]] = Field(
        None, min_length=1, max_length=5, description="Units per hidden layer"
    )
    output_units: Optional[int] = Field(None, ge=1, description="Units of the output layer")
    activation: Optional[ActivationName] = Field(None, description="Hidden layer activation")
    output_activation: Optional[ActivationName] = Field(None, description="Output layer activation")
    learning_rate: Optional[float] = Field(None, gt=0.0, le=1.0)
    optimizer: Optional[OptimizerName] = None
    loss: Optional[LossKind] = Field(None, description="Loss (default follows task and output width)")


class RecommendationResponse(BaseModel):
    session_id: str
    recommendation: Dict[str, Any]


class ModelResponse(BaseModel):
    session_id: str
    model: Dict[str, Any]
    is_trained: bool


# ============= Helpers =============


def _require_prepared(session: Session) -> None:
    if session.prepared is None or session.recommendation is None:
        raise HTTPException(status_code=409, detail="No prepared dataset; upload a CSV file first")


def _model_response(session: Session) -> ModelResponse:
    return ModelResponse(
        session_id=session.id,
        model=session.model.spec.to_dict(),
        is_trained=session.model.fitted,
    )


# ============= Model Routes =============


@router.get("/sessions/{session_id}/recommendation", response_model=RecommendationResponse)
async def get_recommendation(session_id: str):
    """Heuristic architecture for the session's prepared dataset."""
    session = require_session(session_id)
    _require_prepared(session)
    return RecommendationResponse(
        session_id=session.id,
        recommendation=session.recommendation.to_dict(),
    )


@router.post("/sessions/{session_id}/model", response_model=ModelResponse)
async def build_model(session_id: str, request: Optional[BuildModelRequest] = None):
    """
    Build an untrained network for the session's dataset.

    With an empty body the recommendation is used unchanged. The input width
    always follows the dataset's feature count.
    """
    session = require_session(session_id)
    require_not_training(session)
    _require_prepared(session)

    request = request or BuildModelRequest()
    if request.hidden_layers is not None and any(units < 1 for units in request.hidden_layers):
        raise HTTPException(status_code=422, detail="Hidden layer units must be positive")

    rec = session.recommendation
    hidden = request.hidden_layers if request.hidden_layers is not None else list(rec.hidden_widths)
    output_units = request.output_units or rec.output_width

    spec = ModelSpec.build(
        [*hidden, output_units],
        input_width=session.prepared.num_features,
        task_type=rec.task_type,
        activation=request.activation or rec.activation_function,
        output_activation=request.output_activation or rec.output_activation,
        learning_rate=request.learning_rate or rec.learning_rate,
        optimizer_kind=request.optimizer or rec.optimizer_kind,
        loss_kind=request.loss,
    )
    handle = session.backend.build(spec)
    session.set_model(handle)

    logger.info("Session %s: built model %s", session.id, [spec.input_width, *hidden, output_units])
    return _model_response(session)


@router.get("/sessions/{session_id}/model", response_model=ModelResponse)
async def get_model(session_id: str):
    """Layer summary of the session's model."""
    session = require_session(session_id)
    if session.model is None:
        raise HTTPException(status_code=404, detail="No model built")
    return _model_response(session)
