"""
Prediction API routes for the neural network interpreter.

A single sample is encoded and normalized with the parameters computed when
the dataset was prepared, then passed through the trained network.
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .sessions import require_not_training, require_session
from .shared.pipeline import decode_prediction, prepare_input

router = APIRouter()


class PredictRequest(BaseModel):
    values: Union[Dict[str, Any], List[Any]] = Field(
        ..., description="Feature values by name, or a list in feature order"
    )


class PredictResponse(BaseModel):
    session_id: str
    task_type: str
    label: Optional[str] = None
    probability: Optional[float] = None
    probabilities: Optional[Dict[str, float]] = None
    value: Optional[float] = None
    scaled_value: Optional[float] = None
    raw_output: List[float]


@router.post("/sessions/{session_id}/predict", response_model=PredictResponse)
async def predict(session_id: str, request: PredictRequest):
    """Predict the target for one sample."""
    session = require_session(session_id)
    require_not_training(session)
    if session.prepared is None or session.model is None or not session.model.fitted:
        raise HTTPException(status_code=409, detail="No trained model; train a model first")

    prepared = session.prepared
    backend = session.backend
    vector = prepare_input(prepared, request.values)
    output = backend.predict(session.model, vector)
    probabilities = None
    if prepared.descriptor.is_classification and session.model.output_width == 1:
        probabilities = backend.class_probabilities(session.model, vector)

    decoded = decode_prediction(prepared, output, probabilities)
    return PredictResponse(
        session_id=session.id,
        task_type=prepared.descriptor.task_type.value,
        **decoded,
    )
