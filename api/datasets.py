"""
Dataset API routes for the neural network interpreter.

Upload a CSV file into a session, (re-)prepare it for a chosen target and
task, and inspect the result.
"""

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from .app_config import app_config
from .session_manager import Session
from .sessions import require_not_training, require_session
from .shared.errors import ParseError
from .shared.ingest import parse_csv
from .shared.logger import get_logger
from .shared.pipeline import prepare_dataset

logger = get_logger(__name__)

router = APIRouter()

TaskTypeName = Literal["classification", "regression"]
PolicyName = Literal["zero", "ordinal"]


# ============= Request/Response Models =============


class PrepareRequest(BaseModel):
    """Options for turning the uploaded table into a training dataset."""

    target_column: Optional[str] = Field(None, description="Target column (default: last column)")
    task_type: Optional[TaskTypeName] = Field(None, description="Force a task type instead of inferring it")
    test_fraction: Optional[float] = Field(None, ge=0.0, lt=1.0, description="Share of samples held out")
    categorical_policy: Optional[PolicyName] = Field(None, description="Treatment of non-numeric features")
    seed: Optional[int] = Field(None, description="Seed for the train/test split")


class DatasetResponse(BaseModel):
    session_id: str
    filename: Optional[str] = None
    columns: List[str]
    num_rows: int
    is_prepared: bool
    summary: Optional[Dict[str, Any]] = None
    recommendation: Optional[Dict[str, Any]] = None


class PreviewResponse(BaseModel):
    columns: List[str]
    rows: List[Dict[str, Any]]
    total_rows: int


# ============= Helpers =============


def _dataset_response(session: Session) -> DatasetResponse:
    table = session.table
    prepared = session.prepared
    return DatasetResponse(
        session_id=session.id,
        filename=session.filename,
        columns=list(table.columns),
        num_rows=table.num_rows,
        is_prepared=prepared is not None,
        summary=prepared.summary() if prepared else None,
        recommendation=session.recommendation.to_dict() if session.recommendation else None,
    )


def _prepare(session: Session, request: PrepareRequest) -> None:
    settings = app_config.get_settings()
    prepared = prepare_dataset(
        session.table,
        target_column=request.target_column,
        task_type=request.task_type,
        test_fraction=(
            request.test_fraction if request.test_fraction is not None else settings.test_fraction
        ),
        seed=request.seed if request.seed is not None else settings.random_seed,
        categorical_policy=request.categorical_policy or settings.categorical_policy,
        classification_threshold=settings.classification_threshold,
    )
    session.set_prepared(prepared)


def _decode_upload(raw_bytes: bytes) -> str:
    try:
        return raw_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"File is not valid UTF-8 text: {e}") from e


# ============= Dataset Routes =============


@router.post("/sessions/{session_id}/dataset", response_model=DatasetResponse)
async def upload_dataset(
    session_id: str,
    file: UploadFile = File(...),
    target_column: Optional[str] = Form(None),
    task_type: Optional[TaskTypeName] = Form(None),
    test_fraction: Optional[float] = Form(None, ge=0.0, lt=1.0),
    categorical_policy: Optional[PolicyName] = Form(None),
    seed: Optional[int] = Form(None),
):
    """
    Upload a CSV file and prepare it for training.

    The previous dataset, model and training results of the session are
    discarded. When preparation fails the parsed table is kept, so another
    target or task can be chosen through ``/dataset/prepare``.
    """
    session = require_session(session_id)
    require_not_training(session)

    max_bytes = app_config.get_settings().max_upload_bytes
    raw_bytes = await file.read(max_bytes + 1)
    if len(raw_bytes) > max_bytes:
        raise HTTPException(status_code=413, detail="Upload too large")

    table = parse_csv(_decode_upload(raw_bytes))
    session.set_table(table, file.filename)
    logger.info(
        "Session %s: uploaded '%s' (%d rows, %d columns)",
        session.id, file.filename, table.num_rows, len(table.columns),
    )

    _prepare(session, PrepareRequest(
        target_column=target_column,
        task_type=task_type,
        test_fraction=test_fraction,
        categorical_policy=categorical_policy,
        seed=seed,
    ))
    return _dataset_response(session)


@router.post("/sessions/{session_id}/dataset/prepare", response_model=DatasetResponse)
async def prepare_session_dataset(session_id: str, request: PrepareRequest):
    """Re-prepare the uploaded table, e.g. with another target column."""
    session = require_session(session_id)
    require_not_training(session)
    if session.table is None:
        raise HTTPException(status_code=409, detail="No dataset uploaded")

    _prepare(session, request)
    return _dataset_response(session)


@router.get("/sessions/{session_id}/dataset", response_model=DatasetResponse)
async def get_dataset(session_id: str):
    session = require_session(session_id)
    if session.table is None:
        raise HTTPException(status_code=404, detail="No dataset uploaded")
    return _dataset_response(session)


@router.get("/sessions/{session_id}/dataset/preview", response_model=PreviewResponse)
async def preview_dataset(session_id: str, rows: int = Query(10, ge=1, le=100)):
    """First rows of the uploaded table, as parsed."""
    session = require_session(session_id)
    if session.table is None:
        raise HTTPException(status_code=404, detail="No dataset uploaded")
    return PreviewResponse(
        columns=list(session.table.columns),
        rows=session.table.head(rows),
        total_rows=session.table.num_rows,
    )
