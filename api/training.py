"""
Training API routes for the neural network interpreter.

This module provides FastAPI routes for training management:
- Background job training with per-epoch progress tracking
- Job status, history and result endpoints
- WebSocket epoch events for real-time charts

One training run at a time per session; runs cannot be cancelled.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .jobs import Job, JobStatus, JobType, job_manager
from .session_manager import Session
from .sessions import require_session
from .shared.logger import get_logger
from .shared.trainer import train_model

logger = get_logger(__name__)

router = APIRouter()


# ============= Request/Response Models =============


class TrainingRequest(BaseModel):
    """Training settings; omitted values come from the recommendation."""

    epochs: Optional[int] = Field(None, ge=1, le=1000, description="Number of epochs")
    batch_size: Optional[int] = Field(None, ge=1, description="Mini-batch size")


class TrainingJobResponse(BaseModel):
    """Response model for training job status."""

    job_id: str
    session_id: Optional[str] = None
    status: str
    progress: float
    progress_message: str
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    config: Dict[str, Any]
    metrics: Dict[str, Any] = {}
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_traceback: Optional[str] = None


class TrainingHistoryResponse(BaseModel):
    job_id: str
    current_epoch: int
    total_epochs: int
    history: List[Dict[str, Any]] = []


class TrainingResultResponse(BaseModel):
    """Response model for completed training."""

    job_id: str
    status: str
    final_loss: float
    final_accuracy: Optional[float] = None
    epochs: int
    evaluation: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None
    reconciliation: Optional[str] = None
    message: Optional[str] = None
    duration_seconds: float


# ============= Helpers =============


def _job_response(job: Job) -> TrainingJobResponse:
    data = job.to_dict()
    return TrainingJobResponse(
        job_id=job.id,
        session_id=job.session_id,
        status=data["status"],
        progress=job.progress,
        progress_message=job.progress_message,
        created_at=data["created_at"],
        started_at=data["started_at"],
        completed_at=data["completed_at"],
        duration_seconds=data["duration_seconds"],
        config=job.config,
        metrics=job.metrics,
        error=job.error,
        error_kind=job.error_kind,
        error_traceback=job.error_traceback,
    )


def _require_job(job_id: str) -> Job:
    job = job_manager.get_job(job_id)
    if job is None or job.type != JobType.TRAINING:
        raise HTTPException(status_code=404, detail=f"Training job '{job_id}' not found")
    return job


# ============= Training Routes =============


@router.post("/sessions/{session_id}/training", response_model=TrainingJobResponse, status_code=202)
async def start_training(session_id: str, request: Optional[TrainingRequest] = None):
    """
    Start training the session's model.

    Creates a background job; progress is available from
    ``GET /training/{job_id}`` and the ``job:{job_id}`` WebSocket channel.
    """
    session = require_session(session_id)
    if session.prepared is None:
        raise HTTPException(status_code=409, detail="No prepared dataset; upload a CSV file first")
    if session.model is None:
        raise HTTPException(status_code=409, detail="No model built")
    if session.is_training:
        raise HTTPException(status_code=409, detail="Training is already in progress for this session")

    request = request or TrainingRequest()
    rec = session.recommendation
    epochs = request.epochs or rec.epoch_count
    batch_size = request.batch_size or rec.batch_size

    job = job_manager.create_job(
        JobType.TRAINING,
        {
            "epochs": epochs,
            "batch_size": batch_size,
            "model": session.model.spec.to_dict(),
            "dataset": session.filename,
        },
        session_id=session.id,
    )
    if not session.try_begin_training(job.id, epochs):
        raise HTTPException(status_code=409, detail="Training is already in progress for this session")

    job_manager.submit_job(
        job,
        lambda j, progress_cb: _run_training_task(j, progress_cb, session, epochs, batch_size),
    )
    logger.info("Session %s: started training job %s (%d epochs)", session.id, job.id, epochs)
    return _job_response(job)


@router.get("/training/{job_id}", response_model=TrainingJobResponse)
async def get_training_status(job_id: str):
    return _job_response(_require_job(job_id))


@router.get("/training/{job_id}/history", response_model=TrainingHistoryResponse)
async def get_training_history(job_id: str):
    """Per-epoch loss/accuracy recorded so far."""
    job = _require_job(job_id)
    return TrainingHistoryResponse(
        job_id=job.id,
        current_epoch=int(job.metrics.get("epoch", 0)),
        total_epochs=int(job.config.get("epochs", 0)),
        history=list(job.history),
    )


@router.get("/training/{job_id}/result", response_model=TrainingResultResponse)
async def get_training_result(job_id: str):
    """Final metrics of a completed training job."""
    job = _require_job(job_id)

    if job.status == JobStatus.FAILED:
        raise HTTPException(status_code=409, detail=f"Training failed: {job.error}")
    if job.status != JobStatus.COMPLETED or not job.result:
        raise HTTPException(status_code=409, detail=f"Training not completed (status: {job.status.value})")

    result = job.result
    return TrainingResultResponse(
        job_id=job.id,
        status=job.status.value,
        final_loss=result["final_loss"],
        final_accuracy=result.get("final_accuracy"),
        epochs=result["epochs"],
        evaluation=result.get("evaluation"),
        metrics=result.get("metrics"),
        reconciliation=result.get("reconciliation"),
        message=None if result.get("evaluation") else "No evaluation metrics available",
        duration_seconds=result["duration_seconds"],
    )


# ============= Background Task =============


def _run_training_task(
    job: Job,
    progress_callback,
    session: Session,
    epochs: int,
    batch_size: int,
) -> Dict[str, Any]:
    """
    Train the session's model in a worker thread.

    Every epoch updates the session status, the job metrics/history and the
    WebSocket channel. The session is always left "not training".
    """
    from realtime import notify_training_epoch, ws_manager

    def on_epoch_end(epoch: int, logs: Dict[str, float]) -> None:
        completed = epoch + 1
        entry = session.record_epoch(completed, logs)
        job_manager.record_metrics(job.id, entry)

        train_metrics = {k: v for k, v in logs.items() if not k.startswith("val_")}
        val_metrics = {k[4:]: v for k, v in logs.items() if k.startswith("val_")} or None
        ws_manager.dispatch(
            notify_training_epoch(job.id, completed, epochs, train_metrics, val_metrics)
        )
        progress_callback(
            completed / epochs * 100,
            f"Epoch {completed}/{epochs} - loss: {logs.get('loss', float('nan')):.4f}",
        )

    try:
        outcome = train_model(
            session.backend,
            session.model,
            session.prepared,
            epochs=epochs,
            batch_size=batch_size,
            on_epoch_end=on_epoch_end,
        )
    except Exception as e:
        session.finish_training(error=str(e))
        raise

    session.finish_training(outcome=outcome)
    return outcome.to_dict()
