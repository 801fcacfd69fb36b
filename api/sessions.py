"""
Session API routes for the neural network interpreter.

Every dataset, model and training run belongs to a session created here.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .app_config import app_config
from .session_manager import Session, SessionLimitError, session_manager

router = APIRouter()


# ============= Request/Response Models =============


class CreateSessionRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100, description="Display name")
    random_seed: Optional[int] = Field(
        None, description="Seed for weight initialization (defaults to the configured seed)"
    )


class SessionResponse(BaseModel):
    id: str
    name: str
    created_at: str
    filename: Optional[str] = None
    has_dataset: bool
    is_prepared: bool
    has_model: bool
    is_trained: bool
    training: Dict[str, Any]


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int


# ============= Helpers =============


def require_session(session_id: str) -> Session:
    """Look up a session or fail with 404."""
    session = session_manager.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def require_not_training(session: Session) -> None:
    if session.is_training:
        raise HTTPException(
            status_code=409,
            detail="Training is in progress for this session",
        )


# ============= Session Routes =============


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(request: Optional[CreateSessionRequest] = None):
    """Create a new, empty analysis session."""
    request = request or CreateSessionRequest()
    seed = request.random_seed
    if seed is None:
        seed = app_config.get_settings().random_seed

    try:
        session = session_manager.create_session(request.name, seed=seed)
    except SessionLimitError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return SessionResponse(**session.to_dict())


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions():
    sessions = session_manager.list_sessions()
    return SessionListResponse(
        sessions=[SessionResponse(**s.to_dict()) for s in sessions],
        total=len(sessions),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return SessionResponse(**require_session(session_id).to_dict())


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Delete a session and everything it holds."""
    try:
        deleted = session_manager.delete_session(session_id)
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"success": True, "session_id": session_id}
