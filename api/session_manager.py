"""
In-memory analysis sessions.

A Session is the explicit context object for one user's work: the uploaded
table, the prepared dataset, the recommendation, the built model and the
training status. Sessions live only in process memory.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .app_config import app_config
from .shared.architecture import ArchitectureRecommendation
from .shared.ingest import RawTable
from .shared.logger import get_logger
from .shared.model_backend import ModelBackend, ModelHandle, SklearnMLPBackend
from .shared.pipeline import PreparedDataset
from .shared.trainer import TrainingOutcome

logger = get_logger(__name__)


class SessionLimitError(RuntimeError):
    """Raised when the maximum number of sessions is reached."""


@dataclass
class TrainingStatus:
    """Progress of the current or last training run of a session."""

    is_training: bool = False
    job_id: Optional[str] = None
    current_epoch: int = 0
    total_epochs: int = 0
    current_loss: Optional[float] = None
    current_accuracy: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_training": self.is_training,
            "job_id": self.job_id,
            "current_epoch": self.current_epoch,
            "total_epochs": self.total_epochs,
            "current_loss": self.current_loss,
            "current_accuracy": self.current_accuracy,
            "error": self.error,
        }


@dataclass
class Session:
    """State of one analysis session."""

    id: str
    name: str
    created_at: datetime
    backend: ModelBackend = field(repr=False)
    filename: Optional[str] = None
    table: Optional[RawTable] = field(default=None, repr=False)
    prepared: Optional[PreparedDataset] = field(default=None, repr=False)
    recommendation: Optional[ArchitectureRecommendation] = None
    model: Optional[ModelHandle] = field(default=None, repr=False)
    outcome: Optional[TrainingOutcome] = field(default=None, repr=False)
    training: TrainingStatus = field(default_factory=TrainingStatus)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    # ----- dataset / model lifecycle -----

    def set_table(self, table: RawTable, filename: Optional[str]) -> None:
        """Replace the uploaded table; drops everything derived from the old one."""
        with self._lock:
            self.table = table
            self.filename = filename
            self.prepared = None
            self.recommendation = None
            self.model = None
            self.outcome = None
            self.training = TrainingStatus()

    def set_prepared(self, prepared: PreparedDataset) -> None:
        """Replace the prepared dataset; the built model no longer matches it."""
        with self._lock:
            self.prepared = prepared
            self.recommendation = prepared.recommend()
            self.model = None
            self.outcome = None
            self.training = TrainingStatus()

    def set_model(self, handle: ModelHandle) -> None:
        with self._lock:
            self.model = handle
            self.outcome = None
            self.training = TrainingStatus()

    # ----- training status -----

    @property
    def is_training(self) -> bool:
        return self.training.is_training

    def try_begin_training(self, job_id: str, total_epochs: int) -> bool:
        """Mark the session as training; False if a run is already in flight."""
        with self._lock:
            if self.training.is_training:
                return False
            self.training = TrainingStatus(
                is_training=True,
                job_id=job_id,
                total_epochs=total_epochs,
            )
            self.outcome = None
            return True

    def record_epoch(self, epoch: int, logs: Dict[str, float]) -> Dict[str, Any]:
        """Store progress for a completed epoch (1-based) and return the history entry."""
        entry = {"epoch": epoch, **logs}
        with self._lock:
            self.training.current_epoch = epoch
            self.training.current_loss = logs.get("loss")
            self.training.current_accuracy = logs.get("accuracy")
        return entry

    def finish_training(
        self,
        outcome: Optional[TrainingOutcome] = None,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            self.training.is_training = False
            self.training.error = error
            if outcome is not None:
                self.outcome = outcome

    # ----- serialization -----

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "filename": self.filename,
            "has_dataset": self.table is not None,
            "is_prepared": self.prepared is not None,
            "has_model": self.model is not None,
            "is_trained": self.model is not None and self.model.fitted,
            "training": self.training.to_dict(),
        }


class SessionManager:
    """Creates, looks up and removes sessions."""

    def __init__(self, max_sessions: int = 32, backend_factory=None):
        """Initialize the session manager.

        Args:
            max_sessions: Maximum number of live sessions
            backend_factory: Callable returning a new ModelBackend per session
        """
        self.max_sessions = max_sessions
        self._backend_factory = backend_factory
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _new_backend(self, seed: Optional[int]) -> ModelBackend:
        if self._backend_factory is not None:
            return self._backend_factory(seed)
        return SklearnMLPBackend(random_state=seed)

    def create_session(self, name: Optional[str] = None, seed: Optional[int] = None) -> Session:
        """Create a new session.

        Raises:
            SessionLimitError: ``max_sessions`` sessions already exist
        """
        session_id = uuid.uuid4().hex[:12]
        session = Session(
            id=session_id,
            name=name or f"session-{session_id[:6]}",
            created_at=datetime.now(),
            backend=self._new_backend(seed),
        )
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                raise SessionLimitError(
                    f"Session limit reached ({self.max_sessions}); delete a session first"
                )
            self._sessions[session_id] = session

        logger.info("Created session %s", session_id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> List[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def delete_session(self, session_id: str) -> bool:
        """Remove a session; a session that is training cannot be removed.

        Returns:
            True if removed, False if not found

        Raises:
            RuntimeError: The session is training
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if session.is_training:
                raise RuntimeError(f"Session {session_id} is training and cannot be deleted")
            del self._sessions[session_id]

        logger.info("Deleted session %s", session_id)
        return True

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


# Global session manager instance
session_manager = SessionManager(max_sessions=app_config.get_settings().max_sessions)
