"""
API package for the neural network interpreter FastAPI backend.

This package provides the REST API endpoints for:
- Session lifecycle (sessions.py)
- Dataset upload and preparation (datasets.py)
- Architecture recommendation and model building (models.py)
- Training execution (training.py)
- Prediction (predictions.py)
- System health, error log and settings (system.py)
- Background job management (jobs/)

The dataset and training pipeline itself lives in ``api.shared``.
"""

from .jobs import Job, JobStatus, JobType, job_manager
from .session_manager import Session, session_manager

__all__ = [
    "session_manager",
    "Session",
    "job_manager",
    "Job",
    "JobStatus",
    "JobType",
]
