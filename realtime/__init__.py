"""
Real-time updates for the neural network interpreter.

Streams training progress and job status changes to the browser over
WebSocket connections.
"""

from .manager import (
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    job_channel,
    notify_job_completed,
    notify_job_failed,
    notify_job_progress,
    notify_job_started,
    notify_training_epoch,
    ws_manager,
)

__all__ = [
    "WebSocketManager",
    "WebSocketMessage",
    "MessageType",
    "ws_manager",
    "job_channel",
    "notify_job_started",
    "notify_job_progress",
    "notify_job_completed",
    "notify_job_failed",
    "notify_training_epoch",
]
