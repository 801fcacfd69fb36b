"""
Training progress streaming over WebSocket.

Every training job publishes on its own ``job:{job_id}`` channel. Browsers
subscribe to the channels of the jobs they display and receive:

- job lifecycle events (started, progress, completed, failed)
- one ``training_epoch`` event per finished epoch, with train and
  validation metrics

Jobs run on worker threads; ``WebSocketManager.dispatch`` hands their coroutines
to the server event loop.
"""

import asyncio
import json
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Coroutine, Dict, Optional, Set

from fastapi import WebSocket

from api.shared.logger import get_logger

logger = get_logger(__name__)

SYSTEM_CHANNEL = "system"


class MessageType(str, Enum):
    """Types of WebSocket messages."""

    # Job lifecycle
    JOB_STARTED = "job_started"
    JOB_PROGRESS = "job_progress"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"

    # Per-epoch training metrics
    TRAINING_EPOCH = "training_epoch"

    # Client <-> server control
    PING = "ping"
    PONG = "pong"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


def job_channel(job_id: str) -> str:
    """Channel carrying the events of one job."""
    return f"job:{job_id}"


@dataclass
class WebSocketMessage:
    """One JSON frame: ``{"type", "channel", "data", "timestamp"}``."""

    type: MessageType
    channel: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        """Parse a client frame.

        Raises:
            ValueError: Invalid JSON, a non-object payload or an unknown type
        """
        payload = json.loads(json_str)
        if not isinstance(payload, dict):
            raise ValueError("message must be a JSON object")
        data = payload.get("data") or {}
        return cls(
            type=MessageType(payload.get("type", MessageType.ERROR.value)),
            channel=payload.get("channel") or "",
            data=data if isinstance(data, dict) else {},
            timestamp=payload.get("timestamp"),
        )


def _system_message(message_type: MessageType, **data: Any) -> WebSocketMessage:
    return WebSocketMessage(type=message_type, channel=SYSTEM_CHANNEL, data=data)


@dataclass
class ClientConnection:
    """Bookkeeping for one accepted WebSocket."""

    client_id: Optional[str]
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())
    channels: Set[str] = field(default_factory=set)


class WebSocketManager:
    """
    Tracks browser connections and their channel subscriptions.

    All bookkeeping happens on the server event loop. Worker threads never
    touch sockets directly; they go through ``dispatch``.
    """

    def __init__(self):
        self._clients: Dict[WebSocket, ClientConnection] = {}
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ============= Event loop bridge =============

    def attach_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Register the server event loop (None detaches it)."""
        self._loop = loop

    def dispatch(self, coro: Coroutine[Any, Any, Any]) -> Optional[Future]:
        """Schedule a coroutine on the server loop from any thread.

        Returns:
            The concurrent future, or None when no loop is attached (the
            coroutine is closed without running)
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            return None
        return asyncio.run_coroutine_threadsafe(coro, loop)

    # ============= Connections =============

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        """Accept a connection and greet it on the system channel."""
        await websocket.accept()
        async with self._lock:
            self._clients[websocket] = ClientConnection(client_id=client_id)

        await self.send_to_connection(
            websocket,
            _system_message(
                MessageType.CONNECTED,
                client_id=client_id,
                message="Connected to neural network interpreter",
            ),
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget a connection and all of its subscriptions."""
        async with self._lock:
            client = self._clients.pop(websocket, None)
            for channel in client.channels if client else ():
                self._drop_subscriber(channel, websocket)

    def _drop_subscriber(self, channel: str, websocket: WebSocket) -> None:
        subscribers = self._channels.get(channel)
        if subscribers is None:
            return
        subscribers.discard(websocket)
        if not subscribers:
            del self._channels[channel]

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)
            client = self._clients.get(websocket)
            if client is not None:
                client.channels.add(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.SUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._drop_subscriber(channel, websocket)
            client = self._clients.get(websocket)
            if client is not None:
                client.channels.discard(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.UNSUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    # ============= Sending =============

    async def send_to_connection(self, websocket: WebSocket, message: WebSocketMessage) -> bool:
        """Send one message; a failed send drops the connection.

        Returns:
            True if the message was sent
        """
        try:
            await websocket.send_text(message.to_json())
            return True
        except Exception as e:
            logger.warning("Dropping WebSocket after failed send: %s", e)
            await self.disconnect(websocket)
            return False

    async def broadcast_to_channel(self, channel: str, message: WebSocketMessage) -> int:
        """Send a message to every subscriber of a channel.

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            subscribers = list(self._channels.get(channel, ()))

        delivered = 0
        for websocket in subscribers:
            if await self.send_to_connection(websocket, message):
                delivered += 1
        return delivered

    async def publish(self, channel: str, message_type: MessageType, data: Dict[str, Any]) -> int:
        return await self.broadcast_to_channel(
            channel, WebSocketMessage(type=message_type, channel=channel, data=data)
        )

    def get_channel_subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def get_connection_count(self) -> int:
        return len(self._clients)

    # ============= Client messages =============

    async def handle_message(
        self,
        websocket: WebSocket,
        message_text: str,
    ) -> Optional[WebSocketMessage]:
        """
        Act on a client frame.

        ``ping`` is answered with ``pong``. ``subscribe``/``unsubscribe``
        take the channel from ``data.channel`` (or the frame's ``channel``)
        and are acknowledged by ``subscribe``/``unsubscribe`` themselves.

        Returns:
            A reply to send back, or None
        """
        try:
            message = WebSocketMessage.from_json(message_text)
        except ValueError as e:
            return _system_message(MessageType.ERROR, error=f"Invalid message format: {e}")

        if message.type == MessageType.PING:
            return _system_message(MessageType.PONG, timestamp=datetime.now().isoformat())

        if message.type not in (MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE):
            return None

        channel = message.data.get("channel") or message.channel
        if not channel:
            return _system_message(
                MessageType.ERROR, error="Missing 'channel' in subscription request"
            )
        if message.type == MessageType.SUBSCRIBE:
            await self.subscribe(websocket, channel)
        else:
            await self.unsubscribe(websocket, channel)
        return None


# Global WebSocket manager instance
ws_manager = WebSocketManager()


# ============= Job notifications =============


async def notify_job_started(job_id: str, job_data: Dict[str, Any]) -> None:
    await ws_manager.publish(job_channel(job_id), MessageType.JOB_STARTED, job_data)


async def notify_job_progress(
    job_id: str,
    progress: float,
    message: str = "",
    metrics: Optional[Dict[str, Any]] = None,
) -> None:
    """Progress is a percentage in [0, 100]."""
    await ws_manager.publish(
        job_channel(job_id),
        MessageType.JOB_PROGRESS,
        {"job_id": job_id, "progress": progress, "message": message, "metrics": metrics or {}},
    )


async def notify_job_completed(job_id: str, result: Dict[str, Any]) -> None:
    await ws_manager.publish(
        job_channel(job_id),
        MessageType.JOB_COMPLETED,
        {"job_id": job_id, "result": result},
    )


async def notify_job_failed(
    job_id: str,
    error: str,
    error_kind: Optional[str] = None,
    traceback: Optional[str] = None,
) -> None:
    await ws_manager.publish(
        job_channel(job_id),
        MessageType.JOB_FAILED,
        {"job_id": job_id, "error": error, "error_kind": error_kind, "traceback": traceback},
    )


async def notify_training_epoch(
    job_id: str,
    epoch: int,
    total_epochs: int,
    train_metrics: Dict[str, float],
    val_metrics: Optional[Dict[str, float]] = None,
) -> None:
    """
    Publish the metrics of a finished epoch.

    Args:
        job_id: Training job
        epoch: Finished epoch (1-based)
        total_epochs: Epochs requested for the run
        train_metrics: ``loss`` and, for classification, ``accuracy``
        val_metrics: Same keys on the held-out split, when there is one
    """
    await ws_manager.publish(
        job_channel(job_id),
        MessageType.TRAINING_EPOCH,
        {
            "job_id": job_id,
            "epoch": epoch,
            "total_epochs": total_epochs,
            "progress": (epoch / total_epochs) * 100 if total_epochs else 0.0,
            "train": train_metrics,
            "val": val_metrics,
        },
    )
