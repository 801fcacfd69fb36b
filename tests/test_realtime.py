"""
Tests for WebSocket channel management (realtime.manager).

Uses AsyncMock stand-ins for WebSocket connections.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from realtime.manager import (
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    job_channel,
    notify_training_epoch,
    ws_manager,
)


def fake_socket():
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


def sent_messages(ws):
    return [json.loads(call.args[0]) for call in ws.send_text.call_args_list]


class TestMessages:
    def test_round_trip(self):
        msg = WebSocketMessage(type=MessageType.PING, channel="system", data={"a": 1})
        parsed = WebSocketMessage.from_json(msg.to_json())
        assert parsed.type == MessageType.PING
        assert parsed.data == {"a": 1}
        assert parsed.timestamp == msg.timestamp

    def test_job_channel(self):
        assert job_channel("training_ab12") == "job:training_ab12"


class TestManager:
    def test_connect_sends_greeting(self):
        manager = WebSocketManager()
        ws = fake_socket()

        asyncio.run(manager.connect(ws, "client-1"))

        ws.accept.assert_awaited_once()
        assert sent_messages(ws)[0]["type"] == "connected"
        assert manager.get_connection_count() == 1

    def test_broadcast_reaches_subscribers_only(self):
        manager = WebSocketManager()
        subscribed, other = fake_socket(), fake_socket()

        async def scenario():
            await manager.connect(subscribed)
            await manager.connect(other)
            await manager.subscribe(subscribed, "job:1")
            return await manager.broadcast_to_channel(
                "job:1", WebSocketMessage(type=MessageType.JOB_PROGRESS, channel="job:1")
            )

        assert asyncio.run(scenario()) == 1
        assert sent_messages(subscribed)[-1]["type"] == "job_progress"
        assert all(m["type"] != "job_progress" for m in sent_messages(other))

    def test_disconnect_removes_subscriptions(self):
        manager = WebSocketManager()
        ws = fake_socket()

        async def scenario():
            await manager.connect(ws)
            await manager.subscribe(ws, "job:1")
            await manager.disconnect(ws)

        asyncio.run(scenario())
        assert manager.get_connection_count() == 0
        assert manager.get_channel_subscribers("job:1") == 0

    def test_failed_send_drops_connection(self):
        manager = WebSocketManager()
        ws = fake_socket()

        async def scenario():
            await manager.connect(ws)
            await manager.subscribe(ws, "job:1")
            ws.send_text.side_effect = RuntimeError("closed")
            return await manager.broadcast_to_channel(
                "job:1", WebSocketMessage(type=MessageType.JOB_FAILED, channel="job:1")
            )

        assert asyncio.run(scenario()) == 0
        assert manager.get_connection_count() == 0


class TestHandleMessage:
    @pytest.mark.parametrize("text,expected", [
        ('{"type": "ping"}', "pong"),
        ("not json", "error"),
        ('{"type": "subscribe", "data": {}}', "error"),
    ])
    def test_replies(self, text, expected):
        manager = WebSocketManager()
        reply = asyncio.run(manager.handle_message(fake_socket(), text))
        assert reply.type.value == expected

    def test_subscribe_and_unsubscribe(self):
        manager = WebSocketManager()
        ws = fake_socket()

        async def scenario():
            await manager.connect(ws)
            await manager.handle_message(ws, '{"type": "subscribe", "data": {"channel": "job:9"}}')
            subscribed = manager.get_channel_subscribers("job:9")
            await manager.handle_message(ws, '{"type": "unsubscribe", "data": {"channel": "job:9"}}')
            return subscribed

        assert asyncio.run(scenario()) == 1
        assert manager.get_channel_subscribers("job:9") == 0
        assert [m["type"] for m in sent_messages(ws)][-2:] == ["subscribed", "unsubscribed"]


class TestDispatch:
    def test_without_loop_closes_coroutine(self):
        manager = WebSocketManager()
        coro = notify_training_epoch("j", 1, 10, {"loss": 0.5})
        assert manager.dispatch(coro) is None
        assert coro.cr_frame is None

    def test_epoch_notification_payload(self):
        ws = fake_socket()

        async def scenario():
            await ws_manager.connect(ws)
            await ws_manager.subscribe(ws, job_channel("j1"))
            await notify_training_epoch("j1", 2, 4, {"loss": 0.5}, {"loss": 0.6})
            await ws_manager.disconnect(ws)

        asyncio.run(scenario())
        payload = sent_messages(ws)[-1]
        assert payload["type"] == "training_epoch"
        assert payload["data"]["progress"] == 50.0
        assert payload["data"]["val"] == {"loss": 0.6}
