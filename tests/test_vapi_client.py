"""
Tests for preppulse/voice_client.py

Call creation is served by httpx.MockTransport and the control channel by an
in-memory websocket.
"""

import asyncio
import json
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from preppulse.backend import ActionResult
from preppulse.call_controller import CallController, CallStatus
from preppulse.errors import VoiceAgentError
from preppulse.voice_client import VapiClient

# ============================================================
# Fixtures and Helpers
# ============================================================

BASE_URL = "https://api.vapi.test"
CALL = {"id": "call-1", "transport": {"websocketCallUrl": "wss://ws.vapi.test/call-1"}}
CONTROL_URL = "https://phone-call-websocket.vapi.test/call-1/control"
CALL_WITH_MONITOR = {**CALL, "monitor": {"controlUrl": CONTROL_URL}}


class FakeWebSocket:
    """Yields queued frames until closed."""

    def __init__(self, frames: Optional[List[Any]] = None, fail_with: Optional[Exception] = None):
        self.queue: asyncio.Queue = asyncio.Queue()
        for frame in frames or []:
            self.queue.put_nowait(frame)
        self.fail_with = fail_with
        self.sent: List[str] = []
        self.closed = False

    def feed(self, frame: Any) -> None:
        self.queue.put_nowait(frame)

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.queue.get()
        if frame is None:
            raise StopAsyncIteration
        if self.fail_with is not None:
            raise self.fail_with
        return frame


def create_client(ws: FakeWebSocket, status_code: int = 200, body: Optional[dict] = None, api_key="vapi-key"):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path != "/call":
            return httpx.Response(200, json={})
        return httpx.Response(status_code, json=CALL if body is None else body)

    connect = AsyncMock(return_value=ws)
    client = VapiClient(
        api_key,
        base_url=BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        connect=connect,
    )
    events: List[tuple] = []
    for name in ("call-start", "call-end", "message", "speech-start", "speech-end", "error"):
        client.on(name, lambda *args, name=name: events.append((name, *args)))
    return client, requests, connect, events


def frame(payload: dict) -> str:
    return json.dumps(payload)


# ============================================================
# start()
# ============================================================


class TestStart:
    @pytest.mark.asyncio
    async def test_creates_workflow_call_and_connects(self):
        ws = FakeWebSocket()
        client, requests, connect, events = create_client(ws)

        call = await client.start(
            workflow_id="workflow-1",
            workflow_overrides={"variableValues": {"username": "Ada", "userid": "u1"}},
        )

        assert call == CALL
        assert client.in_call
        assert client.call_id == "call-1"
        connect.assert_awaited_once_with("wss://ws.vapi.test/call-1")
        assert events == [("call-start",)]

        request = requests[0]
        assert str(request.url) == f"{BASE_URL}/call"
        assert request.headers["authorization"] == "Bearer vapi-key"
        body = json.loads(request.content)
        assert body["transport"]["provider"] == "vapi.websocket"
        assert body["workflowId"] == "workflow-1"
        assert body["workflowOverrides"] == {"variableValues": {"username": "Ada", "userid": "u1"}}
        assert "assistant" not in body

        await client.stop()

    @pytest.mark.asyncio
    async def test_creates_assistant_call(self):
        ws = FakeWebSocket()
        client, requests, _, _ = create_client(ws)

        await client.start(
            assistant={"name": "Interviewer"},
            assistant_overrides={"variableValues": {"questions": "- Why?"}},
        )

        body = json.loads(requests[0].content)
        assert body["assistant"] == {"name": "Interviewer"}
        assert body["assistantOverrides"] == {"variableValues": {"questions": "- Why?"}}
        assert "workflowId" not in body

        await client.stop()

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client, requests, _, _ = create_client(FakeWebSocket(), api_key=None)

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")
        assert requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs", [{}, {"assistant": {"name": "Interviewer"}, "workflow_id": "workflow-1"}]
    )
    async def test_requires_exactly_one_target(self, kwargs):
        client, requests, _, _ = create_client(FakeWebSocket())

        with pytest.raises(VoiceAgentError):
            await client.start(**kwargs)
        assert requests == []

    @pytest.mark.asyncio
    async def test_rejected_call_creation(self):
        client, _, connect, events = create_client(FakeWebSocket(), status_code=401, body={"message": "Invalid Key"})

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")
        connect.assert_not_awaited()
        assert events == []

    @pytest.mark.asyncio
    async def test_missing_websocket_url_ends_created_call(self):
        body = {"id": "call-1", "transport": {}, "monitor": {"controlUrl": CONTROL_URL}}
        client, requests, connect, _ = create_client(FakeWebSocket(), body=body)

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")
        connect.assert_not_awaited()
        assert str(requests[1].url) == CONTROL_URL
        assert json.loads(requests[1].content) == {"type": "end-call"}

    @pytest.mark.asyncio
    async def test_missing_websocket_url_without_control_url(self):
        client, requests, _, _ = create_client(FakeWebSocket(), body={"id": "call-1", "transport": {}})

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_connect_failure_ends_created_call(self):
        client, requests, connect, events = create_client(FakeWebSocket(), body=CALL_WITH_MONITOR)
        connect.side_effect = OSError("connection refused")

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")
        assert not client.in_call
        assert events == []
        assert [str(request.url) for request in requests] == [f"{BASE_URL}/call", CONTROL_URL]
        assert json.loads(requests[1].content) == {"type": "end-call"}

    @pytest.mark.asyncio
    async def test_second_start_while_in_call(self):
        client, _, _, _ = create_client(FakeWebSocket())
        await client.start(workflow_id="workflow-1")

        with pytest.raises(VoiceAgentError):
            await client.start(workflow_id="workflow-1")

        await client.stop()


# ============================================================
# Control channel
# ============================================================


class TestControlChannel:
    @pytest.mark.asyncio
    async def test_dispatches_messages_and_speech_updates(self):
        transcript = {"type": "transcript", "role": "user", "transcriptType": "final", "transcript": "Hi"}
        started = {"type": "speech-update", "status": "started", "role": "assistant"}
        stopped = {"type": "speech-update", "status": "stopped", "role": "assistant"}
        user_speech = {"type": "speech-update", "status": "started", "role": "user"}
        ws = FakeWebSocket()
        client, _, _, events = create_client(ws)
        await client.start(workflow_id="workflow-1")

        ws.feed(b"\x00\x01")
        ws.feed(frame(transcript))
        ws.feed("not json")
        ws.feed(frame(started))
        ws.feed(frame(stopped))
        ws.feed(frame(user_speech))
        await client.stop()

        assert events == [
            ("call-start",),
            ("message", transcript),
            ("speech-start",),
            ("message", started),
            ("speech-end",),
            ("message", stopped),
            ("message", user_speech),
            ("call-end",),
        ]

    @pytest.mark.asyncio
    async def test_stop_sends_end_call_and_closes(self):
        ws = FakeWebSocket()
        client, _, _, events = create_client(ws)
        await client.start(workflow_id="workflow-1")

        await client.stop()

        assert [json.loads(data) for data in ws.sent] == [{"type": "end-call"}]
        assert ws.closed
        assert not client.in_call
        assert events[-1] == ("call-end",)

    @pytest.mark.asyncio
    async def test_stop_without_call_is_noop(self):
        client, _, _, events = create_client(FakeWebSocket())

        await client.stop()

        assert events == []

    @pytest.mark.asyncio
    async def test_remote_hangup_emits_call_end_once(self):
        ws = FakeWebSocket()
        client, _, _, events = create_client(ws)
        await client.start(workflow_id="workflow-1")
        reader = client._reader

        await ws.close()
        await reader

        assert events == [("call-start",), ("call-end",)]
        assert not client.in_call

    @pytest.mark.asyncio
    async def test_read_failure_emits_error_then_call_end(self):
        failure = RuntimeError("stream corrupted")
        ws = FakeWebSocket(frames=["{}"], fail_with=failure)
        client, _, _, events = create_client(ws)
        await client.start(workflow_id="workflow-1")

        await client._reader

        assert events == [("call-start",), ("error", failure), ("call-end",)]


# ============================================================
# With the call controller
# ============================================================


class TestWithCallController:
    @pytest.mark.asyncio
    async def test_retry_during_call_frees_client_for_next_call(self):
        first, second = FakeWebSocket(), FakeWebSocket()
        client, _, connect, _ = create_client(first)
        connect.side_effect = [first, second]
        feedback = MagicMock()
        feedback.create_feedback = AsyncMock(return_value=ActionResult(success=True, feedback_id="f1"))
        navigator = MagicMock()
        controller = CallController(
            client, navigator, feedback, user_name="Ada", user_id="u1", mode="interview", interview_id="i1"
        )

        async with controller.session():
            await controller.start_call()
            assert controller.status == CallStatus.ACTIVE

            await controller.retry()

            assert controller.status == CallStatus.INACTIVE
            assert first.closed
            assert not client.in_call
            assert [json.loads(data) for data in first.sent] == [{"type": "end-call"}]
            navigator.push.assert_not_called()

            await controller.start_call()

            assert controller.status == CallStatus.ACTIVE
            assert controller.error == ""
            assert connect.await_count == 2

            await controller.disconnect()
            await controller.wait_for_feedback()

        feedback.create_feedback.assert_awaited_once()
        navigator.push.assert_called_once_with("/interview/i1/feedback")
