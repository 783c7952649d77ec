"""
Voice agent clients.

``VoiceAgentClient`` is the surface the call controller depends on. ``VapiClient``
implements it against the hosted Vapi API: the call is created over REST with the
websocket transport, and the returned websocket is read as the control channel.
Audio frames on that channel are skipped; transport of audio is left to the
hosted service.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Protocol

import httpx
from loguru import logger
import websockets

from preppulse.config import DEFAULT_VAPI_BASE_URL
from preppulse.emitter import EventEmitter, Listener
from preppulse.errors import VoiceAgentError
from preppulse.events import SpeechUpdateMessage, VoiceEvent, parse_message

# Raw PCM over the websocket transport
DEFAULT_AUDIO_FORMAT = {"format": "pcm_s16le", "container": "raw", "sampleRate": 16000}


class VoiceAgentClient(Protocol):
    """Operations the call controller needs from a voice agent SDK."""

    async def start(
        self,
        assistant: Optional[Dict[str, Any]] = None,
        assistant_overrides: Optional[Dict[str, Any]] = None,
        workflow_id: Optional[str] = None,
        workflow_overrides: Optional[Dict[str, Any]] = None,
    ) -> Any: ...

    async def stop(self) -> None: ...

    def on(self, event: str, listener: Listener) -> None: ...

    def off(self, event: str, listener: Listener) -> None: ...


class VapiClient(EventEmitter):
    """
    Vapi client emitting ``call-start``, ``call-end``, ``message``,
    ``speech-start``, ``speech-end`` and ``error``.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_VAPI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        connect: Callable[..., Any] = websockets.connect,
        audio_format: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            api_key: Vapi private API key.
            base_url: Vapi REST base URL.
            http_client: Optional shared httpx client. One is created when omitted.
            connect: Websocket connect function, replaceable for tests.
            audio_format: Audio format requested for the websocket transport.
        """
        super().__init__()
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._owns_http = http_client is None
        self._connect = connect
        self._audio_format = audio_format or DEFAULT_AUDIO_FORMAT
        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self.call_id: Optional[str] = None

    @property
    def in_call(self) -> bool:
        return self._ws is not None

    async def start(
        self,
        assistant: Optional[Dict[str, Any]] = None,
        assistant_overrides: Optional[Dict[str, Any]] = None,
        workflow_id: Optional[str] = None,
        workflow_overrides: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a call and open its control channel. Returns the created call."""
        if not self._api_key:
            raise VoiceAgentError("Missing Vapi API key")
        if self.in_call:
            raise VoiceAgentError("A call is already in progress")
        if (assistant is None) == (workflow_id is None):
            raise VoiceAgentError("Provide exactly one of assistant or workflow_id")

        body: Dict[str, Any] = {
            "transport": {"provider": "vapi.websocket", "audioFormat": self._audio_format},
        }
        if assistant is not None:
            body["assistant"] = assistant
            if assistant_overrides:
                body["assistantOverrides"] = assistant_overrides
        else:
            body["workflowId"] = workflow_id
            if workflow_overrides:
                body["workflowOverrides"] = workflow_overrides

        call = await self._create_call(body)
        websocket_url = (call.get("transport") or {}).get("websocketCallUrl")
        if not websocket_url:
            await self._end_orphaned_call(call)
            raise VoiceAgentError("Vapi did not return a websocket call URL")

        try:
            self._ws = await self._connect(websocket_url)
        except (OSError, websockets.WebSocketException) as e:
            await self._end_orphaned_call(call)
            raise VoiceAgentError(f"Failed to connect to call websocket: {e}") from e

        self.call_id = call.get("id")
        logger.info(f"Vapi call {self.call_id} connected")
        self.emit(VoiceEvent.CALL_START.value)
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        return call

    async def stop(self) -> None:
        """Ask the agent to end the call and close the control channel."""
        ws = self._ws
        if ws is None:
            logger.debug("stop() called with no active call")
            return
        try:
            await ws.send(json.dumps({"type": "end-call"}))
        finally:
            await ws.close()
        if self._reader is not None:
            await self._reader

    async def aclose(self) -> None:
        await self.stop()
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _create_call(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self._http is None:
            self._http = httpx.AsyncClient()
        try:
            response = await self._http.post(
                f"{self._base_url}/call",
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise VoiceAgentError(f"Failed to reach Vapi: {e}") from e
        if response.status_code >= 400:
            raise VoiceAgentError(
                f"Vapi rejected call creation ({response.status_code}): {response.text}"
            )
        return response.json()

    async def _end_orphaned_call(self, call: Dict[str, Any]) -> None:
        """End a call that was created but never connected, through its control URL."""
        call_id = call.get("id")
        control_url = (call.get("monitor") or {}).get("controlUrl")
        if not control_url:
            logger.warning(f"Vapi call {call_id} was created but could not be connected or ended")
            return
        try:
            response = await self._http.post(control_url, json={"type": "end-call"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to end orphaned Vapi call {call_id}: {e}")
            return
        logger.info(f"Ended orphaned Vapi call {call_id}")

    async def _read_loop(self, ws: Any) -> None:
        """Dispatch control messages until the socket closes, then emit call-end once."""
        try:
            async for frame in ws:
                if isinstance(frame, bytes):
                    continue
                self._dispatch(frame)
        except websockets.ConnectionClosed as e:
            logger.warning(f"Call websocket closed abnormally: {e}")
        except Exception as e:
            logger.exception(f"Error reading call websocket: {e}")
            self.emit(VoiceEvent.ERROR.value, e)
        finally:
            self._ws = None
            self._reader = None
            self.emit(VoiceEvent.CALL_END.value)

    def _dispatch(self, frame: str) -> None:
        try:
            payload = json.loads(frame)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON control frame: {frame[:100]}")
            return

        message = parse_message(payload)
        if isinstance(message, SpeechUpdateMessage) and message.role == "assistant":
            event = VoiceEvent.SPEECH_START if message.status == "started" else VoiceEvent.SPEECH_END
            self.emit(event.value)
        self.emit(VoiceEvent.MESSAGE.value, payload)
