"""
CallController - lifecycle of a single voice interview call.

Coordinates a hosted voice agent: starts the call in generation or interview mode,
buffers finalized transcript lines, derives the UI view, and hands the transcript
to feedback generation once the call finishes.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, List, Literal, Optional, Sequence

from loguru import logger

from preppulse.backend import CreateFeedbackParams, FeedbackService
from preppulse.emitter import Listener, attach, detach
from preppulse.errors import InvalidTransitionError, VoiceAgentError
from preppulse.events import SavedMessage, VoiceEvent, describe_error, error_details, final_transcript
from preppulse.interviewer import format_questions, interviewer_assistant
from preppulse.routing import HOME, Navigator, feedback_route
from preppulse.voice_client import VoiceAgentClient

CallMode = Literal["generate", "interview"]


class CallStatus(str, Enum):
    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


# Retry is handled separately: it resets to INACTIVE from any status.
_TRANSITIONS: Dict[CallStatus, FrozenSet[CallStatus]] = {
    CallStatus.INACTIVE: frozenset({CallStatus.CONNECTING, CallStatus.ERROR}),
    CallStatus.CONNECTING: frozenset({CallStatus.ACTIVE, CallStatus.FINISHED, CallStatus.ERROR}),
    CallStatus.ACTIVE: frozenset({CallStatus.FINISHED, CallStatus.ERROR}),
    CallStatus.FINISHED: frozenset({CallStatus.CONNECTING, CallStatus.ERROR}),
    CallStatus.ERROR: frozenset({CallStatus.ERROR}),
}

_LIVE = frozenset({CallStatus.CONNECTING, CallStatus.ACTIVE})


def can_transition(current: CallStatus, target: CallStatus) -> bool:
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class CallView:
    """UI-facing state derived from the controller."""

    status: CallStatus
    message_count: int
    last_message: str
    error: str
    is_speaking: bool

    @property
    def button_label(self) -> str:
        if self.status == CallStatus.ACTIVE:
            return "End"
        if self.status == CallStatus.CONNECTING:
            return "Connecting..."
        if self.status == CallStatus.ERROR:
            return "Retry"
        return "Call"

    @property
    def button_enabled(self) -> bool:
        return self.status != CallStatus.CONNECTING


class CallController:
    """
    State machine for one interview call.

    Statuses move INACTIVE -> CONNECTING -> ACTIVE -> FINISHED, and ERROR is reachable
    from any status. User operations that break the transition table raise
    InvalidTransitionError; voice agent events that don't fit are logged and ignored.
    """

    def __init__(
        self,
        voice: VoiceAgentClient,
        navigator: Navigator,
        feedback: FeedbackService,
        *,
        user_name: str,
        user_id: str,
        mode: CallMode,
        interview_id: Optional[str] = None,
        feedback_id: Optional[str] = None,
        questions: Optional[Sequence[str]] = None,
        workflow_id: Optional[str] = None,
    ):
        """
        Args:
            voice: Voice agent client the call runs on.
            navigator: Receives the route to show once the call is over.
            feedback: Feedback generation backend used in interview mode.
            user_name: Passed to the generation workflow as ``username``.
            user_id: Passed to the workflow as ``userid`` and to feedback generation.
            mode: "generate" runs the hosted workflow, "interview" runs the interviewer script.
            interview_id: Interview the feedback belongs to. Required in interview mode.
            feedback_id: Existing feedback to overwrite, if any.
            questions: Interview questions fed to the interviewer script.
            workflow_id: Hosted workflow used in generation mode.
        """
        if mode == "interview" and not interview_id:
            raise ValueError("interview_id is required in interview mode")

        self.voice = voice
        self.navigator = navigator
        self.feedback = feedback
        self.user_name = user_name
        self.user_id = user_id
        self.mode = mode
        self.interview_id = interview_id
        self.feedback_id = feedback_id
        self.questions = list(questions or [])
        self.workflow_id = workflow_id

        self.status = CallStatus.INACTIVE
        self.messages: List[SavedMessage] = []
        self.is_speaking = False
        self.last_message = ""
        self.error = ""

        self._finish_handled = False
        self._feedback_task: Optional[asyncio.Task] = None
        self._attached = False
        self._listeners: Dict[str, Listener] = {
            VoiceEvent.CALL_START.value: self._on_call_start,
            VoiceEvent.CALL_END.value: self._on_call_end,
            VoiceEvent.MESSAGE.value: self._on_message,
            VoiceEvent.SPEECH_START.value: self._on_speech_start,
            VoiceEvent.SPEECH_END.value: self._on_speech_end,
            VoiceEvent.ERROR.value: self._on_error,
        }

    # ========================================
    # Listener scope
    # ========================================

    def attach(self) -> None:
        """Register the controller's listeners on the voice client."""
        if self._attached:
            return
        logger.debug("🔌 Setting up voice agent event listeners")
        attach(self.voice, self._listeners)
        self._attached = True

    def detach(self) -> None:
        """Unregister exactly the listeners added by attach()."""
        if not self._attached:
            return
        logger.debug("🧹 Cleaning up voice agent event listeners")
        detach(self.voice, self._listeners)
        self._attached = False

    @asynccontextmanager
    async def session(self) -> AsyncIterator["CallController"]:
        """Keep the listeners attached for the duration of the block."""
        self.attach()
        try:
            yield self
        finally:
            self.detach()

    # ========================================
    # User operations
    # ========================================

    async def start_call(self) -> None:
        """Start a call from INACTIVE or FINISHED."""
        if self.status not in (CallStatus.INACTIVE, CallStatus.FINISHED):
            raise InvalidTransitionError(self.status.value, CallStatus.CONNECTING.value)
        if self.status == CallStatus.FINISHED:
            self._reset_session()
        self._finish_handled = False
        self._set_status(CallStatus.CONNECTING)

        try:
            if self.mode == "generate":
                if not self.workflow_id:
                    raise VoiceAgentError("No workflow configured for generation calls")
                await self.voice.start(
                    workflow_id=self.workflow_id,
                    workflow_overrides={
                        "variableValues": {"username": self.user_name, "userid": self.user_id}
                    },
                )
            else:
                await self.voice.start(
                    assistant=interviewer_assistant(),
                    assistant_overrides={
                        "variableValues": {"questions": format_questions(self.questions)}
                    },
                )
        except Exception as e:
            logger.exception(f"Failed to start call: {e}")
            self._on_error(e)

    async def disconnect(self) -> None:
        """End the call from the user side. Failures to stop the agent are only logged."""
        logger.info("🛑 Disconnecting call")
        self._set_status(CallStatus.FINISHED)
        try:
            await self.voice.stop()
        except Exception as e:
            logger.error(f"Error stopping voice agent: {e}")

    async def retry(self) -> None:
        """
        Return to INACTIVE from any status, dropping the transcript and error.

        A live call is abandoned: the agent is stopped without running terminal handling.
        """
        logger.info("🔄 Retrying call")
        was_live = self.status in _LIVE
        self._reset_session()
        self.status = CallStatus.INACTIVE
        if not was_live:
            return

        logger.warning("Abandoning live call")
        try:
            await self.voice.stop()
        except Exception as e:
            logger.error(f"Error stopping voice agent: {e}")

    async def press_call_button(self) -> None:
        """Run the action bound to the call button for the current status."""
        if self.status == CallStatus.ACTIVE:
            await self.disconnect()
        elif self.status == CallStatus.ERROR:
            await self.retry()
        elif self.status == CallStatus.CONNECTING:
            logger.debug("Call button pressed while connecting; ignoring")
        else:
            await self.start_call()

    async def wait_for_feedback(self) -> Optional[bool]:
        """Wait for an in-flight feedback submission. Returns its outcome, or None if none ran."""
        if self._feedback_task is None:
            return None
        return await self._feedback_task

    def snapshot(self) -> CallView:
        return CallView(
            status=self.status,
            message_count=len(self.messages),
            last_message=self.last_message,
            error=self.error,
            is_speaking=self.is_speaking,
        )

    # ========================================
    # Voice agent events
    # ========================================

    def _on_call_start(self) -> None:
        if self.status != CallStatus.CONNECTING:
            logger.warning(f"Ignoring call-start in status {self.status.value}")
            return
        logger.info("✅ Call started")
        self._set_status(CallStatus.ACTIVE)
        self.error = ""

    def _on_call_end(self) -> None:
        self.is_speaking = False
        if self.status not in _LIVE:
            logger.debug(f"Ignoring call-end in status {self.status.value}")
            return
        logger.info("📞 Call ended")
        self._set_status(CallStatus.FINISHED)

    def _on_message(self, message: object) -> None:
        saved = final_transcript(message)
        if saved is None:
            return
        if self.status != CallStatus.ACTIVE:
            logger.debug(f"Dropping transcript line received in status {self.status.value}")
            return
        logger.info(f'💬 {saved.role}: "{saved.content}"')
        self.messages.append(saved)
        self.last_message = saved.content

    def _on_speech_start(self) -> None:
        self.is_speaking = True

    def _on_speech_end(self) -> None:
        self.is_speaking = False

    def _on_error(self, error: object = None) -> None:
        if self.status == CallStatus.INACTIVE:
            logger.warning(f"Ignoring voice agent error with no call in progress: {error_details(error)}")
            return
        logger.error(f"❌ Voice agent error: {error_details(error)}")
        self.error = describe_error(error)
        self.is_speaking = False
        self._set_status(CallStatus.ERROR)

    # ========================================
    # Internals
    # ========================================

    def _set_status(self, target: CallStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.status.value, target.value)
        logger.debug(f"Call status {self.status.value} -> {target.value}")
        self.status = target
        if target == CallStatus.FINISHED:
            self._handle_finished()

    def _reset_session(self) -> None:
        self.messages = []
        self.last_message = ""
        self.error = ""
        self.is_speaking = False
        self._finish_handled = False

    def _handle_finished(self) -> None:
        if self._finish_handled:
            return
        self._finish_handled = True

        if self.mode == "generate":
            self.navigator.push(HOME)
            return

        transcript = list(self.messages)
        self._feedback_task = asyncio.get_running_loop().create_task(self._submit_feedback(transcript))

    async def _submit_feedback(self, transcript: List[SavedMessage]) -> bool:
        logger.info("📝 Generating feedback...")
        params = CreateFeedbackParams(
            interview_id=self.interview_id,
            user_id=self.user_id,
            transcript=transcript,
            feedback_id=self.feedback_id,
        )
        try:
            result = await self.feedback.create_feedback(params)
        except Exception as e:
            logger.exception(f"❌ Error generating feedback: {e}")
            self.navigator.push(HOME)
            return False

        if result.success and result.feedback_id:
            logger.info("✅ Feedback saved")
            self.navigator.push(feedback_route(self.interview_id))
            return True

        logger.error("❌ Failed to save feedback")
        self.navigator.push(HOME)
        return False
