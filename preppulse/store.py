"""Persistence protocols for user profiles and feedback, with in-memory implementations."""

from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Tuple
import uuid

from pydantic import BaseModel, Field

from preppulse.feedback import Feedback, FeedbackDraft


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserRecord(BaseModel):
    uid: str
    name: str
    email: str
    created_at: datetime = Field(default_factory=_now)


class UserStore(Protocol):
    async def get(self, uid: str) -> Optional[UserRecord]: ...

    async def save(self, user: UserRecord) -> None: ...


class FeedbackStore(Protocol):
    async def save(
        self,
        draft: FeedbackDraft,
        interview_id: Optional[str],
        user_id: Optional[str],
        feedback_id: Optional[str] = None,
    ) -> Feedback: ...

    async def find(self, interview_id: str, user_id: str) -> Optional[Feedback]: ...


def build_feedback(
    draft: FeedbackDraft,
    interview_id: Optional[str],
    user_id: Optional[str],
    feedback_id: Optional[str] = None,
) -> Feedback:
    return Feedback(
        id=feedback_id or uuid.uuid4().hex,
        interview_id=interview_id,
        user_id=user_id,
        created_at=_now(),
        **draft.model_dump(),
    )


class InMemoryUserStore:
    def __init__(self):
        self._users: Dict[str, UserRecord] = {}

    async def get(self, uid: str) -> Optional[UserRecord]:
        return self._users.get(uid)

    async def save(self, user: UserRecord) -> None:
        self._users[user.uid] = user

    def __len__(self) -> int:
        return len(self._users)


class InMemoryFeedbackStore:
    """Feedback keyed by id. Saving with an existing id overwrites it."""

    def __init__(self):
        self._feedback: Dict[str, Feedback] = {}
        self._latest: Dict[Tuple[Optional[str], Optional[str]], str] = {}

    async def save(
        self,
        draft: FeedbackDraft,
        interview_id: Optional[str],
        user_id: Optional[str],
        feedback_id: Optional[str] = None,
    ) -> Feedback:
        feedback = build_feedback(draft, interview_id, user_id, feedback_id)
        self._feedback[feedback.id] = feedback
        self._latest[(interview_id, user_id)] = feedback.id
        return feedback

    async def get(self, feedback_id: str) -> Optional[Feedback]:
        return self._feedback.get(feedback_id)

    async def find(self, interview_id: str, user_id: str) -> Optional[Feedback]:
        feedback_id = self._latest.get((interview_id, user_id))
        return self._feedback.get(feedback_id) if feedback_id else None
