"""
Backend request/response models and the HTTP client used by the controllers.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict, List, Optional, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from preppulse.config import DEFAULT_BACKEND_URL
from preppulse.errors import BackendError
from preppulse.events import SavedMessage


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ActionResult(_Payload):
    """Outcome of a backend action."""

    success: bool
    message: Optional[str] = None
    feedback_id: Optional[str] = Field(default=None, alias="feedbackId")


class SignUpParams(_Payload):
    uid: str
    name: str
    email: str
    password: str


class SignInParams(_Payload):
    id_token: str = Field(alias="idToken")
    email: str


class CreateFeedbackParams(_Payload):
    interview_id: Optional[str] = Field(default=None, alias="interviewId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    transcript: List[SavedMessage] = Field(default_factory=list)
    feedback_id: Optional[str] = Field(default=None, alias="feedbackId")


class AuthBackend(Protocol):
    async def sign_up(self, params: SignUpParams) -> ActionResult: ...

    async def sign_in(self, params: SignInParams) -> ActionResult: ...


class FeedbackService(Protocol):
    async def create_feedback(self, params: CreateFeedbackParams) -> ActionResult: ...


class BackendClient:
    """Calls the PrepPulse backend over HTTP. Implements AuthBackend and FeedbackService."""

    def __init__(self, base_url: str = DEFAULT_BACKEND_URL, http_client: Optional[httpx.AsyncClient] = None):
        self._http = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"))
        self._owns_http = http_client is None

    async def sign_up(self, params: SignUpParams) -> ActionResult:
        return await self._post("/auth/sign-up", params.model_dump(by_alias=True))

    async def sign_in(self, params: SignInParams) -> ActionResult:
        return await self._post("/auth/sign-in", params.model_dump(by_alias=True))

    async def create_feedback(self, params: CreateFeedbackParams) -> ActionResult:
        return await self._post("/feedback", params.model_dump(by_alias=True, mode="json"))

    @property
    def cookies(self) -> httpx.Cookies:
        """Cookies set by the backend, including the session cookie after sign-in."""
        return self._http.cookies

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _post(self, path: str, body: Dict[str, Any]) -> ActionResult:
        try:
            response = await self._http.post(path, json=body)
        except httpx.HTTPError as e:
            raise BackendError(f"Request to {path} failed: {e}") from e
        if response.status_code >= 500:
            raise BackendError(
                f"Backend error on {path}: {response.text}", status_code=response.status_code
            )
        try:
            result = ActionResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise BackendError(
                f"Unexpected response from {path}", status_code=response.status_code
            ) from e
        logger.debug(f"{path} -> success={result.success}")
        return result
