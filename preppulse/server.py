"""
PrepPulseServer - HTTP backend for account registration, sessions, and feedback.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Protocol

from fastapi import FastAPI, HTTPException, Query, Response
from loguru import logger
import uvicorn

from preppulse.backend import ActionResult, CreateFeedbackParams, SignInParams, SignUpParams
from preppulse.credentials import UserCredential
from preppulse.database import Database
from preppulse.errors import IdentityProviderError
from preppulse.feedback import FeedbackRecorder
from preppulse.store import FeedbackStore, UserRecord, UserStore

SESSION_COOKIE = "session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7  # one week, in seconds


class TokenVerifier(Protocol):
    async def lookup(self, id_token: str) -> UserCredential: ...


class PrepPulseServer:
    """
    Backend behind the auth form and call controllers.

    Routes:
        POST /auth/sign-up       register a profile for an identity-provider account
        POST /auth/sign-in       verify an ID token and set the session cookie
        POST /feedback           generate and store feedback for a transcript
        GET  /feedback/{id}      fetch stored feedback for an interview and user
        GET  /status             health check
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        users: UserStore,
        feedback_store: FeedbackStore,
        recorder: FeedbackRecorder,
        secure_cookies: bool = True,
        database: Optional[Database] = None,
    ):
        self.fastapi_app = FastAPI(title="PrepPulse", lifespan=self.lifespan)
        self.database = database
        self.verifier = verifier
        self.users = users
        self.feedback_store = feedback_store
        self.recorder = recorder
        self.secure_cookies = secure_cookies

        self.fastapi_app.add_api_route("/auth/sign-up", self.sign_up, methods=["POST"])
        self.fastapi_app.add_api_route("/auth/sign-in", self.sign_in, methods=["POST"])
        self.fastapi_app.add_api_route("/feedback", self.create_feedback, methods=["POST"])
        self.fastapi_app.add_api_route("/feedback/{interview_id}", self.get_feedback, methods=["GET"])
        self.fastapi_app.add_api_route("/status", self.get_status, methods=["GET"])

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        """Create tables on startup and release connections on shutdown."""
        if self.database is not None:
            await self.database.create_all()
        try:
            yield
        finally:
            if self.database is not None:
                await self.database.dispose()

    async def sign_up(self, params: SignUpParams) -> dict:
        if await self.users.get(params.uid) is not None:
            return _result(False, "User already exists. Please sign in.")

        await self.users.save(UserRecord(uid=params.uid, name=params.name, email=params.email))
        logger.info(f"Registered user {params.uid}")
        return _result(True, "Account created successfully. Please sign in.")

    async def sign_in(self, params: SignInParams, response: Response) -> dict:
        try:
            account = await self.verifier.lookup(params.id_token)
        except IdentityProviderError as e:
            logger.warning(f"Sign-in token rejected ({e.code})")
            return _result(False, "Failed to log into account. Please try again.")

        if await self.users.get(account.uid) is None:
            return _result(False, "User does not exist. Create an account.")

        response.set_cookie(
            SESSION_COOKIE,
            params.id_token,
            max_age=SESSION_MAX_AGE,
            httponly=True,
            secure=self.secure_cookies,
            path="/",
            samesite="lax",
        )
        logger.info(f"Session started for {account.uid}")
        return _result(True, "Signed in successfully.")

    async def create_feedback(self, params: CreateFeedbackParams) -> dict:
        try:
            result = await self.recorder.create_feedback(params)
        except Exception as e:
            logger.exception(f"Error saving feedback: {e}")
            result = ActionResult(success=False)
        return result.model_dump(by_alias=True, exclude_none=True)

    async def get_feedback(self, interview_id: str, user_id: str = Query(alias="userId")) -> dict:
        feedback = await self.feedback_store.find(interview_id, user_id)
        if feedback is None:
            raise HTTPException(status_code=404, detail="Feedback not found")
        return feedback.model_dump(by_alias=True, mode="json")

    async def get_status(self) -> dict:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "preppulse-backend",
        }

    def run(self, host: str = "0.0.0.0", port: Optional[int] = None):
        """Run the backend server."""
        uvicorn.run(self.fastapi_app, host=host, port=port or 8000)


def _result(success: bool, message: str) -> dict:
    return ActionResult(success=success, message=message).model_dump(by_alias=True, exclude_none=True)
