"""Application configuration. Values are read once and injected into components."""

from dataclasses import dataclass
import os
from typing import Optional

DEFAULT_VAPI_BASE_URL = "https://api.vapi.ai"
DEFAULT_BACKEND_URL = "http://localhost:8000"
DEFAULT_FEEDBACK_MODEL = "gemini/gemini-2.0-flash-001"
DEFAULT_PORT = 8000
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///preppulse.db"


@dataclass(frozen=True)
class AppConfig:
    """
    Settings shared by the controllers, clients and backend server.

    Build one with ``AppConfig.from_env()`` at the entry point and pass it down;
    nothing else in the package reads the environment.
    """

    # Voice agent
    vapi_api_key: Optional[str] = None
    vapi_base_url: str = DEFAULT_VAPI_BASE_URL
    workflow_id: Optional[str] = None  # Used by generation-mode calls

    # Identity service
    firebase_api_key: Optional[str] = None

    # Backend
    backend_url: str = DEFAULT_BACKEND_URL
    feedback_model: str = DEFAULT_FEEDBACK_MODEL
    feedback_api_key: Optional[str] = None
    port: int = DEFAULT_PORT
    database_url: str = DEFAULT_DATABASE_URL

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        return cls(
            vapi_api_key=os.getenv("VAPI_API_KEY") or None,
            vapi_base_url=os.getenv("VAPI_BASE_URL", DEFAULT_VAPI_BASE_URL),
            workflow_id=os.getenv("VAPI_WORKFLOW_ID") or None,
            firebase_api_key=os.getenv("FIREBASE_API_KEY") or None,
            backend_url=os.getenv("PREPPULSE_BACKEND_URL", DEFAULT_BACKEND_URL),
            feedback_model=os.getenv("FEEDBACK_MODEL", DEFAULT_FEEDBACK_MODEL),
            feedback_api_key=os.getenv("FEEDBACK_API_KEY") or None,
            port=int(os.getenv("PORT", DEFAULT_PORT)),
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        )
