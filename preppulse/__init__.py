# Call lifecycle
from preppulse.call_controller import CallController, CallMode, CallStatus, CallView

# Auth
from preppulse.auth_form import AuthFormController, FormType, SignInForm, SignUpForm, auth_form_schema
from preppulse.backend import (
    ActionResult,
    AuthBackend,
    BackendClient,
    CreateFeedbackParams,
    FeedbackService,
    SignInParams,
    SignUpParams,
)
from preppulse.credentials import FirebaseIdentityClient, IdentityProvider, UserCredential

# Configuration and errors
from preppulse.config import AppConfig
from preppulse.errors import (
    BackendError,
    FeedbackError,
    IdentityProviderError,
    InvalidTransitionError,
    PrepPulseError,
    VoiceAgentError,
)

# Events and voice agent
from preppulse.emitter import EventEmitter
from preppulse.events import SavedMessage, VoiceEvent, describe_error
from preppulse.voice_client import VapiClient, VoiceAgentClient

# Feedback and backend server
from preppulse.database import Database, SqlFeedbackStore, SqlUserStore
from preppulse.feedback import Feedback, FeedbackDraft, FeedbackGenerator, FeedbackRecorder
from preppulse.server import PrepPulseServer
from preppulse.store import FeedbackStore, InMemoryFeedbackStore, InMemoryUserStore, UserRecord, UserStore

__all__ = [
    # Call lifecycle
    "CallController",
    "CallMode",
    "CallStatus",
    "CallView",
    # Auth
    "AuthFormController",
    "FormType",
    "SignInForm",
    "SignUpForm",
    "auth_form_schema",
    "ActionResult",
    "AuthBackend",
    "BackendClient",
    "CreateFeedbackParams",
    "FeedbackService",
    "SignInParams",
    "SignUpParams",
    "FirebaseIdentityClient",
    "IdentityProvider",
    "UserCredential",
    # Configuration and errors
    "AppConfig",
    "PrepPulseError",
    "InvalidTransitionError",
    "VoiceAgentError",
    "IdentityProviderError",
    "BackendError",
    "FeedbackError",
    # Events and voice agent
    "EventEmitter",
    "SavedMessage",
    "VoiceEvent",
    "describe_error",
    "VapiClient",
    "VoiceAgentClient",
    # Feedback and backend server
    "Feedback",
    "FeedbackDraft",
    "FeedbackGenerator",
    "FeedbackRecorder",
    "PrepPulseServer",
    "Database",
    "FeedbackStore",
    "UserStore",
    "UserRecord",
    "SqlFeedbackStore",
    "SqlUserStore",
    "InMemoryFeedbackStore",
    "InMemoryUserStore",
]
