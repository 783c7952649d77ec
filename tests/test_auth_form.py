"""
Tests for preppulse/auth_form.py

Covers form validation (no network calls on invalid input) and the
sign-up/sign-in submission flows.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from preppulse.auth_form import (
    GENERIC_FAILURE,
    MISSING_TOKEN,
    AuthFormController,
    SignInForm,
    SignUpForm,
    auth_form_schema,
)
from preppulse.backend import ActionResult, SignInParams, SignUpParams
from preppulse.credentials import UserCredential
from preppulse.errors import IdentityProviderError

# ============================================================
# Fixtures and Helpers
# ============================================================

EMAIL = "ada@prep-pulse.io"


def create_form(form_type: str):
    identity = MagicMock()
    identity.create_user = AsyncMock(return_value=UserCredential(uid="user-1", email=EMAIL))
    identity.sign_in = AsyncMock(return_value=UserCredential(uid="user-1", email=EMAIL, id_token="token-1"))
    identity.get_id_token = AsyncMock(return_value="token-1")

    backend = MagicMock()
    backend.sign_up = AsyncMock(return_value=ActionResult(success=True, message="Account created"))
    backend.sign_in = AsyncMock(return_value=ActionResult(success=True, message="Signed in"))

    navigator = MagicMock()
    notifier = MagicMock()
    form = AuthFormController(form_type, identity, backend, navigator, notifier)
    return form, identity, backend, navigator, notifier


# ============================================================
# Validation
# ============================================================


class TestValidation:
    def test_schema_per_form_type(self):
        assert auth_form_schema("sign-up") is SignUpForm
        assert auth_form_schema("sign-in") is SignInForm

    def test_submit_labels(self):
        assert create_form("sign-in")[0].submit_label == "Sign In"
        assert create_form("sign-up")[0].submit_label == "Create an Account"

    @pytest.mark.asyncio
    async def test_short_password_makes_no_network_call(self):
        form, identity, backend, navigator, notifier = create_form("sign-up")

        ok = await form.submit({"name": "Ada", "email": EMAIL, "password": "abc"})

        assert ok is False
        assert "password" in form.errors
        identity.create_user.assert_not_awaited()
        backend.sign_up.assert_not_awaited()
        navigator.push.assert_not_called()
        notifier.error.assert_not_called()

    @pytest.mark.parametrize("name", ["A", "x" * 51])
    def test_sign_up_name_length(self, name):
        form = create_form("sign-up")[0]

        assert form.validate({"name": name, "email": EMAIL, "password": "secret1"}) is None
        assert "name" in form.errors

    def test_invalid_email(self):
        form = create_form("sign-in")[0]

        assert form.validate({"email": "not-an-email", "password": "secret1"}) is None
        assert "email" in form.errors

    def test_sign_in_does_not_require_name(self):
        form = create_form("sign-in")[0]

        validated = form.validate({"email": EMAIL, "password": "secret1"})

        assert isinstance(validated, SignInForm)
        assert form.errors == {}

    def test_errors_clear_after_valid_input(self):
        form = create_form("sign-up")[0]
        form.validate({"name": "Ada", "email": EMAIL, "password": "abc"})

        form.validate({"password": "secret1"})

        assert form.errors == {}


# ============================================================
# Sign up
# ============================================================


class TestSignUp:
    @pytest.mark.asyncio
    async def test_success_routes_to_sign_in(self):
        form, identity, backend, navigator, notifier = create_form("sign-up")

        ok = await form.submit({"name": "Ada", "email": EMAIL, "password": "secret1"})

        assert ok is True
        identity.create_user.assert_awaited_once_with(EMAIL, "secret1")
        backend.sign_up.assert_awaited_once_with(
            SignUpParams(uid="user-1", name="Ada", email=EMAIL, password="secret1")
        )
        notifier.success.assert_called_once_with("Sign Up successful!")
        navigator.push.assert_called_once_with("/sign-in")

    @pytest.mark.asyncio
    async def test_backend_rejection_shows_its_message(self):
        form, _, backend, navigator, notifier = create_form("sign-up")
        backend.sign_up.return_value = ActionResult(
            success=False, message="User already exists. Please sign in."
        )

        ok = await form.submit({"name": "Ada", "email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with("User already exists. Please sign in.")
        navigator.push.assert_not_called()

    @pytest.mark.asyncio
    async def test_identity_error_shows_readable_message(self):
        form, identity, backend, navigator, notifier = create_form("sign-up")
        identity.create_user.side_effect = IdentityProviderError(
            "EMAIL_EXISTS", "The email address is already in use by another account."
        )

        ok = await form.submit({"name": "Ada", "email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with("The email address is already in use by another account.")
        backend.sign_up.assert_not_awaited()
        navigator.push.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_shows_generic_message(self):
        form, _, backend, _, notifier = create_form("sign-up")
        backend.sign_up.side_effect = RuntimeError("connection reset")

        ok = await form.submit({"name": "Ada", "email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with(GENERIC_FAILURE)


# ============================================================
# Sign in
# ============================================================


class TestSignIn:
    @pytest.mark.asyncio
    async def test_success_routes_home(self):
        form, identity, backend, navigator, notifier = create_form("sign-in")

        ok = await form.submit({"email": EMAIL, "password": "secret1"})

        assert ok is True
        identity.sign_in.assert_awaited_once_with(EMAIL, "secret1")
        backend.sign_in.assert_awaited_once_with(SignInParams(id_token="token-1", email=EMAIL))
        notifier.success.assert_called_once_with("Sign In successful!")
        navigator.push.assert_called_once_with("/")

    @pytest.mark.asyncio
    async def test_missing_token_stops_before_backend(self):
        form, identity, backend, navigator, notifier = create_form("sign-in")
        identity.get_id_token.return_value = None

        ok = await form.submit({"email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with(MISSING_TOKEN)
        backend.sign_in.assert_not_awaited()
        navigator.push.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_rejection_shows_its_message(self):
        form, _, backend, navigator, notifier = create_form("sign-in")
        backend.sign_in.return_value = ActionResult(
            success=False, message="User does not exist. Create an account."
        )

        ok = await form.submit({"email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with("User does not exist. Create an account.")
        navigator.push.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        form, identity, _, _, notifier = create_form("sign-in")
        identity.sign_in.side_effect = IdentityProviderError(
            "INVALID_LOGIN_CREDENTIALS", "Invalid email or password."
        )

        ok = await form.submit({"email": EMAIL, "password": "secret1"})

        assert ok is False
        notifier.error.assert_called_once_with("Invalid email or password.")
