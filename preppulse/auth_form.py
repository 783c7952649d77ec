"""
AuthFormController - sign-up and sign-in submission.

Validates the form against the schema for its variant before any network call,
then drives the identity provider and the backend and routes the user.
"""

from typing import Any, Dict, Literal, Mapping, Optional, Type, Union

from loguru import logger
from pydantic import BaseModel, EmailStr, Field, ValidationError

from preppulse.backend import AuthBackend, SignInParams, SignUpParams
from preppulse.credentials import IdentityProvider
from preppulse.errors import IdentityProviderError
from preppulse.routing import HOME, SIGN_IN, Navigator, Notifier

FormType = Literal["sign-in", "sign-up"]

GENERIC_FAILURE = "Something went wrong, please try again later."
MISSING_TOKEN = "Failed to get user token. Please try again."


class SignUpForm(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)


class SignInForm(BaseModel):
    name: Optional[str] = None
    email: EmailStr
    password: str = Field(min_length=6)


AuthForm = Union[SignUpForm, SignInForm]


def auth_form_schema(form_type: FormType) -> Type[AuthForm]:
    """Schema for the given form variant."""
    return SignUpForm if form_type == "sign-up" else SignInForm


def _field_errors(error: ValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for detail in error.errors():
        field = ".".join(str(part) for part in detail["loc"]) or "__root__"
        errors.setdefault(field, detail["msg"])
    return errors


class AuthFormController:
    """Submission logic shared by the sign-up and sign-in forms."""

    def __init__(
        self,
        form_type: FormType,
        identity: IdentityProvider,
        backend: AuthBackend,
        navigator: Navigator,
        notifier: Notifier,
    ):
        self.form_type = form_type
        self.identity = identity
        self.backend = backend
        self.navigator = navigator
        self.notifier = notifier
        self.schema = auth_form_schema(form_type)
        self.values: Dict[str, Any] = {"name": "", "email": "", "password": ""}
        self.errors: Dict[str, str] = {}

    @property
    def is_sign_in(self) -> bool:
        return self.form_type == "sign-in"

    @property
    def submit_label(self) -> str:
        return "Sign In" if self.is_sign_in else "Create an Account"

    def validate(self, values: Optional[Mapping[str, Any]] = None) -> Optional[AuthForm]:
        """Validate values against the schema. Field errors are kept on ``self.errors``."""
        if values is not None:
            self.values.update(values)
        data = dict(self.values)
        if self.is_sign_in and not data.get("name"):
            data.pop("name", None)
        try:
            form = self.schema.model_validate(data)
        except ValidationError as e:
            self.errors = _field_errors(e)
            logger.debug(f"Form validation failed: {self.errors}")
            return None
        self.errors = {}
        return form

    async def submit(self, values: Optional[Mapping[str, Any]] = None) -> bool:
        """Validate and submit. Returns True when the user was routed onwards."""
        form = self.validate(values)
        if form is None:
            return False

        try:
            if isinstance(form, SignUpForm):
                return await self._sign_up(form)
            return await self._sign_in(form)
        except IdentityProviderError as e:
            logger.warning(f"Identity provider error ({e.code}): {e}")
            self.notifier.error(str(e))
        except Exception as e:
            logger.exception(f"Auth submission failed: {e}")
            self.notifier.error(GENERIC_FAILURE)
        return False

    async def _sign_up(self, form: SignUpForm) -> bool:
        credential = await self.identity.create_user(form.email, form.password)
        result = await self.backend.sign_up(
            SignUpParams(uid=credential.uid, name=form.name, email=form.email, password=form.password)
        )
        if not result.success:
            self.notifier.error(result.message or GENERIC_FAILURE)
            return False

        self.notifier.success("Sign Up successful!")
        self.navigator.push(SIGN_IN)
        return True

    async def _sign_in(self, form: SignInForm) -> bool:
        credential = await self.identity.sign_in(form.email, form.password)
        id_token = await self.identity.get_id_token(credential)
        if not id_token:
            self.notifier.error(MISSING_TOKEN)
            return False

        result = await self.backend.sign_in(SignInParams(id_token=id_token, email=form.email))
        if not result.success:
            self.notifier.error(result.message or GENERIC_FAILURE)
            return False

        self.notifier.success("Sign In successful!")
        self.navigator.push(HOME)
        return True
