"""
Credential gateway over the Firebase Authentication REST API.

See https://firebase.google.com/docs/reference/rest/auth for the endpoints used.
"""

from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel

from preppulse.errors import IdentityProviderError

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# Firebase error codes -> messages suitable for a notification
_READABLE_ERRORS = {
    "EMAIL_EXISTS": "The email address is already in use by another account.",
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "INVALID_ID_TOKEN": "Your session has expired. Please sign in again.",
    "USER_NOT_FOUND": "User does not exist.",
}


class UserCredential(BaseModel):
    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def get_id_token(self) -> Optional[str]:
        return self.id_token


class IdentityProvider(Protocol):
    async def create_user(self, email: str, password: str) -> UserCredential: ...

    async def sign_in(self, email: str, password: str) -> UserCredential: ...

    async def get_id_token(self, credential: UserCredential) -> Optional[str]: ...


class FirebaseIdentityClient:
    """Create accounts, sign in, and verify ID tokens with Firebase Authentication."""

    def __init__(
        self,
        api_key: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = IDENTITY_TOOLKIT_URL,
    ):
        if not api_key:
            raise ValueError("Missing Firebase API key")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    async def create_user(self, email: str, password: str) -> UserCredential:
        data = await self._call(
            "accounts:signUp", {"email": email, "password": password, "returnSecureToken": True}
        )
        logger.info(f"Created account for {email}")
        return self._credential(data)

    async def sign_in(self, email: str, password: str) -> UserCredential:
        data = await self._call(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._credential(data)

    async def get_id_token(self, credential: UserCredential) -> Optional[str]:
        return credential.get_id_token()

    async def lookup(self, id_token: str) -> UserCredential:
        """Resolve an ID token to the account it belongs to."""
        data = await self._call("accounts:lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise IdentityProviderError("USER_NOT_FOUND", _READABLE_ERRORS["USER_NOT_FOUND"])
        user = users[0]
        return UserCredential(uid=user["localId"], email=user.get("email"), id_token=id_token)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _call(self, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._http.post(
                f"{self._base_url}/{method}", params={"key": self._api_key}, json=body
            )
        except httpx.HTTPError as e:
            raise IdentityProviderError("NETWORK_ERROR", f"Could not reach identity service: {e}") from e

        if response.status_code >= 400:
            raise _parse_error(response)
        return response.json()

    @staticmethod
    def _credential(data: Dict[str, Any]) -> UserCredential:
        return UserCredential(
            uid=data["localId"],
            email=data.get("email"),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )


def _parse_error(response: httpx.Response) -> IdentityProviderError:
    """Build an IdentityProviderError from a Firebase error body."""
    try:
        raw = response.json().get("error", {}).get("message", "")
    except (ValueError, AttributeError):
        raw = ""
    # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
    code, _, detail = (raw or f"HTTP_{response.status_code}").partition(" : ")
    code = code.strip()
    message = _READABLE_ERRORS.get(code) or detail.strip() or code
    logger.warning(f"Identity service rejected request: {code}")
    return IdentityProviderError(code, message)
