# src/secbrain/auth/credentials.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import AuthError, ValidationError
from ..core.ports import Principal
from ..core.validation import is_valid_email

logger = logging.getLogger(__name__)

DEFAULT_AUTH_ERROR_MESSAGE = "An unexpected error occurred"

AUTH_ERROR_MESSAGES: dict[str, str] = {
    "auth/user-not-found": "User account not found",
    "auth/wrong-password": "Incorrect password",
    "auth/email-already-in-use": "Email address is already in use",
    "auth/weak-password": "Password is too weak",
    "auth/invalid-email": "Invalid email address",
    "auth/user-disabled": "User account has been disabled",
    "auth/too-many-requests": "Too many failed attempts. Please try again later",
    "auth/network-request-failed": "Network error. Please check your connection",
    "auth/requires-recent-login": "Please sign in again to continue",
    "auth/internal-error": "Authentication service error. Please check the auth configuration",
    "auth/operation-not-allowed": "Password sign-in is not enabled for this project",
    "auth/unauthorized-domain": "This client is not authorized for authentication",
}

# Identity API error codes -> client codes above.
_SERVER_CODES: dict[str, str] = {
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/wrong-password",
    "USER_DISABLED": "auth/user-disabled",
    "INVALID_EMAIL": "auth/invalid-email",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "PASSWORD_LOGIN_DISABLED": "auth/operation-not-allowed",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
}


def friendly_auth_error_message(code: str | None) -> str:
    return AUTH_ERROR_MESSAGES.get(code or "", DEFAULT_AUTH_ERROR_MESSAGE)


def auth_error(code: str) -> AuthError:
    return AuthError(code, friendly_auth_error_message(code))


def _validate_credentials(email: str, password: str) -> str:
    email = (email or "").strip()
    if not is_valid_email(email):
        raise ValidationError("Invalid email address", field="email")
    if not password:
        raise ValidationError("Password must not be empty", field="password")
    return email


def _server_code(resp: httpx.Response) -> str:
    """Extract "CODE" from {"error": {"message": "CODE : details"}}."""
    try:
        data: Any = resp.json()
    except ValueError:
        return ""
    err = data.get("error") if isinstance(data, dict) else None
    message = err.get("message") if isinstance(err, dict) else None
    if not isinstance(message, str):
        return ""
    return message.split(":", 1)[0].strip()


class HttpCredentialService:
    """
    Email/password sign-in against an identity-toolkit style HTTP API.

      POST {base_url}/accounts:signInWithPassword?key={api_key}
           {"email", "password", "returnSecureToken": true}
        -> {"localId", "email", "idToken"}
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("Auth base_url is required")
        self._api_key = api_key or ""
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=max(0.5, float(timeout_seconds)),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        email = _validate_credentials(email, password)

        try:
            resp = await self._client.post(
                "/accounts:signInWithPassword",
                params={"key": self._api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
            )
        except httpx.HTTPError as e:
            logger.warning("Sign-in request failed (%s)", e.__class__.__name__)
            raise auth_error("auth/network-request-failed") from e

        if resp.status_code >= 400:
            server_code = _server_code(resp)
            code = _SERVER_CODES.get(server_code, "auth/internal-error")
            logger.info("Sign-in rejected: status=%s code=%s", resp.status_code, server_code or "?")
            raise auth_error(code)

        try:
            data = resp.json()
        except ValueError as e:
            raise auth_error("auth/internal-error") from e

        uid = str(data.get("localId") or "").strip() if isinstance(data, dict) else ""
        if not uid:
            raise auth_error("auth/internal-error")

        return Principal(uid=uid, email=data.get("email") or email, id_token=data.get("idToken"))


class OfflineCredentialService:
    """
    Credential service used when no auth endpoint is configured.

    Input is still validated; every sign-in then fails as a network error.
    """

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        _validate_credentials(email, password)
        raise auth_error("auth/network-request-failed")

    async def aclose(self) -> None:
        return
