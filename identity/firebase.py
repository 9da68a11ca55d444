"""
identity/firebase.py -- Identity Toolkit (Firebase Auth) REST adapter.

Endpoints used (all POST, API key in the ?key= query parameter):
  accounts:signInWithPassword -- email/password sign-in
  accounts:signUp             -- account creation (returns a signed-in session)
  accounts:update             -- set the display name after sign-up

The principal is built from the response body (localId, email, displayName)
plus the phone_number claim of the returned ID token. The token is read with
python-jose without signature verification: it was received directly from
the provider's token endpoint over TLS and is never forwarded as proof of
identity.

Sign-out is local, as it is in the client SDKs: no token is kept after the
principal is built, so signing out only emits None.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from jose import JWTError, jwt

from core.config import Settings, get_settings
from core.errors import IdentityProviderError, NetworkError, ValidationError
from core.models import Principal
from identity.base import IdentityProvider

logger = logging.getLogger("reliefauth.identity.firebase")

# Provider error code -> message safe to show to the user.
_ERROR_MESSAGES: dict[str, str] = {
    "EMAIL_NOT_FOUND": "No account found with this email address. Please check your email or create a new account.",
    "INVALID_PASSWORD": "Incorrect email or password. Please check your credentials and try again.",
    "INVALID_LOGIN_CREDENTIALS": "Incorrect email or password. Please check your credentials and try again.",
    "EMAIL_EXISTS": "An account with this email already exists. Please use the login option instead.",
    "WEAK_PASSWORD": "Password is too weak. Please use at least 6 characters with a mix of letters and numbers.",
    "INVALID_EMAIL": "Please enter a valid email address (e.g., example@email.com).",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many failed login attempts. Please wait a few minutes before trying again.",
    "USER_DISABLED": "This account has been disabled. Please contact support for assistance.",
}


class FirebaseIdentityProvider(IdentityProvider):
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__()
        if not api_key:
            raise ValueError("An Identity Toolkit API key is required.")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        if session is None:
            session = requests.Session()
            session.max_redirects = 3
        self._session = session

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FirebaseIdentityProvider":
        cfg = settings or get_settings()
        return cls(cfg.firebase_api_key, cfg.identity_toolkit_url, timeout=cfg.request_timeout)

    # ------------------------------------------------------------------
    # IdentityProvider
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Principal:
        _require_credentials(email, password)
        body = self._post(
            "accounts:signInWithPassword",
            {"email": email.strip(), "password": password, "returnSecureToken": True},
        )
        principal = self._accept(body)
        logger.info("Identity provider sign-in succeeded for %s", principal.id)
        self._emit(principal)
        return principal

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Principal:
        _require_credentials(email, password)
        body = self._post(
            "accounts:signUp",
            {"email": email.strip(), "password": password, "returnSecureToken": True},
        )
        if display_name:
            self._post(
                "accounts:update",
                {"idToken": body["idToken"], "displayName": display_name, "returnSecureToken": False},
            )
            body["displayName"] = display_name
        principal = self._accept(body)
        logger.info("Identity provider account created for %s", principal.id)
        self._emit(principal)
        return principal

    def sign_out(self) -> None:
        self._emit(None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _post(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{action}"
        try:
            resp = self._session.post(url, params={"key": self._api_key}, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise NetworkError(f"Identity provider unreachable: {exc}") from exc
        if resp.status_code >= 400:
            raise _provider_error(resp)
        return resp.json()

    def _accept(self, body: dict[str, Any]) -> Principal:
        claims = _token_claims(body.get("idToken"))
        return Principal(
            id=body["localId"],
            email=body.get("email") or claims.get("email"),
            name=body.get("displayName") or claims.get("name"),
            phone=claims.get("phone_number"),
        )


def _require_credentials(email: str, password: str) -> None:
    if not email or not email.strip():
        raise ValidationError("Email is required")
    if not password:
        raise ValidationError("Password is required")


def _token_claims(token: Optional[str]) -> dict[str, Any]:
    if not token:
        return {}
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        logger.debug("ID token claims unreadable; using response fields only")
        return {}


def _provider_error(resp: requests.Response) -> IdentityProviderError:
    """Turn an error response into IdentityProviderError.

    The message field looks like "WEAK_PASSWORD : Password should be at least
    6 characters"; the code is the part before the first space.
    """
    try:
        raw = resp.json().get("error", {}).get("message", "")
    except ValueError:
        raw = ""
    code = raw.split(" ", 1)[0] if raw else f"HTTP_{resp.status_code}"
    message = _ERROR_MESSAGES.get(code, "Authentication failed. Please try again.")
    return IdentityProviderError(code, message)
