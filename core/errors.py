"""
core/errors.py -- Exception taxonomy shared by every reliefauth layer.

Adapters translate library exceptions (requests, SQLAlchemy, pydantic) into
these types at the boundary so callers never depend on a transport library.

Propagation policy:
  AuthRequiredError / AuthExpiredError -- surface to feature code; the UI
      sends the user to the login screen.
  ProfileResolutionError -- raised and caught inside the coordinator only;
      resolution falls back to a minimal profile.
  NetworkError / ServerError -- opaque pass-through to the calling feature.
  ValidationError -- bad caller input, raised before any side effect.
"""

from __future__ import annotations

from typing import Optional


class ReliefAuthError(Exception):
    """Base class for all errors raised by reliefauth."""


class AuthRequiredError(ReliefAuthError):
    """No session is present."""

    def __init__(self, message: str = "No user is currently authenticated. Please log in to continue.") -> None:
        super().__init__(message)


class AuthExpiredError(ReliefAuthError):
    """Backend credentials were rejected and could not be refreshed."""

    def __init__(self, message: str = "Authentication expired. Please log in again.") -> None:
        super().__init__(message)


class ProfileResolutionError(ReliefAuthError):
    """A profile could be neither fetched nor created."""


class ProfileNotFoundError(ReliefAuthError):
    def __init__(self, profile_id: str) -> None:
        super().__init__(f"No profile found for id {profile_id!r}")
        self.profile_id = profile_id


class NetworkError(ReliefAuthError):
    """The remote side could not be reached."""


class ServerError(ReliefAuthError):
    """The REST backend answered with an error status."""

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"HTTP {status}")
        self.status = status
        self.body = body


class ValidationError(ReliefAuthError, ValueError):
    """Caller input failed validation."""


class IdentityProviderError(ReliefAuthError):
    """The identity provider rejected a sign-in or sign-up.

    code is the provider's machine-readable reason (e.g. EMAIL_EXISTS);
    the message is already suitable for display.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------


def _http_message(status: int) -> str:
    if status in (503, 504):
        return "Server is temporarily unavailable due to maintenance or high traffic."
    if status >= 500:
        return "Server encountered an error. Please try again in a few minutes."
    if status == 401:
        return "Your session has expired. Please log in again."
    if status == 403:
        return "Access denied. Please check your permissions."
    if status == 404:
        return "The requested resource was not found."
    return "Request failed. Please check your input and try again."


def user_message(exc: Optional[BaseException]) -> str:
    """Map any error to one sentence the UI can show as-is."""
    if exc is None:
        return ""
    if isinstance(exc, AuthExpiredError):
        return "Authentication expired. Please log in again."
    if isinstance(exc, AuthRequiredError):
        return "Please log in to access this feature."
    if isinstance(exc, ServerError):
        return _http_message(exc.status)
    if isinstance(exc, NetworkError):
        return "Network error. Please check your internet connection and try again."
    if isinstance(exc, (IdentityProviderError, ValidationError)):
        return str(exc)
    return "An unexpected error occurred. Please try again."
