"""
identity/base.py -- Base class for identity provider adapters.

An adapter turns one external provider into a stream of Principal-or-None
events. The session coordinator subscribes to that stream and never calls
provider SDKs or REST endpoints itself.

Layer rule: identity/ imports only from core/. It does NOT import from auth/,
profiles/, cache/, or api/.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from core.models import Principal

logger = logging.getLogger("reliefauth.identity")

PrincipalCallback = Callable[[Optional[Principal]], None]


class IdentityProvider(ABC):
    """Normalizes an external identity provider into a principal-or-None stream.

    Subclasses implement the provider calls and report every sign-in state
    change through _emit(). Subscribers are called synchronously, in
    registration order, on the thread that caused the change.

    A new subscriber is immediately told the current principal (None on a
    cold start), mirroring how hosted identity SDKs deliver their first
    auth-state event. No retry policy lives here.
    """

    def __init__(self) -> None:
        self._subscribers: list[PrincipalCallback] = []
        self._current: Optional[Principal] = None

    @property
    def current_principal(self) -> Optional[Principal]:
        return self._current

    def subscribe(self, callback: PrincipalCallback) -> Callable[[], None]:
        """Register callback and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        callback(self._current)
        return unsubscribe

    def _emit(self, principal: Optional[Principal]) -> None:
        self._current = principal
        logger.debug("Identity state changed: %s", principal.id if principal else None)
        for callback in list(self._subscribers):
            callback(principal)

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Principal:
        """Authenticate with the provider and emit the resulting principal."""

    @abstractmethod
    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Principal:
        """Create a provider account, sign it in, and emit its principal."""

    @abstractmethod
    def sign_out(self) -> None:
        """End the provider session and emit None."""
