"""
tests/conftest.py -- Shared test fixtures for reliefauth.

This module provides:
  - FakeIdentityProvider: in-process IdentityProvider with a scripted user table
  - CountingPolicy: instrumented credential policy (call count, optional gate)
  - cache / profiles: file-backed SQLite stores under tmp_path
  - coordinator: a started SessionCoordinator wired to the fakes

Design: file-backed SQLite (not :memory:) is used because the concurrency
tests drive the stores from several threads, and each pooled connection to
a plain :memory: URL would see its own empty database.

The DEBUG env var must be set before any reliefauth import so get_settings()
falls back to the development service-account password instead of raising
ValueError.
"""

from __future__ import annotations

import os
import threading
from typing import Optional

# CRITICAL: Set DEBUG before any core import so get_settings() accepts a
# missing SERVICE_ACCOUNT_PASSWORD.
os.environ.setdefault("DEBUG", "true")

import pytest

from auth.session import SessionCoordinator
from cache.store import CredentialCache
from core.config import Settings
from core.errors import IdentityProviderError, NetworkError
from core.models import BackendCredentials, Principal, UserProfile
from identity.base import IdentityProvider
from profiles.store import ProfileStore

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeIdentityProvider(IdentityProvider):
    """Identity provider backed by a dict of email -> (password, Principal).

    Set fail_sign_out to make sign_out raise NetworkError before emitting.
    """

    def __init__(self) -> None:
        super().__init__()
        self.accounts: dict[str, tuple[str, Principal]] = {}
        self.fail_sign_out = False
        self.sign_out_calls = 0
        self._next_uid = 1

    def add_account(self, email: str, password: str, **fields) -> Principal:
        principal = Principal(id=fields.pop("id", f"uid-{self._next_uid}"), email=email, **fields)
        self._next_uid += 1
        self.accounts[email] = (password, principal)
        return principal

    def sign_in(self, email: str, password: str) -> Principal:
        stored = self.accounts.get(email)
        if stored is None:
            raise IdentityProviderError("EMAIL_NOT_FOUND", "No account found with this email address.")
        if stored[0] != password:
            raise IdentityProviderError("INVALID_PASSWORD", "Incorrect email or password.")
        self._emit(stored[1])
        return stored[1]

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Principal:
        if email in self.accounts:
            raise IdentityProviderError("EMAIL_EXISTS", "An account with this email already exists.")
        principal = self.add_account(email, password, name=display_name)
        self._emit(principal)
        return principal

    def sign_out(self) -> None:
        self.sign_out_calls += 1
        if self.fail_sign_out:
            raise NetworkError("identity provider unreachable")
        self._emit(None)

    def emit(self, principal: Optional[Principal]) -> None:
        """Push a principal event as if the provider restored or lost a session."""
        self._emit(principal)


class CountingPolicy:
    """Credential policy that counts derivations.

    passwords: successive passwords handed out ("pw-1", "pw-2", ...).
    gate: if set, every derivation after the first blocks until it is set,
          and `entered` is set as soon as such a derivation starts.
    fail: raise RuntimeError from the next derivation when True.
    """

    def __init__(self, username: str = "user", gate: Optional[threading.Event] = None) -> None:
        self.username = username
        self.calls = 0
        self.gate = gate
        self.entered = threading.Event()
        self.fail = False
        self._lock = threading.Lock()

    def __call__(self, principal: Principal, profile: UserProfile) -> BackendCredentials:
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.fail:
            raise RuntimeError("deriver exploded")
        if self.gate is not None and n > 1:
            self.entered.set()
            self.gate.wait(timeout=5)
        return BackendCredentials(self.username, f"pw-{n}")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        debug=True,
        service_account_password="svc-secret",
        backend_base_url="http://backend.test/api",
        credential_cache_url=f"sqlite:///{tmp_path / 'cache.db'}",
        profile_store_url=f"sqlite:///{tmp_path / 'profiles.db'}",
    )


@pytest.fixture
def cache(settings):
    c = CredentialCache(settings.credential_cache_url)
    yield c
    c.close()


@pytest.fixture
def profiles(settings, cache):
    s = ProfileStore(settings.profile_store_url, cache=cache)
    yield s
    s.close()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def policy() -> CountingPolicy:
    return CountingPolicy()


@pytest.fixture
def coordinator(identity, profiles, cache, policy, settings):
    """Started coordinator; the fake provider reports no principal on start."""
    c = SessionCoordinator(identity, profiles, cache, credential_policy=policy, settings=settings)
    c.start()
    yield c
    c.stop()


@pytest.fixture
def recorder(coordinator):
    """List of every SessionState the coordinator publishes from now on."""
    states: list = []
    coordinator.add_listener(states.append)
    return states
