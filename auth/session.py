"""
auth/session.py -- Session coordinator: one logical session over two backends.

The identity provider says who the user is; the legacy REST backend only
accepts Basic credentials. SessionCoordinator owns the single SessionState
value and keeps the two in step:

  principal emitted  -> resolving -> fetch or create profile (fallback on
                        failure) -> derive + cache credentials -> authenticated
  None emitted       -> cache cleared -> unauthenticated
  login_direct()     -> locally synthesized profile -> authenticated (direct)
  logout()           -> best-effort provider sign-out, cache cleared,
                        unauthenticated (always)
  refresh()          -> re-derive credentials for the held principal, single
                        flight; unrecoverable failure -> unauthenticated

State changes happen under a lock and listeners then receive the frozen
snapshot synchronously. Listeners must not call back into the coordinator
to change state.

Cached credentials never restore a session when the provider reports no
principal, including on a cold start.
"""

from __future__ import annotations

import logging
import secrets
import threading
from enum import Enum
from typing import Callable, Optional, Union

from auth.credentials import CredentialPolicy, RolePolicy, default_credential_policy, infer_role_from_username
from auth.singleflight import InFlightError, SingleFlight
from cache.store import CredentialCache
from core.config import Settings, get_settings
from core.errors import (
    AuthExpiredError,
    AuthRequiredError,
    NetworkError,
    ProfileNotFoundError,
    ProfileResolutionError,
    ReliefAuthError,
    ValidationError,
)
from core.models import AuthMethod, BackendCredentials, Principal, Role, SessionState, UserProfile
from identity.base import IdentityProvider
from profiles.models import ProfileSeed, ProfileUpdate, parse_seed, parse_update
from profiles.store import ProfileStore

logger = logging.getLogger("reliefauth.session")

SessionListener = Callable[[SessionState], None]


class RefreshOutcome(str, Enum):
    REFRESHED = "refreshed"
    SHORT_CIRCUITED = "short_circuited"  # another refresh was already running
    FAILED = "failed"


class SessionCoordinator:
    """Owns SessionState and every transition of it.

    Usage:
        coordinator = SessionCoordinator(identity, profiles, cache)
        coordinator.add_listener(render)
        coordinator.start()
        coordinator.login("asha@example.org", "secret")
        creds = coordinator.credentials()
        coordinator.logout()
    """

    def __init__(
        self,
        identity: IdentityProvider,
        profiles: ProfileStore,
        cache: CredentialCache,
        credential_policy: Optional[CredentialPolicy] = None,
        role_policy: RolePolicy = infer_role_from_username,
        settings: Optional[Settings] = None,
        refresh_guard: Optional[SingleFlight] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._identity = identity
        self._profiles = profiles
        self._cache = cache
        self._credential_policy = credential_policy or default_credential_policy(self._settings)
        self._role_policy = role_policy
        self.refresh_guard = refresh_guard or SingleFlight(
            wait_for_inflight=self._settings.refresh_waits_for_inflight
        )
        self._lock = threading.RLock()
        self._state = SessionState.unauthenticated()
        self._listeners: list[SessionListener] = []
        self._pending_seed: Optional[ProfileSeed] = None
        self._last_error: Optional[ReliefAuthError] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle and observation
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the identity provider. The provider replies with its current principal."""
        if self._unsubscribe is None:
            self._unsubscribe = self._identity.subscribe(self._on_principal)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def add_listener(self, callback: SessionListener) -> Callable[[], None]:
        """Register callback for every transition. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def consume_error(self) -> Optional[ReliefAuthError]:
        """Return the error that last ended a session, then forget it."""
        with self._lock:
            error, self._last_error = self._last_error, None
        return error

    # ------------------------------------------------------------------
    # Explicit operations
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> SessionState:
        """Sign in with the identity provider; resolution runs off the emitted principal."""
        self._identity.sign_in(email, password)
        return self.state

    def register(self, email: str, password: str, seed: Union[ProfileSeed, dict]) -> SessionState:
        """Create an identity-provider account whose profile is created from seed."""
        seed = parse_seed(seed)
        if not seed.email:
            seed = seed.model_copy(update={"email": email.strip().lower()})
        self._pending_seed = seed
        try:
            self._identity.sign_up(email, password, display_name=seed.name)
        finally:
            self._pending_seed = None
        return self.state

    def login_direct(self, username: str, password: str) -> SessionState:
        """Authenticate against the REST backend only, bypassing the identity provider."""
        if not username or not username.strip():
            raise ValidationError("Username is required")
        if not password:
            raise ValidationError("Password is required")
        username = username.strip()
        profile = self._direct_profile(username)
        credentials = BackendCredentials(username=username, password=password)
        with self._lock:
            self._cache.set_credentials(credentials)
            self._cache.set_profile_snapshot(profile)
            self._last_error = None
            self._transition(SessionState.authenticated(profile, AuthMethod.DIRECT_BACKEND))
        logger.info("Direct authentication succeeded for %s (role=%s)", profile.name, profile.role.value)
        return self.state

    def logout(self) -> None:
        """End the session. Never raises.

        The state always becomes unauthenticated. Provider sign-out failures and
        cache failures are logged; a cache failure can leave credentials on disk
        until the next provider event or start() clears them.
        """
        try:
            if self.state.principal is not None or self._identity.current_principal is not None:
                self._identity.sign_out()
        except Exception as exc:
            logger.warning("Identity provider sign-out failed; clearing local session anyway: %s", exc)
        finally:
            with self._lock:
                try:
                    self._cache.clear_session()
                except Exception:
                    logger.exception("Could not clear cached session material during logout")
                self._transition(SessionState.unauthenticated())
        logger.info("Logged out")

    def refresh(self) -> RefreshOutcome:
        """Re-derive backend credentials after a 401. Single flight."""
        try:
            return self.refresh_guard.run(self._rederive)
        except InFlightError:
            logger.info("Credential refresh already in flight; short-circuiting")
            return RefreshOutcome.SHORT_CIRCUITED

    def credentials(self) -> BackendCredentials:
        """Return the backend credentials for the current session.

        Raises AuthRequiredError unless authenticated. If the cache lost the
        entry, identity-provider sessions are re-derived and direct sessions
        expire.
        """
        state = self.state
        if not state.is_authenticated:
            raise AuthRequiredError()
        credentials = self._cache.get_credentials()
        if credentials is not None:
            return credentials
        logger.warning("Authenticated session has no cached credentials; regenerating")
        if self.refresh() is RefreshOutcome.REFRESHED:
            credentials = self._cache.get_credentials()
            if credentials is not None:
                return credentials
        raise AuthExpiredError()

    def update_profile(self, update: Union[ProfileUpdate, dict]) -> UserProfile:
        """Merge update into the signed-in user's profile and publish the new state.

        A primary session running on a fallback profile has no stored document
        yet; one is created from the current profile before the update is
        applied. Store failures (NetworkError) propagate.
        """
        update = parse_update(update)
        state = self.state
        if not state.is_authenticated:
            raise AuthRequiredError()
        if state.method is AuthMethod.PRIMARY_IDENTITY_PROVIDER:
            try:
                profile = self._profiles.update_profile(state.profile.id, update)
            except ProfileNotFoundError:
                logger.info("No stored profile for %s; creating it before updating", state.profile.id)
                current = state.profile
                self._profiles.create_profile(
                    current.id, _hinted_seed(current.name, current.email, current.phone, current.role)
                )
                profile = self._profiles.update_profile(current.id, update)
        else:
            merged = state.profile.to_dict()
            merged.update(update.changes())
            profile = UserProfile.from_dict(merged)
        with self._lock:
            if self._state.profile is None or self._state.profile.id != profile.id:
                raise AuthRequiredError("The session changed while the profile was being updated.")
            self._cache.set_profile_snapshot(profile)
            self._transition(SessionState.authenticated(profile, state.method, state.principal))
        return profile

    # ------------------------------------------------------------------
    # Identity provider events
    # ------------------------------------------------------------------

    def _on_principal(self, principal: Optional[Principal]) -> None:
        if principal is None:
            with self._lock:
                self._cache.clear_session()
                self._transition(SessionState.unauthenticated())
            return

        logger.info("Identity provider reported principal %s", principal.id)
        with self._lock:
            self._transition(SessionState.resolving(principal))
        try:
            profile = self._resolve_profile(principal)
            credentials = self._credential_policy(principal, profile)
            with self._lock:
                self._cache.set_credentials(credentials)
                self._cache.set_profile_snapshot(profile)
                self._last_error = None
                self._transition(
                    SessionState.authenticated(profile, AuthMethod.PRIMARY_IDENTITY_PROVIDER, principal)
                )
        except Exception:
            logger.exception("Could not establish a session for %s", principal.id)
            with self._lock:
                self._last_error = AuthRequiredError("Authentication setup failed. Please log in again.")
                try:
                    self._cache.clear_session()
                except Exception:
                    logger.exception("Could not clear cached session material")
                self._transition(SessionState.unauthenticated())
            return
        logger.info("Session established for %s (role=%s)", profile.name, profile.role.value)

    def _resolve_profile(self, principal: Principal) -> UserProfile:
        """Fetch or create the principal's profile. Always returns a profile."""
        try:
            return self._fetch_or_create(principal)
        except ProfileResolutionError as exc:
            logger.warning("Using fallback profile for %s: %s", principal.id, exc)
            return _fallback_profile(principal)

    def _fetch_or_create(self, principal: Principal) -> UserProfile:
        try:
            return self._profiles.fetch_profile(principal.id)
        except ProfileNotFoundError:
            logger.info("No profile for %s; creating one", principal.id)
        except NetworkError as exc:
            logger.warning("Profile fetch failed for %s: %s", principal.id, exc)

        try:
            seed = self._pending_seed or _seed_from_principal(principal)
            return self._profiles.create_profile(principal.id, seed)
        except (ReliefAuthError, ValueError) as exc:
            raise ProfileResolutionError(f"profile creation failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _rederive(self) -> RefreshOutcome:
        state = self.state
        if not state.is_authenticated:
            logger.info("Refresh requested without a session")
            return RefreshOutcome.FAILED
        if state.method is not AuthMethod.PRIMARY_IDENTITY_PROVIDER or state.principal is None:
            self._expire("Direct-login credentials were rejected by the backend")
            return RefreshOutcome.FAILED
        try:
            credentials = self._credential_policy(state.principal, state.profile)
            self._cache.set_credentials(credentials)
        except Exception:
            logger.exception("Credential refresh failed for %s", state.principal.id)
            self._expire("Credential refresh failed")
            return RefreshOutcome.FAILED
        logger.info("Backend credentials refreshed for %s", state.principal.id)
        return RefreshOutcome.REFRESHED

    def _expire(self, reason: str) -> None:
        logger.warning("Session expired: %s", reason)
        with self._lock:
            self._last_error = AuthExpiredError()
            self._cache.clear_session()
            self._transition(SessionState.unauthenticated())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, new_state: SessionState) -> None:
        """Replace the state and notify listeners. Caller holds the lock."""
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("Session %s -> %s", old.status.value, new_state.status.value)
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("Session listener failed")

    def _direct_profile(self, username: str) -> UserProfile:
        if username == "user":
            name = "API User"
        else:
            name = username.split("@")[0] or "User"
        email = username if "@" in username else f"{username}@{self._settings.direct_login_domain}"
        return UserProfile(
            id=f"direct-{secrets.token_hex(8)}",
            name=name,
            email=email,
            phone="Not provided",
            role=self._role_policy(username),
        )


def _display_name(principal: Principal) -> str:
    if principal.name and principal.name.strip():
        return principal.name.strip()
    if principal.email:
        return principal.email.split("@")[0].strip() or "User"
    return "User"


def _hinted_seed(name: str, email: Optional[str], phone: Optional[str], role: Role = Role.VICTIM) -> ProfileSeed:
    """Seed built from unverified hints. An email or phone the seed model rejects is left out."""
    fields: dict = {"name": name, "role": role}
    for key, value in (("email", email), ("phone", phone)):
        if not value:
            continue
        try:
            parse_seed({**fields, key: value})
        except ValidationError:
            logger.info("Ignoring unusable %s hint for new profile", key)
            continue
        fields[key] = value
    return parse_seed(fields)


def _seed_from_principal(principal: Principal) -> ProfileSeed:
    return _hinted_seed(_display_name(principal), principal.email, principal.phone)


def _fallback_profile(principal: Principal) -> UserProfile:
    """Minimal profile from principal fields when the store cannot provide one."""
    return UserProfile(
        id=principal.id,
        name=_display_name(principal),
        email=principal.email or "unknown@email.com",
        phone=principal.phone or "Not provided",
        role=Role.VICTIM,
    )
