"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for reliefauth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. backend_base_url -> BACKEND_BASE_URL).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Used for the DEBUG-conditional service-account password: dev
      mode falls back to the development backend's password with a warning,
      production mode refuses to start without one.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
identity/, profiles/, or cache/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("reliefauth.config")

_ROOT = Path(__file__).resolve().parent.parent

# Password of the shared account in the legacy backend's development profile.
# Only ever used when DEBUG=true and nothing else is configured.
_DEV_SERVICE_PASSWORD = "disaster123"


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False

    # ------------------------------------------------------------------
    # Legacy REST backend
    # ------------------------------------------------------------------

    backend_base_url: str = "http://localhost:8080/api"
    # The backend recognizes a single service identity. Every identity-provider
    # user is mapped onto it by the default credential policy.
    service_account_username: str = "user"
    # Empty string is the sentinel for "not configured". The validator below
    # either substitutes the dev password or raises.
    service_account_password: str = ""
    # Seconds. Passed straight to requests; no operation adds its own timeout.
    request_timeout: float = 10.0
    max_redirects: int = 3

    # ------------------------------------------------------------------
    # Identity provider (Identity Toolkit REST API)
    # ------------------------------------------------------------------

    firebase_api_key: str = ""
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"

    # ------------------------------------------------------------------
    # Local persistence
    # ------------------------------------------------------------------

    credential_cache_url: str = f"sqlite:///{_ROOT / 'cache' / 'reliefauth_cache.db'}"
    profile_store_url: str = f"sqlite:///{_ROOT / 'profiles' / 'reliefauth_profiles.db'}"

    # ------------------------------------------------------------------
    # Session behaviour
    # ------------------------------------------------------------------

    # False: concurrent refresh triggers fail fast while one is in flight.
    # True: they wait for the in-flight refresh and share its outcome.
    refresh_waits_for_inflight: bool = False
    # Domain used to synthesize an email for direct logins without one.
    direct_login_domain: str = "disastermanagement.com"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_service_account(self) -> "Settings":
        """Enforce the service-account password policy.

        Dev mode (DEBUG=true): fall back to the development backend's password
            with a warning so a fresh checkout talks to a local backend.

        Production mode: refuse to start if SERVICE_ACCOUNT_PASSWORD is
            missing. Every derived credential would be rejected with 401,
            which would look like a permanent session expiry to users.
        """
        if not self.service_account_username:
            raise ValueError("SERVICE_ACCOUNT_USERNAME must not be empty.")
        if not self.service_account_password:
            if self.debug:
                self.service_account_password = _DEV_SERVICE_PASSWORD
                logger.warning("WARNING: Using the development service-account password.")
            else:
                raise ValueError(
                    "SERVICE_ACCOUNT_PASSWORD is required in production mode. "
                    "Set SERVICE_ACCOUNT_PASSWORD in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if self.request_timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
