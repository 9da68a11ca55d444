"""
auth/credentials.py -- Credential derivation and role inference policies.

The legacy REST backend recognizes exactly one service identity. Every
identity-provider user is therefore mapped onto that one shared account.
This is a compatibility shim for the backend, kept behind the
CredentialPolicy type so a per-user mapping can replace it without touching
the session coordinator.

Direct logins have no profile document to read a role from, so a role is
inferred from the username. The shipped heuristic (substring "admin" means
monitor) is placeholder behaviour whose intent has never been confirmed;
it is kept as-is behind RolePolicy.

Layer rule: no imports from api/, identity/, profiles/, or cache/.
"""

from __future__ import annotations

from typing import Callable, Optional

from core.config import Settings, get_settings
from core.models import BackendCredentials, Principal, Role, UserProfile

CredentialPolicy = Callable[[Principal, UserProfile], BackendCredentials]
RolePolicy = Callable[[str], Role]


def shared_service_account(username: str, password: str) -> CredentialPolicy:
    """Return a policy that maps every principal to the same backend account."""
    credentials = BackendCredentials(username=username, password=password)

    def derive(principal: Principal, profile: UserProfile) -> BackendCredentials:
        return credentials

    return derive


def default_credential_policy(settings: Optional[Settings] = None) -> CredentialPolicy:
    cfg = settings or get_settings()
    return shared_service_account(cfg.service_account_username, cfg.service_account_password)


def infer_role_from_username(username: str) -> Role:
    """Monitor if the username contains "admin", victim otherwise."""
    return Role.MONITOR if "admin" in username else Role.VICTIM
