"""
core/models.py -- Domain dataclasses for sessions, principals, and profiles.

Pattern: Data class (pure data containers). Stores and the coordinator do the
work; these types only own shape and the invariants a value must satisfy to
exist at all.

Everything here is frozen. Listeners receive SessionState snapshots directly,
so a snapshot must not change after it has been handed out.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    VICTIM = "victim"
    VOLUNTEER = "volunteer"
    MONITOR = "monitoring"


class AuthMethod(str, Enum):
    PRIMARY_IDENTITY_PROVIDER = "identity_provider"
    DIRECT_BACKEND = "direct_backend"


class SessionStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Principal:
    """The identity provider's view of a signed-in entity: opaque id plus hints."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class BackendCredentials:
    """Username/password pair for the legacy REST service's Basic auth."""

    username: str
    password: str = field(repr=False)

    def as_auth(self) -> tuple[str, str]:
        """Return the (username, password) tuple requests expects for Basic auth."""
        return self.username, self.password

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "password": self.password}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["BackendCredentials"]:
        """Rebuild from the cached form. Returns None if either half is missing."""
        username = data.get("username")
        password = data.get("password")
        if not username or not password:
            return None
        return cls(username=username, password=password)


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: str
    email: str
    phone: str
    role: Role
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    location: Optional[dict] = None  # {"latitude", "longitude", "address"?}
    profile_image: Optional[str] = None

    # Victim
    emergency_contacts: tuple[str, ...] = ()
    medical_info: Optional[str] = None

    # Volunteer
    certifications: tuple[dict, ...] = ()
    police_verification: Optional[dict] = None
    rating: Optional[float] = None
    total_ratings: Optional[int] = None
    specializations: tuple[str, ...] = ()
    availability: Optional[bool] = None

    # Monitor
    permissions: tuple[str, ...] = ()
    department: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict. Tuples become lists, the role becomes its string value."""
        data = asdict(self)
        data["role"] = self.role.value
        for name in _SEQUENCE_FIELDS:
            data[name] = list(data[name])
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        """Build a profile from a stored document. Unknown keys are ignored."""
        known = {k: v for k, v in data.items() if k in _FIELD_NAMES}
        known["role"] = Role(known.get("role") or Role.VICTIM.value)
        for name in _SEQUENCE_FIELDS:
            if known.get(name) is not None:
                known[name] = tuple(known[name])
            else:
                known.pop(name, None)
        return cls(**known)


_FIELD_NAMES = frozenset(f.name for f in fields(UserProfile))
_SEQUENCE_FIELDS = ("emergency_contacts", "certifications", "specializations", "permissions")


@dataclass(frozen=True)
class SessionState:
    """One of unauthenticated, resolving, or authenticated.

    Use the classmethod constructors. An authenticated state without a profile
    and method cannot be built, so observers never see a half-made session.
    """

    status: SessionStatus
    profile: Optional[UserProfile] = None
    method: Optional[AuthMethod] = None
    principal: Optional[Principal] = None

    def __post_init__(self) -> None:
        if self.status is SessionStatus.AUTHENTICATED:
            if self.profile is None or self.method is None:
                raise ValueError("An authenticated session needs both a profile and a method.")
        elif self.profile is not None or self.method is not None:
            raise ValueError(f"A {self.status.value} session carries no profile or method.")
        if self.status is SessionStatus.RESOLVING and self.principal is None:
            raise ValueError("A resolving session needs the principal being resolved.")

    @classmethod
    def unauthenticated(cls) -> "SessionState":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @classmethod
    def resolving(cls, principal: Principal) -> "SessionState":
        return cls(status=SessionStatus.RESOLVING, principal=principal)

    @classmethod
    def authenticated(
        cls, profile: UserProfile, method: AuthMethod, principal: Optional[Principal] = None
    ) -> "SessionState":
        return cls(status=SessionStatus.AUTHENTICATED, profile=profile, method=method, principal=principal)

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED
