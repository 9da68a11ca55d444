"""
profiles/models.py -- Typed input models for profile creation and partial updates.

These Pydantic v2 models define what callers may write into a profile
document. They are intentionally separate from core.models.UserProfile, which
owns the stored representation; the store maps between the two.

ProfileUpdate is the typed partial-update structure: every field is optional
and only fields the caller explicitly set are merged (exclude_unset), so
"not provided" and "set to None" stay distinguishable.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.models import Role

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[+]?[\d\s\-()]{10,}$")


def _check_email(value: Optional[str]) -> Optional[str]:
    if value:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address")
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value:
        value = value.strip()
        if not _PHONE_RE.match(value):
            raise ValueError("Please enter a valid phone number (at least 10 digits)")
    return value


class ProfileSeed(BaseModel):
    """Initial values for a new profile document.

    Empty email and phone are allowed: identity-provider principals do not
    always carry them, and profile creation must not fail for that reason.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="User", min_length=1, max_length=255)
    email: str = ""
    phone: str = ""
    role: Role = Role.VICTIM
    location: Optional[dict] = None
    emergency_contacts: list[str] = Field(default_factory=list)
    medical_info: Optional[str] = None
    specializations: list[str] = Field(default_factory=list)
    department: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Full name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: str) -> str:
        return _check_phone(v)


class ProfileUpdate(BaseModel):
    """Partial update. Only explicitly set fields are written."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    location: Optional[dict] = None
    profile_image: Optional[str] = None
    emergency_contacts: Optional[list[str]] = None
    medical_info: Optional[str] = None
    certifications: Optional[list[dict]] = None
    police_verification: Optional[dict] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    total_ratings: Optional[int] = Field(default=None, ge=0)
    specializations: Optional[list[str]] = None
    availability: Optional[bool] = None
    permissions: Optional[list[str]] = None
    department: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Full name is required")
        return v.strip() if v is not None else v

    @field_validator("email")
    @classmethod
    def email_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller set, JSON-ready."""
        return self.model_dump(mode="json", exclude_unset=True)


def parse_seed(data: Union[ProfileSeed, dict]) -> ProfileSeed:
    """Coerce caller input to a ProfileSeed, raising ValidationError on bad input."""
    if isinstance(data, ProfileSeed):
        return data
    try:
        return ProfileSeed.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_first_message(exc)) from exc


def parse_update(data: Union[ProfileUpdate, dict]) -> ProfileUpdate:
    """Coerce caller input to a ProfileUpdate, raising ValidationError on bad input."""
    if isinstance(data, ProfileUpdate):
        return data
    try:
        return ProfileUpdate.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_first_message(exc)) from exc


def _first_message(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    message = first.get("msg", "Invalid value").removeprefix("Value error, ")
    return f"{field}: {message}" if field else message
