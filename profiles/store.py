"""
profiles/store.py -- SQLAlchemy Core document store for user profiles.

Pattern: Repository + Data Mapper. ProfileStore is the repository; the stored
JSON document is mapped to core.models.UserProfile by _row_to_profile. The
session coordinator never touches SQL directly.

Documents are keyed by the identity provider's principal id. Updates merge
into the stored document (only fields the caller set), they never replace it.

Every successful read or write is mirrored into the credential cache's
profile key so the UI can render the signed-in user offline.

Connectivity failures (OperationalError) surface as core.errors.NetworkError:
with a remote database URL they are exactly that, and the coordinator treats
them the same way as an unreachable hosted document store.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import Column, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from cache.store import CredentialCache
from core.db import make_engine
from core.errors import NetworkError, ProfileNotFoundError, ValidationError
from core.models import Role, UserProfile
from profiles.models import ProfileSeed, ProfileUpdate, parse_seed, parse_update

logger = logging.getLogger("reliefauth.profiles")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'reliefauth_profiles.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_profiles = Table(
    "profiles",
    _metadata,
    Column("id", String(128), primary_key=True),
    Column("document", Text, nullable=False),  # JSON UserProfile
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProfileStore:
    """Repository for UserProfile documents.

    Usage:
        store = ProfileStore(cache=CredentialCache())
        profile = store.create_profile("uid-1", ProfileSeed(name="Asha", role=Role.VOLUNTEER))
        store.update_profile("uid-1", ProfileUpdate(availability=True))
        profile = store.fetch_profile("uid-1")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, cache: Optional[CredentialCache] = None) -> None:
        self.engine: Engine = make_engine(db_url)
        self._cache = cache
        _metadata.create_all(self.engine)

    def fetch_profile(self, profile_id: str) -> UserProfile:
        """Return the stored profile. Raises ProfileNotFoundError or NetworkError."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_profiles.select().where(_profiles.c.id == profile_id)).fetchone()
        except OperationalError as exc:
            raise NetworkError(f"Profile store unavailable: {exc.orig}") from exc
        if row is None:
            raise ProfileNotFoundError(profile_id)
        profile = _row_to_profile(row)
        self._mirror(profile)
        return profile

    def create_profile(self, profile_id: str, seed: Union[ProfileSeed, dict]) -> UserProfile:
        """Insert a new document built from seed and return it.

        Raises ValidationError for bad seed data or an id that already exists.
        """
        seed = parse_seed(seed)
        now = _now_iso()
        document = seed.model_dump(mode="json")
        document.update(id=profile_id, is_active=True, created_at=now, updated_at=now)
        profile = UserProfile.from_dict(document)
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _profiles.insert().values(
                        id=profile_id,
                        document=json.dumps(profile.to_dict()),
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ValidationError(f"A profile already exists for id {profile_id!r}") from exc
        except OperationalError as exc:
            raise NetworkError(f"Profile store unavailable: {exc.orig}") from exc
        logger.info("Created profile %s (role=%s)", profile_id, profile.role.value)
        self._mirror(profile)
        return profile

    def update_profile(self, profile_id: str, update: Union[ProfileUpdate, dict]) -> UserProfile:
        """Merge the explicitly set fields of update into the stored document.

        Returns the merged profile. Raises ProfileNotFoundError if no document
        exists for profile_id.
        """
        changes = parse_update(update).changes()
        try:
            with self.engine.begin() as conn:
                row = conn.execute(select(_profiles.c.document).where(_profiles.c.id == profile_id)).fetchone()
                if row is None:
                    raise ProfileNotFoundError(profile_id)
                document = json.loads(row.document)
                now = _now_iso()
                document.update(changes)
                document.update(id=profile_id, updated_at=now)
                profile = UserProfile.from_dict(document)
                conn.execute(
                    _profiles.update()
                    .where(_profiles.c.id == profile_id)
                    .values(document=json.dumps(profile.to_dict()), updated_at=now)
                )
        except OperationalError as exc:
            raise NetworkError(f"Profile store unavailable: {exc.orig}") from exc
        self._mirror(profile)
        return profile

    def switch_role(self, profile_id: str, role: Role, extra: Union[ProfileUpdate, dict, None] = None) -> UserProfile:
        """Change a profile's role, optionally writing role-specific fields alongside it."""
        changes = parse_update(extra).changes() if extra is not None else {}
        changes["role"] = role
        return self.update_profile(profile_id, changes)

    def _mirror(self, profile: UserProfile) -> None:
        if self._cache is not None:
            self._cache.set_profile_snapshot(profile)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_profile(row) -> UserProfile:
    document = json.loads(row.document)
    document.setdefault("id", row.id)
    document.setdefault("created_at", row.created_at)
    document.setdefault("updated_at", row.updated_at)
    return UserProfile.from_dict(document)
