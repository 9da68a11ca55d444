"""
cache/store.py -- Durable key/value cache for session material.

Holds the derived REST credentials and a snapshot of the signed-in user's
profile so both survive a process restart. The UI layer may read the profile
snapshot on a cold start for convenience; only the session coordinator writes
the credentials key.

Two logical keys:
    credentials -> {"username": ..., "password": ...}
    profile     -> UserProfile.to_dict() snapshot

Usage:
    cache = CredentialCache()
    cache.set_credentials(BackendCredentials("user", "secret"))
    creds = cache.get_credentials()      # BackendCredentials or None
    cache.clear_session()                # logout path
    cache.close()

Single writer, so there is no locking here. Encryption at rest is out of scope.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, delete, select
from sqlalchemy.engine import Engine

from core.db import make_engine
from core.models import BackendCredentials, UserProfile

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'reliefauth_cache.db'}"

CREDENTIALS_KEY = "credentials"
PROFILE_KEY = "profile"

_metadata = MetaData()

_entries = Table(
    "credential_cache",
    _metadata,
    Column("key", String(64), primary_key=True),
    Column("value", Text, nullable=False),  # JSON
    Column("updated_at", String(32), nullable=False),
)


class CredentialCache:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Raw key/value access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value stored under key, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_entries.c.value).where(_entries.c.key == key)).fetchone()
        return json.loads(row.value) if row is not None else None

    def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any existing entry."""
        now = datetime.now(timezone.utc).isoformat()
        payload = json.dumps(value)
        with self.engine.begin() as conn:
            conn.execute(delete(_entries).where(_entries.c.key == key))
            conn.execute(_entries.insert().values(key=key, value=payload, updated_at=now))

    def delete(self, key: str) -> bool:
        """Remove key. Returns True if an entry was deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(delete(_entries).where(_entries.c.key == key))
            conn.commit()
        return result.rowcount > 0

    def clear(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(delete(_entries))
            conn.commit()

    def keys(self) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_entries.c.key).order_by(_entries.c.key)).fetchall()
        return [r.key for r in rows]

    # ------------------------------------------------------------------
    # Typed helpers for the two logical keys
    # ------------------------------------------------------------------

    def get_credentials(self) -> Optional[BackendCredentials]:
        data = self.get(CREDENTIALS_KEY)
        return BackendCredentials.from_dict(data) if isinstance(data, dict) else None

    def set_credentials(self, credentials: BackendCredentials) -> None:
        self.set(CREDENTIALS_KEY, credentials.to_dict())

    def get_profile_snapshot(self) -> Optional[UserProfile]:
        data = self.get(PROFILE_KEY)
        return UserProfile.from_dict(data) if isinstance(data, dict) else None

    def set_profile_snapshot(self, profile: UserProfile) -> None:
        self.set(PROFILE_KEY, profile.to_dict())

    def clear_session(self) -> None:
        """Drop both session keys. Used on logout and identity-provider sign-out."""
        self.delete(CREDENTIALS_KEY)
        self.delete(PROFILE_KEY)

    def close(self) -> None:
        self.engine.dispose()
