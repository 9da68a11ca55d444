"""Unit tests for profiles/store.py and profiles/models.py.

Covers:
- create then fetch returns an equal profile
- fetch of an unknown id raises ProfileNotFoundError
- update_profile merges only explicitly set fields
- switch_role writes the role plus role-specific fields
- input validation surfaces as core ValidationError
- every read and write mirrors the snapshot into the credential cache
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from core.errors import NetworkError, ProfileNotFoundError, ValidationError
from core.models import Role
from profiles.models import ProfileSeed, ProfileUpdate, parse_seed, parse_update


class TestCreateAndFetch:
    def test_round_trip(self, profiles):
        created = profiles.create_profile(
            "uid-1",
            ProfileSeed(name="Asha", email="asha@example.org", phone="+1 555 123 4567", role=Role.VOLUNTEER),
        )
        fetched = profiles.fetch_profile("uid-1")

        assert fetched == created
        assert fetched.role is Role.VOLUNTEER
        assert fetched.is_active is True
        assert fetched.created_at is not None

    def test_create_accepts_plain_dict(self, profiles):
        created = profiles.create_profile("uid-2", {"name": "Ravi", "role": "monitoring", "department": "Ops"})
        assert created.role is Role.MONITOR
        assert created.department == "Ops"

    def test_fetch_unknown_raises_not_found(self, profiles):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            profiles.fetch_profile("ghost")
        assert exc_info.value.profile_id == "ghost"

    def test_duplicate_create_is_a_validation_error(self, profiles):
        profiles.create_profile("uid-1", ProfileSeed(name="Asha"))
        with pytest.raises(ValidationError):
            profiles.create_profile("uid-1", ProfileSeed(name="Asha again"))

    def test_unreachable_database_is_a_network_error(self, profiles):
        failure = OperationalError("SELECT", {}, Exception("unable to open database file"))
        with patch.object(profiles.engine, "connect", side_effect=failure):
            with pytest.raises(NetworkError):
                profiles.fetch_profile("uid-1")

    def test_fetch_mirrors_snapshot_into_cache(self, profiles, cache):
        profiles.create_profile("uid-1", ProfileSeed(name="Asha"))
        cache.clear()
        profile = profiles.fetch_profile("uid-1")
        assert cache.get_profile_snapshot() == profile


class TestUpdate:
    def test_merge_keeps_untouched_fields(self, profiles):
        profiles.create_profile(
            "uid-1",
            ProfileSeed(name="Asha", email="asha@example.org", role=Role.VOLUNTEER, specializations=["boats"]),
        )

        merged = profiles.update_profile("uid-1", ProfileUpdate(availability=True))

        assert merged.availability is True
        assert merged.name == "Asha"
        assert merged.email == "asha@example.org"
        assert merged.specializations == ("boats",)
        assert profiles.fetch_profile("uid-1") == merged

    def test_explicit_none_clears_a_field(self, profiles):
        profiles.create_profile("uid-1", ProfileSeed(name="Asha", medical_info="asthma"))
        merged = profiles.update_profile("uid-1", {"medical_info": None})
        assert merged.medical_info is None

    def test_update_unknown_raises_not_found(self, profiles):
        with pytest.raises(ProfileNotFoundError):
            profiles.update_profile("ghost", ProfileUpdate(name="Nobody"))

    def test_switch_role_with_extra_fields(self, profiles):
        profiles.create_profile("uid-1", ProfileSeed(name="Asha"))
        switched = profiles.switch_role(
            "uid-1", Role.VOLUNTEER, {"specializations": ["medic"], "availability": True}
        )
        assert switched.role is Role.VOLUNTEER
        assert switched.specializations == ("medic",)
        assert switched.availability is True

    def test_update_bumps_updated_at(self, profiles):
        created = profiles.create_profile("uid-1", ProfileSeed(name="Asha"))
        merged = profiles.update_profile("uid-1", ProfileUpdate(name="Asha K"))
        assert merged.created_at == created.created_at
        assert merged.updated_at >= created.updated_at


class TestInputModels:
    def test_seed_rejects_bad_email(self):
        with pytest.raises(ValidationError, match="email"):
            parse_seed({"name": "Asha", "email": "not-an-email"})

    def test_seed_rejects_short_phone(self):
        with pytest.raises(ValidationError, match="phone"):
            parse_seed({"name": "Asha", "phone": "123"})

    def test_seed_rejects_blank_name(self):
        with pytest.raises(ValidationError):
            parse_seed({"name": "   "})

    def test_seed_normalizes_email(self):
        assert parse_seed({"email": " Asha@Example.ORG "}).email == "asha@example.org"

    def test_update_rejects_unknown_field(self):
        with pytest.raises(ValidationError):
            parse_update({"favourite_colour": "red"})

    def test_update_rating_bounds(self):
        with pytest.raises(ValidationError):
            parse_update({"rating": 7})

    def test_changes_contains_only_set_fields(self):
        assert ProfileUpdate(availability=False).changes() == {"availability": False}

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_update({"total_ratings": -1})
