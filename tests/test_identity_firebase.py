"""Unit tests for identity/firebase.py -- Identity Toolkit REST adapter.

The requests session is mocked; ID tokens are real HS256 JWTs built with
python-jose so the claim-reading path runs for real.
"""

from unittest.mock import MagicMock

import pytest
import requests
from jose import jwt

from core.errors import IdentityProviderError, NetworkError, ValidationError, user_message
from core.models import Principal
from identity.firebase import FirebaseIdentityProvider


def _response(status: int, body: dict) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    return resp


def _id_token(**claims) -> str:
    return jwt.encode({"sub": "uid-1", **claims}, "test-signing-key", algorithm="HS256")


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def provider(session):
    return FirebaseIdentityProvider("test-key", base_url="https://idp.test/v1", session=session)


class TestSignIn:
    def test_emits_principal_with_phone_claim(self, provider, session):
        session.post.return_value = _response(
            200,
            {
                "localId": "uid-1",
                "email": "a@x.com",
                "displayName": "Asha",
                "idToken": _id_token(phone_number="+15551234567"),
            },
        )
        seen: list = []
        provider.subscribe(seen.append)

        principal = provider.sign_in("a@x.com", "pw")

        assert principal == Principal(id="uid-1", email="a@x.com", name="Asha", phone="+15551234567")
        assert seen == [None, principal]
        assert provider.current_principal == principal
        url = session.post.call_args.args[0]
        assert url == "https://idp.test/v1/accounts:signInWithPassword"
        assert session.post.call_args.kwargs["params"] == {"key": "test-key"}

    def test_unreadable_token_still_signs_in(self, provider, session):
        session.post.return_value = _response(200, {"localId": "uid-1", "email": "a@x.com", "idToken": "garbage"})
        principal = provider.sign_in("a@x.com", "pw")
        assert principal.phone is None

    @pytest.mark.parametrize(
        "raw,code",
        [
            ("EMAIL_NOT_FOUND", "EMAIL_NOT_FOUND"),
            ("INVALID_LOGIN_CREDENTIALS", "INVALID_LOGIN_CREDENTIALS"),
            ("TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled", "TOO_MANY_ATTEMPTS_TRY_LATER"),
        ],
    )
    def test_provider_errors_map_to_codes(self, provider, session, raw, code):
        session.post.return_value = _response(400, {"error": {"code": 400, "message": raw}})

        with pytest.raises(IdentityProviderError) as exc_info:
            provider.sign_in("a@x.com", "pw")

        assert exc_info.value.code == code
        assert user_message(exc_info.value) == str(exc_info.value)
        assert provider.current_principal is None

    def test_unknown_error_code_gets_generic_message(self, provider, session):
        session.post.return_value = _response(400, {"error": {"message": "SOMETHING_NEW"}})
        with pytest.raises(IdentityProviderError, match="Authentication failed"):
            provider.sign_in("a@x.com", "pw")

    def test_transport_failure_is_network_error(self, provider, session):
        session.post.side_effect = requests.ConnectionError("dns failure")
        with pytest.raises(NetworkError):
            provider.sign_in("a@x.com", "pw")

    @pytest.mark.parametrize("email,password", [("", "pw"), ("a@x.com", "")])
    def test_missing_input_makes_no_call(self, provider, session, email, password):
        with pytest.raises(ValidationError):
            provider.sign_in(email, password)
        session.post.assert_not_called()


class TestSignUp:
    def test_sets_display_name(self, provider, session):
        session.post.side_effect = [
            _response(200, {"localId": "uid-2", "email": "b@x.com", "idToken": _id_token()}),
            _response(200, {"localId": "uid-2", "displayName": "Bea"}),
        ]

        principal = provider.sign_up("b@x.com", "pw123456", display_name="Bea")

        assert principal.name == "Bea"
        actions = [c.args[0].rsplit("/", 1)[1] for c in session.post.call_args_list]
        assert actions == ["accounts:signUp", "accounts:update"]

    def test_weak_password(self, provider, session):
        session.post.return_value = _response(
            400, {"error": {"message": "WEAK_PASSWORD : Password should be at least 6 characters"}}
        )
        with pytest.raises(IdentityProviderError) as exc_info:
            provider.sign_up("b@x.com", "123")
        assert exc_info.value.code == "WEAK_PASSWORD"


class TestSignOut:
    def test_emits_none(self, provider, session):
        session.post.return_value = _response(200, {"localId": "uid-1", "email": "a@x.com"})
        seen: list = []
        provider.sign_in("a@x.com", "pw")
        provider.subscribe(seen.append)

        provider.sign_out()

        assert seen[-1] is None
        assert provider.current_principal is None

    def test_unsubscribe(self, provider):
        seen: list = []
        unsubscribe = provider.subscribe(seen.append)
        unsubscribe()
        provider.sign_out()
        assert seen == [None]


def test_api_key_is_required():
    with pytest.raises(ValueError):
        FirebaseIdentityProvider("")
