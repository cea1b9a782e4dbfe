"""Tests for acting-user resolution (JWT → headers → default)."""

import datetime as dt

import jwt

from calendario.auth import (
    DEFAULT_USERNAME,
    bearer_token,
    get_acting_user_identity,
    identity_from_claims,
)
from calendario.services.calendar_types import ActingUser

SECRET = "test-jwt-secret-for-the-calendar-suite"


def _token(claims, secret=SECRET, **exp):
    payload = dict(claims)
    if exp:
        payload["exp"] = dt.datetime.now(dt.timezone.utc) + dt.timedelta(**exp)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestIdentityFromClaims:
    def test_numeross_preferred(self):
        user = identity_from_claims({"numeross": 1234, "username": "ana", "codSubDepar": "SD07"})
        assert user == ActingUser("1234", "SD07")

    def test_falls_back_to_sub(self):
        assert identity_from_claims({"sub": "u-9"}) == ActingUser("u-9", None)

    def test_no_usable_claim(self):
        assert identity_from_claims({"role": "admin"}) is None


class TestGetActingUserIdentity:
    def test_valid_jwt(self, app):
        token = _token({"username": "ana", "codSubDepar": "SD07"}, hours=1)
        with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
            assert bearer_token() == token
            assert get_acting_user_identity() == ActingUser("ana", "SD07")

    def test_bad_signature_falls_back_to_headers(self, app):
        token = _token({"username": "mallory"}, secret="other-secret-key-with-enough-length")
        headers = {"Authorization": f"Bearer {token}", "X-User": "luis", "X-SubDepartment": "SD02"}
        with app.test_request_context(headers=headers):
            assert get_acting_user_identity() == ActingUser("luis", "SD02")

    def test_expired_token_ignored(self, app):
        token = _token({"username": "ana"}, seconds=-30)
        with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
            assert get_acting_user_identity().username == DEFAULT_USERNAME

    def test_default_outside_request(self):
        assert get_acting_user_identity() == ActingUser(DEFAULT_USERNAME)

    def test_non_bearer_header_ignored(self, app):
        with app.test_request_context(headers={"Authorization": "Basic abc"}):
            assert bearer_token() is None
