"""Tests for bearer token issuing and verification."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi.security import HTTPAuthorizationCredentials
from identity.auth import (
    Principal,
    create_access_token,
    decode_access_token,
    get_current_admin,
    get_current_user,
)
from shared.config import Settings
from shared.exceptions import AuthenticationError, PermissionDenied

SETTINGS = Settings(jwt_secret="unit-test-secret-0123456789abcdef")


class TestTokens:
    def test_round_trip(self):
        token = create_access_token("user-42", settings=SETTINGS)
        assert decode_access_token(token, settings=SETTINGS) == Principal(user_id="user-42", is_admin=False)

    def test_admin_flag_is_carried(self):
        token = create_access_token("admin-1", is_admin=True, settings=SETTINGS)
        assert decode_access_token(token, settings=SETTINGS).is_admin is True

    def test_expired_token(self):
        token = create_access_token("user-42", expires_delta=timedelta(seconds=-1), settings=SETTINGS)
        with pytest.raises(AuthenticationError) as exc:
            decode_access_token(token, settings=SETTINGS)
        assert exc.value.message == "Token expired"

    def test_token_signed_with_another_secret(self):
        token = create_access_token("user-42", settings=Settings(jwt_secret="someone-elses-secret-0123456789abcdef"))
        with pytest.raises(AuthenticationError) as exc:
            decode_access_token(token, settings=SETTINGS)
        assert exc.value.message == "Invalid authentication"

    def test_garbage_token(self):
        with pytest.raises(AuthenticationError):
            decode_access_token("not-a-jwt", settings=SETTINGS)

    def test_token_without_subject(self):
        token = jwt.encode(
            {"exp": datetime.now(UTC) + timedelta(minutes=5)},
            SETTINGS.jwt_secret,
            algorithm=SETTINGS.jwt_algorithm,
        )
        with pytest.raises(AuthenticationError) as exc:
            decode_access_token(token, settings=SETTINGS)
        assert exc.value.message == "Invalid token"


class TestDependencies:
    def test_missing_credentials(self):
        with pytest.raises(AuthenticationError) as exc:
            get_current_user(None)
        assert exc.value.message == "Not authorized, no token"
        assert exc.value.status_code == 401

    def test_bearer_credentials_resolve_principal(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=create_access_token("user-7"))
        assert get_current_user(credentials).user_id == "user-7"

    def test_non_admin_is_forbidden(self):
        with pytest.raises(PermissionDenied) as exc:
            get_current_admin(Principal(user_id="user-7"))
        assert exc.value.status_code == 403

    def test_admin_passes(self):
        admin = Principal(user_id="admin-1", is_admin=True)
        assert get_current_admin(admin) is admin
