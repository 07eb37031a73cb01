"""Bearer token creation and verification."""

from datetime import timedelta

import jwt
import pytest

from plantchat.auth import (
    authenticate_token,
    create_access_token,
    extract_bearer_token,
)
from plantchat.core.config import settings
from plantchat.core.enums import IdentityType
from plantchat.core.exceptions import TransportAuthException


class TestAuthenticateToken:
    def test_valid_token_resolves_identity(self):
        token = create_access_token("c1", IdentityType.CONSUMER, email="sam@example.com")

        current = authenticate_token(token)

        assert current.id == "c1"
        assert current.type is IdentityType.CONSUMER
        assert current.identity.key == "consumer:c1"
        assert current.email == "sam@example.com"

    def test_missing_token_rejected(self):
        with pytest.raises(TransportAuthException):
            authenticate_token(None)

    def test_garbage_token_rejected(self):
        with pytest.raises(TransportAuthException):
            authenticate_token("not-a-jwt")

    def test_expired_token_rejected(self):
        token = create_access_token("o1", IdentityType.OWNER, expires_delta=timedelta(seconds=-5))
        with pytest.raises(TransportAuthException):
            authenticate_token(token)

    def test_token_signed_with_other_key_rejected(self):
        token = jwt.encode({"sub": "o1", "type": "owner"}, "another-key", algorithm=settings.algorithm)
        with pytest.raises(TransportAuthException):
            authenticate_token(token)

    def test_unknown_identity_type_rejected(self):
        token = jwt.encode(
            {"sub": "x1", "type": "gardener"},
            settings.secret_key.get_secret_value(),
            algorithm=settings.algorithm,
        )
        with pytest.raises(TransportAuthException):
            authenticate_token(token)

    def test_missing_subject_rejected(self):
        token = jwt.encode(
            {"type": "consumer"},
            settings.secret_key.get_secret_value(),
            algorithm=settings.algorithm,
        )
        with pytest.raises(TransportAuthException):
            authenticate_token(token)


class TestExtractBearerToken:
    def test_query_parameter_wins(self):
        assert extract_bearer_token({"token": "q"}, {"authorization": "Bearer h"}) == "q"

    def test_authorization_header(self):
        assert extract_bearer_token({}, {"authorization": "Bearer abc.def"}) == "abc.def"

    def test_other_schemes_ignored(self):
        assert extract_bearer_token({}, {"authorization": "Basic Zm9vOmJhcg=="}) is None
        assert extract_bearer_token({}, {}) is None
