"""Unit tests for JWT access/refresh tokens."""

from datetime import timedelta

import pytest
from jose import JWTError

from app.auth.jwt import (
    ACCESS,
    REFRESH,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
)


class TestTokenClaims:
    def test_access_token_claims(self):
        payload = decode_token(create_access_token({"sub": "user-abc"}))
        assert payload["sub"] == "user-abc"
        assert payload["type"] == ACCESS
        assert "iat" in payload
        assert "exp" in payload

    def test_refresh_token_type(self):
        payload = decode_token(create_refresh_token({"sub": "user-xyz"}))
        assert payload["type"] == REFRESH
        assert payload["sub"] == "user-xyz"

    def test_refresh_outlives_access(self):
        access = decode_token(create_access_token({"sub": "u"}))
        refresh = decode_token(create_refresh_token({"sub": "u"}))
        assert refresh["exp"] > access["exp"]

    def test_input_dict_not_mutated(self):
        data = {"sub": "user-1"}
        create_access_token(data)
        assert data == {"sub": "user-1"}


class TestDecodeToken:
    def test_expired_token_raises(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    @pytest.mark.parametrize("token", ["not.a.valid.token", ""])
    def test_garbage_raises(self, token):
        with pytest.raises(JWTError):
            decode_token(token)


class TestCreateTokenPair:
    def test_pair_shape(self):
        pair = create_token_pair("user-123")
        assert pair["token_type"] == "bearer"
        assert decode_token(pair["access_token"])["type"] == ACCESS
        assert decode_token(pair["refresh_token"])["type"] == REFRESH
        assert decode_token(pair["refresh_token"])["sub"] == "user-123"
