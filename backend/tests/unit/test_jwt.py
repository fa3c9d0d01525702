"""Tests for JWT utilities."""
from datetime import timedelta

import pytest
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from salonbook.lib.jwt import create_access_token, get_user_from_token, verify_token

USER_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.mark.unit
def test_create_and_verify_token():
    token = create_access_token(USER_ID, "OWNER")

    payload = verify_token(token)
    assert payload["sub"] == USER_ID
    assert payload["role"] == "OWNER"
    assert "iat" in payload
    assert "exp" in payload


@pytest.mark.unit
def test_get_user_from_token():
    token = create_access_token(USER_ID, "CUSTOMER")

    assert get_user_from_token(token) == (USER_ID, "CUSTOMER")


@pytest.mark.unit
def test_expired_token_rejected():
    token = create_access_token(USER_ID, "CUSTOMER", expires_delta=timedelta(seconds=-1))

    with pytest.raises(ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_tampered_token_rejected():
    token = create_access_token(USER_ID, "CUSTOMER")
    header, payload, signature = token.split(".")
    tampered = f"{header}.{payload}.{signature[::-1]}"

    with pytest.raises(InvalidTokenError):
        verify_token(tampered)
