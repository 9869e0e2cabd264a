"""Tests for JWT utilities."""
from datetime import timedelta

import jwt
import pytest
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from barbershop.lib.jwt import create_access_token, verify_token
from barbershop.lib.settings import settings


USER_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.mark.unit
def test_create_and_verify_token():
    token = create_access_token(USER_ID, "CUSTOMER")

    payload = verify_token(token)
    assert payload["sub"] == USER_ID
    assert payload["role"] == "CUSTOMER"
    assert "iat" in payload
    assert "exp" in payload
    assert "barber_id" not in payload


@pytest.mark.unit
def test_staff_claims_are_included():
    token = create_access_token(USER_ID, "BARBER", barber_id="b-1")
    assert verify_token(token)["barber_id"] == "b-1"

    token = create_access_token(USER_ID, "SHOP_OWNER", shop_id="s-1")
    assert verify_token(token)["shop_id"] == "s-1"


@pytest.mark.unit
def test_expired_token():
    token = create_access_token(USER_ID, "CUSTOMER", expires_delta=timedelta(seconds=-1))

    with pytest.raises(ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_invalid_signature():
    forged = jwt.encode({"sub": USER_ID, "role": "ADMIN"}, "wrong-secret", algorithm="HS256")

    with pytest.raises(InvalidTokenError):
        verify_token(forged)


@pytest.mark.unit
def test_missing_expiry_is_rejected():
    token = jwt.encode({"sub": USER_ID}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(InvalidTokenError):
        verify_token(token)


@pytest.mark.unit
def test_malformed_token():
    with pytest.raises(InvalidTokenError):
        verify_token("not.a.token")
