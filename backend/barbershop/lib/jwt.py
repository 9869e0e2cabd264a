"""JWT token generation and validation utilities.

Uses the algorithm and secret from settings.
Tokens carry the standard claims (exp, iat, sub) plus the caller's role and,
for staff, the barber or shop they act for.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from barbershop.lib.settings import settings


def create_access_token(
    user_id: str,
    role: str,
    barber_id: Optional[str] = None,
    shop_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: UUID of the user (stored in 'sub' claim)
        role: CUSTOMER, BARBER, SHOP_OWNER or ADMIN
        barber_id: Barber profile id for BARBER tokens
        shop_id: Owned shop id for SHOP_OWNER tokens
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    if barber_id:
        payload["barber_id"] = str(barber_id)
    if shop_id:
        payload["shop_id"] = str(shop_id)

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        jwt.InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
