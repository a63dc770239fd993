"""Security utilities for authentication and authorization.

Debates and surveys are owned through a per-item admin password. Verifying the
password yields a short-lived owner token scoped to that single item; the site
operator authenticates separately and receives an operator token.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from core.config import settings

# Token issuer and audience for validation
TOKEN_ISSUER = "tally-api"
TOKEN_AUDIENCE = "tally-client"

DEBATE_ADMIN_TOKEN = "debate_admin"
SURVEY_ADMIN_TOKEN = "survey_admin"
OPERATOR_TOKEN = "operator"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)


def hash_password(password: str) -> str:
    """Hash an admin password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check a candidate password against a stored bcrypt hash."""
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Malformed stored hash
        return False


def _create_token_base(
    data: dict[str, Any],
    token_type: str,
    expires_delta: timedelta,
) -> str:
    """Create a JWT token with standard claims."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + expires_delta
    to_encode.update(
        {
            "exp": expire,
            "iat": now,
            "type": token_type,
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "jti": secrets.token_urlsafe(16),
        }
    )
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_owner_token(
    token_type: str,
    target_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create an owner token for a single debate or survey."""
    delta = expires_delta or timedelta(hours=settings.ADMIN_TOKEN_EXPIRE_HOURS)
    return _create_token_base({"sub": target_id}, token_type, delta)


def create_operator_token(expires_delta: timedelta | None = None) -> str:
    """Create a site operator token."""
    delta = expires_delta or timedelta(hours=settings.OPERATOR_TOKEN_EXPIRE_HOURS)
    return _create_token_base({"sub": OPERATOR_TOKEN}, OPERATOR_TOKEN, delta)


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Args:
        token: The JWT token to decode
        expected_type: If provided, validates the token type matches

    Returns:
        The decoded payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
        )
        if expected_type and payload.get("type") != expected_type:
            return None
        return payload
    except JWTError:
        return None


def generate_public_id() -> str:
    """Generate a 128-bit random hex identifier for public links."""
    return secrets.token_hex(16)


def generate_response_code() -> str:
    """Generate the short code shown to a respondent after submission."""
    return secrets.token_hex(4).upper()
