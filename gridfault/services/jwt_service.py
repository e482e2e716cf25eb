"""
JWT Service: access token generation and verification.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "name": <display name>,
    "role": "district_engineer",
    "region": "Accra East",           (optional)
    "district": "Legon",              (optional)
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

The role/region/district claims are the whole user context the engine
sees; tokens are issued by the identity provider that owns users.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from gridfault.core.domain import Role, User


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user: User) -> str:
    """Generate a short-lived access token carrying the user's role and scope."""
    now = datetime.now(timezone.utc)
    payload = {
        "role": user.role.value if user.role else None,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if user.id is not None:
        payload["sub"] = str(user.id)
    if user.name:
        payload["name"] = user.name
    if user.region:
        payload["region"] = user.region
    if user.district:
        payload["district"] = user.district
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode an access token: convenience wrapper."""
    return decode_token(token, expected_type="access")


def user_from_claims(payload: dict) -> User:
    """Build the engine's user context from verified token claims.

    Unknown role strings become ``role=None`` (fail-closed).
    """
    return User(
        role=Role.parse(payload.get("role")),
        region=payload.get("region") or None,
        district=payload.get("district") or None,
        id=payload.get("sub"),
        name=payload.get("name"),
    )
