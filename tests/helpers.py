"""Shared test helpers: identities, sessions and signed tokens."""

import time
from typing import Optional

from jose import jwt

from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext, User

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"

AGENT_ID = "a1"
INVESTOR_ID = "i1"
OTHER_INVESTOR_ID = "i2"


def make_user(user_id: str, email: Optional[str] = None, name: str = "") -> User:
    return User(user_id=user_id, email=email or f"{user_id}@example.com", display_name=name)


def make_session(user_id: str, role: Optional[Role], name: str = "") -> SessionContext:
    return SessionContext(
        user=make_user(user_id, name=name),
        role=role,
        record={"user_id": user_id, "name": name} if role else {},
    )


def make_token(user_id: str, email: Optional[str] = None, expires_in: int = 3600, **claims) -> str:
    """HS256 token shaped like a Supabase access token"""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": {"name": user_id.upper()},
        **claims,
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")
