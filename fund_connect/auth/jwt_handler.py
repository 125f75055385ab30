"""
Supabase Access Tokens

Verifies the HS256 access tokens Supabase Auth issues to agents and investors
and turns their claims into a ``User``. The same tokens authenticate REST calls
(Authorization header) and conversation sockets (``token`` query parameter).
"""
import logging
from typing import Dict, Any, Optional
from jose import jwt, JWTError
from datetime import datetime, timezone

from fund_connect.config import settings
from fund_connect.models.user import User

logger = logging.getLogger(__name__)

SUPABASE_JWT_ALGORITHMS = ["HS256"]

REQUIRED_CLAIMS = ("sub", "email")


class JWTValidationError(Exception):
    """Token missing, malformed, expired or signed for someone else"""
    pass


def decode_jwt_token(token: str) -> Dict[str, Any]:
    """
    Verify signature, expiry and audience of an access token.

    Returns:
        The token's claims

    Raises:
        JWTValidationError: With a message safe to show the caller
    """
    if not settings.is_auth_configured:
        logger.error("SUPABASE_JWT_SECRET is not set; cannot verify access tokens")
        raise JWTValidationError("Authentication service is not configured")

    if not token:
        raise JWTValidationError("Token is required")

    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=SUPABASE_JWT_ALGORITHMS,
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Rejected expired access token")
        raise JWTValidationError("Token has expired")
    except jwt.JWTClaimsError as e:
        logger.warning(f"Rejected access token with bad claims: {e}")
        raise JWTValidationError("Invalid token claims")
    except JWTError as e:
        logger.warning(f"Rejected unverifiable access token: {e}")
        raise JWTValidationError("Invalid token")

    logger.debug(f"Verified access token for {claims.get('sub')}")
    return claims


def user_from_claims(claims: Dict[str, Any]) -> User:
    """
    Map verified claims onto ``User``.

    The display name comes from ``user_metadata.name``, which the sign-up form
    stores; the platform role is not in the token and is resolved separately.
    """
    for claim in REQUIRED_CLAIMS:
        if not claims.get(claim):
            raise JWTValidationError(f"Token is missing the '{claim}' claim")

    user_metadata = claims.get("user_metadata") or {}
    return User(
        user_id=claims["sub"],
        email=claims["email"],
        display_name=user_metadata.get("name") or claims.get("display_name") or "",
        aud=claims.get("aud"),
        role=claims.get("role"),
        session_id=claims.get("session_id"),
        exp=claims.get("exp"),
        iat=claims.get("iat"),
        user_metadata=user_metadata,
        app_metadata=claims.get("app_metadata") or {},
    )


def extract_user_from_token(token: str) -> User:
    """
    Verify a token and return its user.

    Raises:
        JWTValidationError: If the token is invalid or lacks sub/email
    """
    return user_from_claims(decode_jwt_token(token))


def get_token_expiration(user: User) -> Optional[datetime]:
    if not user.exp:
        return None
    return datetime.fromtimestamp(user.exp, tz=timezone.utc)
