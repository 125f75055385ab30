"""
Authentication Module

Supabase JWT authentication and platform-role authorization.
"""
from fund_connect.auth.jwt_handler import decode_jwt_token, extract_user_from_token, JWTValidationError
from fund_connect.auth.dependencies import (
    get_current_user,
    get_session_context,
    require_role,
)

__all__ = [
    "decode_jwt_token",
    "extract_user_from_token",
    "JWTValidationError",
    "get_current_user",
    "get_session_context",
    "require_role",
]
