"""
FastAPI Authentication Dependencies

Bearer-token authentication plus the per-request SessionContext that carries
the caller's platform role.
"""
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from fund_connect.auth.jwt_handler import extract_user_from_token, JWTValidationError
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext, User
from fund_connect.services.identity_service import IdentityService, get_identity_service

logger = logging.getLogger(__name__)

# scheme_name must match the security scheme defined in main.py custom_openapi()
security = HTTPBearer(
    scheme_name="BearerAuth",
    description="Supabase access token",
    auto_error=True
)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not credentials:
        logger.warning("Authorization header missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return extract_user_from_token(credentials.credentials)
    except JWTValidationError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_session_context(
    user: User = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service)
) -> SessionContext:
    """Authenticated user plus resolved role (None when the user has none)"""
    resolution = await identity.resolve_role(user.user_id)
    if resolution is None:
        return SessionContext(user=user)
    return SessionContext(user=user, role=resolution.role, record=resolution.record)


def require_role(required_role: Role):
    """
    Dependency factory restricting an endpoint to one platform role.

    Usage:
        @router.post("/funds")
        async def create_fund(session: SessionContext = Depends(require_role(Role.AGENT))):
            ...
    """
    async def check_role(session: SessionContext = Depends(get_session_context)) -> SessionContext:
        if session.role is None:
            logger.warning(f"User {session.user_id} has no role; denied {required_role.value}-only resource")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User has no role assigned",
            )
        if session.role is not required_role:
            logger.warning(
                f"User {session.user_id} ({session.role.value}) "
                f"denied {required_role.value}-only resource"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {required_role.value} role",
            )
        return session

    return check_role
