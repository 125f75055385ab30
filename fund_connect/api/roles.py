"""
Role API Endpoints

Role checks, directory listings, role assignment, registration and
investor invitations.
"""
from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional
import logging

from fund_connect.auth.dependencies import get_current_user, get_session_context, require_role
from fund_connect.auth.jwt_handler import get_token_expiration
from fund_connect.models.messaging import Conversation
from fund_connect.models.roles import (
    AssignRoleRequest,
    AssignRoleResponse,
    Invitation,
    InvitationCreate,
    InvestorListResponse,
    RegistrationRequest,
    RegistrationResponse,
    Role,
    RoleCheck,
)
from fund_connect.models.user import GetMeResponse, SessionContext, User
from fund_connect.services.conversation_service import ConversationService, get_conversation_service
from fund_connect.services.errors import InvalidInputError, PermissionDeniedError
from fund_connect.services.identity_service import IdentityService, get_identity_service
from fund_connect.services.registration_service import RegistrationService, get_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["roles"])


@router.get("/check-role", response_model=RoleCheck)
async def check_role(
    userId: Optional[str] = Query(None, description="Auth user UUID to check"),
    current_user: User = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service)
):
    """
    Whether a user is an agent or an investor.

    A user with no role is a normal answer (both flags false), not an error.
    """
    if not userId:
        raise InvalidInputError("userId is required")

    resolution = await identity.resolve_role(userId)
    return RoleCheck.from_resolution(resolution)


@router.get("/get-all-agents", response_model=List[Dict[str, Any]])
async def get_all_agents(
    current_user: User = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service)
):
    return await identity.list_agents()


@router.get("/get-all-investors", response_model=List[Dict[str, Any]])
async def get_all_investors(
    current_user: User = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity_service)
):
    return await identity.list_investors()


@router.get("/get-conversation", response_model=Conversation)
async def get_conversation(
    id: Optional[str] = Query(None, description="Conversation UUID"),
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service)
):
    """Single conversation row; 404 when it does not exist, 403 for non-participants"""
    return await conversations.get_conversation_for_participant(id, session)


@router.post("/assign-role", response_model=AssignRoleResponse)
async def assign_role(
    request: AssignRoleRequest,
    current_user: User = Depends(get_current_user),
    registration: RegistrationService = Depends(get_registration_service)
):
    """
    Create the default agent/investor record for a user.

    Callers may only assign a role to themselves. Returns 200 when created or
    already present. On persistent failure the 500 payload includes ``sqlCommand``, an insert an operator can run by hand.

    Example:
        ```json
        {"userId": "a1b2c3d4", "role": "agent"}
        ```
    """
    if request.userId and request.userId != current_user.user_id:
        logger.warning(f"User {current_user.user_id} tried to assign a role to {request.userId}")
        raise PermissionDeniedError("You can only assign a role to yourself")
    return await registration.assign_role(request.userId, request.role)


@router.post("/register", response_model=RegistrationResponse, status_code=201)
async def register(
    request: RegistrationRequest,
    current_user: User = Depends(get_current_user),
    registration: RegistrationService = Depends(get_registration_service)
):
    """
    Create the caller's agent or investor record after sign-up.

    Investors registering with a valid invitation code are approved
    immediately and linked to the inviting agent.
    """
    response = await registration.register_profile(
        user=current_user,
        role=request.role,
        name=request.name,
        firm=request.firm,
        invitation_code=request.invitation_code
    )
    logger.info(f"User {current_user.email} registered as {request.role.value}")
    return response


@router.post("/invitations", response_model=Invitation, status_code=201)
async def create_invitation(
    request: InvitationCreate,
    session: SessionContext = Depends(require_role(Role.AGENT)),
    registration: RegistrationService = Depends(get_registration_service)
):
    """Issue an invitation code for a prospective investor"""
    return await registration.create_invitation(
        agent_id=session.user_id,
        investor_name=request.investor_name,
        investor_email=request.investor_email
    )


@router.get("/invitations/investors", response_model=InvestorListResponse)
async def list_introduced_investors(
    session: SessionContext = Depends(require_role(Role.AGENT)),
    registration: RegistrationService = Depends(get_registration_service)
):
    """Investors who registered with one of the caller's invitation codes"""
    investors = await registration.list_introduced_investors(session.user_id)
    return InvestorListResponse(investors=investors, total=len(investors))


@router.get("/me", response_model=GetMeResponse)
async def get_me(session: SessionContext = Depends(get_session_context)):
    """The caller's identity and platform role"""
    return GetMeResponse(
        user_id=session.user_id,
        email=session.user.email,
        display_name=session.display_name,
        role=session.role,
        record=session.record,
        token_expires_at=get_token_expiration(session.user),
    )
