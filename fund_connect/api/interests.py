"""
Interest API Endpoints
"""
from fastapi import APIRouter, Depends
from typing import List
import logging

from fund_connect.auth.dependencies import require_role
from fund_connect.models.fund import InterestWithFund
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext
from fund_connect.services.interest_service import InterestService, get_interest_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/interests", tags=["interests"])


@router.get("", response_model=List[InterestWithFund])
async def list_interests(
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    interests: InterestService = Depends(get_interest_service)
):
    """The caller's interests, newest first, with fund and agent"""
    return await interests.list_investor_interests(session.user_id)


@router.delete("/{interest_id}")
async def remove_interest(
    interest_id: str,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    interests: InterestService = Depends(get_interest_service)
):
    await interests.remove_interest(interest_id, session.user_id)
    return {"success": True, "interest_id": interest_id}
