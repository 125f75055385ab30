"""
Fund API Endpoints

Browsing for investors, management for the uploading agent, and interest
expression.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging

from fund_connect.auth.dependencies import get_session_context, require_role
from fund_connect.models.fund import (
    AgentFund,
    FilterOptions,
    FundCreate,
    FundDetail,
    FundFilters,
    FundInterest,
    FundListing,
    FundListResponse,
    FundUpdate,
    Interest,
)
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext
from fund_connect.services.fund_service import FundService, get_fund_service
from fund_connect.services.interest_service import InterestService, get_interest_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/funds", tags=["funds"])


@router.get("", response_model=FundListResponse)
async def list_funds(
    strategy: Optional[str] = Query(None, description="Exact strategy"),
    geography: Optional[str] = Query(None, description="Geography contains"),
    sector: Optional[str] = Query(None, description="Sector focus contains"),
    min_size: Optional[float] = Query(None, ge=0, description="Minimum size in millions"),
    max_size: Optional[float] = Query(None, ge=0, description="Maximum size in millions"),
    session: SessionContext = Depends(get_session_context),
    funds: FundService = Depends(get_fund_service)
):
    """
    Browse funds, newest first.

    Example:
        `GET /funds?strategy=Buyout&geography=europe&min_size=100`
    """
    filters = FundFilters(
        strategy=strategy,
        geography=geography,
        sector=sector,
        min_size=min_size,
        max_size=max_size
    )
    listings = await funds.list_funds(filters)
    return FundListResponse(funds=listings, total=len(listings))


@router.get("/filters", response_model=FilterOptions)
async def filter_options(
    session: SessionContext = Depends(get_session_context),
    funds: FundService = Depends(get_fund_service)
):
    return await funds.filter_options()


@router.get("/mine", response_model=List[AgentFund])
async def list_my_funds(
    session: SessionContext = Depends(require_role(Role.AGENT)),
    funds: FundService = Depends(get_fund_service)
):
    """The calling agent's funds with interest counts"""
    return await funds.list_agent_funds(session.user_id)


@router.post("", response_model=FundDetail, status_code=201)
async def create_fund(
    request: FundCreate,
    session: SessionContext = Depends(require_role(Role.AGENT)),
    funds: FundService = Depends(get_fund_service)
):
    fund = await funds.create_fund(session.user_id, request)
    logger.info(f"Agent {session.user.email} listed fund {fund.id}")
    return fund


@router.get("/{fund_id}", response_model=FundDetail)
async def get_fund(
    fund_id: str,
    session: SessionContext = Depends(get_session_context),
    funds: FundService = Depends(get_fund_service)
):
    """Fund with agent and documents; interest state is the caller's when an investor"""
    investor_id = session.user_id if session.role is Role.INVESTOR else None
    return await funds.get_fund(fund_id, investor_id=investor_id)


@router.patch("/{fund_id}", response_model=FundListing)
async def update_fund(
    fund_id: str,
    request: FundUpdate,
    session: SessionContext = Depends(require_role(Role.AGENT)),
    funds: FundService = Depends(get_fund_service)
):
    return await funds.update_fund(fund_id, session.user_id, request)


@router.delete("/{fund_id}")
async def delete_fund(
    fund_id: str,
    session: SessionContext = Depends(require_role(Role.AGENT)),
    funds: FundService = Depends(get_fund_service)
):
    await funds.delete_fund(fund_id, session.user_id)
    return {"success": True, "fund_id": fund_id}


@router.get("/{fund_id}/interests", response_model=List[FundInterest])
async def list_fund_interests(
    fund_id: str,
    session: SessionContext = Depends(require_role(Role.AGENT)),
    interests: InterestService = Depends(get_interest_service)
):
    """Investors interested in one of the caller's funds"""
    return await interests.list_fund_interests(fund_id, session.user_id)


@router.post("/{fund_id}/interest", response_model=Interest, status_code=201)
async def express_interest(
    fund_id: str,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    interests: InterestService = Depends(get_interest_service)
):
    return await interests.express_interest(session.user_id, fund_id)


@router.delete("/{fund_id}/interest")
async def withdraw_interest(
    fund_id: str,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    interests: InterestService = Depends(get_interest_service)
):
    removed = await interests.withdraw_interest(session.user_id, fund_id)
    return {"success": True, "removed": removed}
