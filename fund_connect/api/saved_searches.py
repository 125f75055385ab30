"""
Saved Search API Endpoints
"""
from fastapi import APIRouter, Depends
from typing import List
import logging

from fund_connect.auth.dependencies import require_role
from fund_connect.models.fund import SavedSearch, SavedSearchCreate, SavedSearchUpdate
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext
from fund_connect.services.saved_search_service import SavedSearchService, get_saved_search_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/saved-searches", tags=["saved-searches"])


@router.get("", response_model=List[SavedSearch])
async def list_saved_searches(
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    searches: SavedSearchService = Depends(get_saved_search_service)
):
    return await searches.list_saved_searches(session.user_id)


@router.post("", response_model=SavedSearch, status_code=201)
async def create_saved_search(
    request: SavedSearchCreate,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    searches: SavedSearchService = Depends(get_saved_search_service)
):
    """
    Save the current fund filters under a name.

    Example:
        ```json
        {"name": "EU buyout", "criteria": {"strategy": "Buyout", "geography": "Europe"}, "alerts_enabled": true}
        ```
    """
    return await searches.create_saved_search(session.user_id, request)


@router.patch("/{search_id}", response_model=SavedSearch)
async def update_saved_search(
    search_id: str,
    request: SavedSearchUpdate,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    searches: SavedSearchService = Depends(get_saved_search_service)
):
    return await searches.update_saved_search(search_id, session.user_id, request)


@router.delete("/{search_id}")
async def delete_saved_search(
    search_id: str,
    session: SessionContext = Depends(require_role(Role.INVESTOR)),
    searches: SavedSearchService = Depends(get_saved_search_service)
):
    await searches.delete_saved_search(search_id, session.user_id)
    return {"success": True, "search_id": search_id}
