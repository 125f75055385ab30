"""
Profile API Endpoints
"""
from fastapi import APIRouter, Depends

from fund_connect.auth.dependencies import get_current_user
from fund_connect.models.profile import Profile, ProfileUpdate
from fund_connect.models.user import User
from fund_connect.services.profile_service import ProfileService, get_profile_service

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=Profile)
async def get_profile(
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service)
):
    """The caller's profile, created empty on first access"""
    return await profiles.get_profile(current_user)


@router.patch("", response_model=Profile)
async def update_profile(
    request: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service)
):
    return await profiles.update_profile(current_user, request)
