"""
Profile Service

Personal, professional and preference details of any signed-in user.
"""
import logging
from typing import Optional
from supabase import Client

from fund_connect.models.profile import Profile, ProfileUpdate
from fund_connect.models.user import User
from fund_connect.services.errors import BackendError, classify_backend_error
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for the profiles table"""

    def __init__(self, supabase_client: Optional[Client] = None):
        self._client = supabase_client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def get_profile(self, user: User) -> Profile:
        """The user's profile, created with the token's display name on first access"""
        try:
            response = self.client.table("profiles").select("*").eq("id", user.user_id).execute()
        except Exception as e:
            logger.error(f"Error fetching profile {user.user_id}: {e}")
            raise classify_backend_error(e, "load profile")

        if response.data:
            return Profile(**response.data[0])

        logger.info(f"Creating profile for {user.user_id}")
        return self._upsert({
            "id": user.user_id,
            "full_name": user.display_name or None,
            "preferences": {},
            "updated_at": utc_now_iso(),
        })

    async def update_profile(self, user: User, data: ProfileUpdate) -> Profile:
        """Upsert the provided fields; preferences are merged into the stored ones"""
        changes = data.model_dump(exclude_unset=True)
        if "preferences" in changes:
            current = await self.get_profile(user)
            changes["preferences"] = {**current.preferences, **(changes["preferences"] or {})}

        return self._upsert({"id": user.user_id, **changes, "updated_at": utc_now_iso()})

    def _upsert(self, row: dict) -> Profile:
        try:
            response = self.client.table("profiles").upsert(row, on_conflict="id").execute()
        except Exception as e:
            logger.error(f"Error saving profile {row['id']}: {e}")
            raise classify_backend_error(e, "save profile")

        if not response.data:
            raise BackendError("Failed to save profile", details="Upsert returned no row")
        return Profile(**response.data[0])


# Global profile service instance
_profile_service: Optional[ProfileService] = None


def get_profile_service() -> ProfileService:
    """Get or create global profile service instance"""
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service
