"""
Saved Search Service

Named fund filters an investor can re-run and receive alerts for.
"""
import logging
from typing import Any, Dict, List, Optional
from supabase import Client

from fund_connect.models.fund import SavedSearch, SavedSearchCreate, SavedSearchUpdate
from fund_connect.services.errors import (
    BackendError,
    PermissionDeniedError,
    RecordNotFoundError,
    classify_backend_error,
)
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)


class SavedSearchService:
    """Service for investors' saved searches"""

    def __init__(self, supabase_client: Optional[Client] = None):
        self._client = supabase_client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def list_saved_searches(self, investor_id: str) -> List[SavedSearch]:
        try:
            response = (
                self.client.table("saved_searches")
                .select("*")
                .eq("investor_id", investor_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing saved searches of {investor_id}: {e}")
            raise classify_backend_error(e, "load saved searches")
        return [SavedSearch(**row) for row in response.data or []]

    async def create_saved_search(self, investor_id: str, data: SavedSearchCreate) -> SavedSearch:
        row = {
            "investor_id": investor_id,
            "name": data.name,
            "criteria": data.criteria.model_dump(exclude_none=True),
            "alerts_enabled": data.alerts_enabled,
            "created_at": utc_now_iso(),
        }
        try:
            response = self.client.table("saved_searches").insert(row).execute()
        except Exception as e:
            logger.error(f"Error saving search for {investor_id}: {e}")
            raise classify_backend_error(e, "save search")

        if not response.data:
            raise BackendError("Failed to save search", details="Insert returned no row")

        logger.info(f"Investor {investor_id} saved search '{data.name}'")
        return SavedSearch(**response.data[0])

    async def update_saved_search(
        self,
        search_id: str,
        investor_id: str,
        data: SavedSearchUpdate
    ) -> SavedSearch:
        """
        Rename a saved search or toggle its alerts.

        Raises:
            RecordNotFoundError: No such saved search
            PermissionDeniedError: Search belongs to another investor
        """
        row = self._get_owned(search_id, investor_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return SavedSearch(**row)

        try:
            response = self.client.table("saved_searches").update(changes).eq("id", search_id).execute()
        except Exception as e:
            logger.error(f"Error updating saved search {search_id}: {e}")
            raise classify_backend_error(e, "update saved search")

        return SavedSearch(**(response.data[0] if response.data else {**row, **changes}))

    async def delete_saved_search(self, search_id: str, investor_id: str) -> bool:
        self._get_owned(search_id, investor_id)
        try:
            self.client.table("saved_searches").delete().eq("id", search_id).execute()
        except Exception as e:
            logger.error(f"Error deleting saved search {search_id}: {e}")
            raise classify_backend_error(e, "delete saved search")

        logger.info(f"Investor {investor_id} deleted saved search {search_id}")
        return True

    def _get_owned(self, search_id: str, investor_id: str) -> Dict[str, Any]:
        try:
            response = self.client.table("saved_searches").select("*").eq("id", search_id).execute()
        except Exception as e:
            logger.error(f"Error fetching saved search {search_id}: {e}")
            raise classify_backend_error(e, "load saved search")

        if not response.data:
            raise RecordNotFoundError("Saved search not found")
        row = response.data[0]
        if row.get("investor_id") != investor_id:
            raise PermissionDeniedError("You can only change your own saved searches")
        return row


# Global saved search service instance
_saved_search_service: Optional[SavedSearchService] = None


def get_saved_search_service() -> SavedSearchService:
    """Get or create global saved search service instance"""
    global _saved_search_service
    if _saved_search_service is None:
        _saved_search_service = SavedSearchService()
    return _saved_search_service
