"""
Interest Service

Investor interest in funds.
"""
import logging
from typing import Dict, List, Optional
from supabase import Client

from fund_connect.models.fund import AgentSummary, FundInterest, FundListing, Interest, InterestWithFund
from fund_connect.services.errors import (
    BackendError,
    InvalidInputError,
    PermissionDeniedError,
    RecordNotFoundError,
    classify_backend_error,
)
from fund_connect.services.fund_service import FundService
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)


class InterestService:
    """Service for investor interests"""

    def __init__(self, supabase_client: Optional[Client] = None, fund_service: Optional[FundService] = None):
        self._client = supabase_client
        self.funds = fund_service or FundService(supabase_client)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def has_interest(self, investor_id: str, fund_id: str) -> Optional[Interest]:
        try:
            response = (
                self.client.table("interests")
                .select("*")
                .eq("investor_id", investor_id)
                .eq("fund_id", fund_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error checking interest of {investor_id} in fund {fund_id}: {e}")
            raise classify_backend_error(e, "check interest")
        return Interest(**response.data[0]) if response.data else None

    async def express_interest(self, investor_id: str, fund_id: str) -> Interest:
        """
        Record interest in a fund. Repeated calls return the existing interest.

        Raises:
            InvalidInputError: Missing fund id
            RecordNotFoundError: No such fund
        """
        if not fund_id:
            raise InvalidInputError("Fund ID is required")
        await self.funds.get_fund_row(fund_id)

        existing = await self.has_interest(investor_id, fund_id)
        if existing:
            return existing

        try:
            response = self.client.table("interests").insert({
                "investor_id": investor_id,
                "fund_id": fund_id,
                "timestamp": utc_now_iso(),
            }).execute()
        except Exception as e:
            logger.error(f"Error expressing interest of {investor_id} in fund {fund_id}: {e}")
            raise classify_backend_error(e, "express interest")

        if not response.data:
            raise BackendError("Failed to express interest", details="Insert returned no row")

        logger.info(f"Investor {investor_id} expressed interest in fund {fund_id}")
        return Interest(**response.data[0])

    async def withdraw_interest(self, investor_id: str, fund_id: str) -> bool:
        """Remove the investor's interest in a fund; False when there was none"""
        existing = await self.has_interest(investor_id, fund_id)
        if not existing:
            return False
        return await self.remove_interest(existing.id, investor_id)

    async def remove_interest(self, interest_id: str, investor_id: str) -> bool:
        """
        Delete an interest owned by the investor.

        Raises:
            RecordNotFoundError: No such interest
            PermissionDeniedError: Interest belongs to another investor
        """
        try:
            response = self.client.table("interests").select("*").eq("id", interest_id).execute()
        except Exception as e:
            logger.error(f"Error fetching interest {interest_id}: {e}")
            raise classify_backend_error(e, "load interest")

        if not response.data:
            raise RecordNotFoundError("Interest not found")
        if response.data[0].get("investor_id") != investor_id:
            raise PermissionDeniedError("You can only remove your own interests")

        try:
            self.client.table("interests").delete().eq("id", interest_id).execute()
        except Exception as e:
            logger.error(f"Error removing interest {interest_id}: {e}")
            raise classify_backend_error(e, "remove interest")

        logger.info(f"Investor {investor_id} removed interest {interest_id}")
        return True

    async def list_investor_interests(self, investor_id: str) -> List[InterestWithFund]:
        """The investor's interests, newest first, with fund and agent"""
        try:
            response = (
                self.client.table("interests")
                .select("*")
                .eq("investor_id", investor_id)
                .order("timestamp", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing interests of {investor_id}: {e}")
            raise classify_backend_error(e, "load interests")

        rows = response.data or []
        funds = self._funds_by_id([row["fund_id"] for row in rows])
        return [
            InterestWithFund(id=row["id"], timestamp=row.get("timestamp"), fund=funds.get(row["fund_id"]))
            for row in rows
        ]

    def _funds_by_id(self, fund_ids: List[str]) -> Dict[str, FundListing]:
        ids = sorted(set(fund_ids))
        if not ids:
            return {}
        try:
            response = self.client.table("funds").select("*").in_("id", ids).execute()
        except Exception as e:
            logger.error(f"Error loading funds {ids}: {e}")
            raise classify_backend_error(e, "load funds")

        rows = response.data or []
        agents: Dict[str, AgentSummary] = self.funds._agents_by_id(row.get("uploaded_by_agent_id") for row in rows)
        return {
            row["id"]: FundListing(**row, agent=agents.get(row.get("uploaded_by_agent_id")))
            for row in rows
        }

    async def list_fund_interests(self, fund_id: str, agent_id: str) -> List[FundInterest]:
        """
        Interests in a fund, visible to the fund's agent only.

        Raises:
            RecordNotFoundError: No such fund
            PermissionDeniedError: Caller does not own the fund
        """
        fund = await self.funds.get_fund_row(fund_id)
        if fund.get("uploaded_by_agent_id") != agent_id:
            raise PermissionDeniedError("Only the fund's agent can view its interests")

        try:
            response = (
                self.client.table("interests")
                .select("*")
                .eq("fund_id", fund_id)
                .order("timestamp", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing interests of fund {fund_id}: {e}")
            raise classify_backend_error(e, "load interests")

        rows = response.data or []
        names: Dict[str, str] = {}
        investor_ids = sorted({row["investor_id"] for row in rows})
        if investor_ids:
            try:
                investors = self.client.table("investors").select("user_id, name").in_("user_id", investor_ids).execute()
                names = {row["user_id"]: row.get("name") for row in investors.data or []}
            except Exception as e:
                logger.warning(f"Could not load investor names for fund {fund_id}: {e}")

        return [
            FundInterest(
                id=row["id"],
                investor_id=row["investor_id"],
                investor_name=names.get(row["investor_id"]),
                timestamp=row.get("timestamp"),
            )
            for row in rows
        ]


# Global interest service instance
_interest_service: Optional[InterestService] = None


def get_interest_service() -> InterestService:
    """Get or create global interest service instance"""
    global _interest_service
    if _interest_service is None:
        _interest_service = InterestService()
    return _interest_service
