"""
Fund Service

Fund listings uploaded by agents: browsing with filters, detail pages,
ownership-checked edits and the agent's own list with interest counts.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional
from supabase import Client

from fund_connect.models.fund import (
    MILLION,
    AgentFund,
    AgentSummary,
    FilterOptions,
    FundCreate,
    FundDetail,
    FundDocument,
    FundFilters,
    FundListing,
    FundUpdate,
)
from fund_connect.services.errors import (
    BackendError,
    InvalidInputError,
    PermissionDeniedError,
    RecordNotFoundError,
    classify_backend_error,
)
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)


def _distinct(values: Iterable[Any]) -> List[str]:
    return sorted({str(value) for value in values if value})


class FundService:
    """Service for managing fund listings in Supabase"""

    def __init__(self, supabase_client: Optional[Client] = None):
        self._client = supabase_client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ============ Browse ============

    async def list_funds(self, filters: Optional[FundFilters] = None) -> List[FundListing]:
        """
        Funds matching the filters, newest first.

        Strategy matches exactly; geography and sector match case-insensitive
        substrings; min/max size are given in millions.
        """
        filters = filters or FundFilters()
        query = self.client.table("funds").select("*")

        if filters.strategy:
            query = query.eq("strategy", filters.strategy)
        if filters.geography:
            query = query.ilike("geography", f"%{filters.geography}%")
        if filters.sector:
            query = query.ilike("sector_focus", f"%{filters.sector}%")
        if filters.min_size is not None:
            query = query.gte("size", filters.min_size * MILLION)
        if filters.max_size is not None:
            query = query.lte("size", filters.max_size * MILLION)

        try:
            response = query.order("created_at", desc=True).execute()
        except Exception as e:
            logger.error(f"Error listing funds: {e}")
            raise classify_backend_error(e, "load funds")

        rows = response.data or []
        agents = self._agents_by_id(row.get("uploaded_by_agent_id") for row in rows)
        funds = [
            FundListing(**row, agent=agents.get(row.get("uploaded_by_agent_id")))
            for row in rows
        ]
        logger.info(f"Listed {len(funds)} funds (filtered={not filters.is_empty()})")
        return funds

    async def filter_options(self) -> FilterOptions:
        """Distinct strategies, geographies and sectors across all funds"""
        try:
            response = self.client.table("funds").select("strategy, geography, sector_focus").execute()
        except Exception as e:
            logger.error(f"Error loading fund filter options: {e}")
            raise classify_backend_error(e, "load filter options")

        rows = response.data or []
        return FilterOptions(
            strategies=_distinct(row.get("strategy") for row in rows),
            geographies=_distinct(row.get("geography") for row in rows),
            sectors=_distinct(row.get("sector_focus") for row in rows),
        )

    def _agents_by_id(self, agent_ids: Iterable[Optional[str]]) -> Dict[str, AgentSummary]:
        ids = sorted({agent_id for agent_id in agent_ids if agent_id})
        if not ids:
            return {}
        try:
            response = self.client.table("agents").select("user_id, name, firm").in_("user_id", ids).execute()
        except Exception as e:
            logger.warning(f"Could not load agents for fund listing: {e}")
            return {}
        return {row["user_id"]: AgentSummary(**row) for row in response.data or []}

    # ============ Detail ============

    async def get_fund_row(self, fund_id: str) -> Dict[str, Any]:
        """
        Raw fund row.

        Raises:
            InvalidInputError: Missing id
            RecordNotFoundError: No such fund
        """
        if not fund_id:
            raise InvalidInputError("Fund ID is required")
        try:
            response = self.client.table("funds").select("*").eq("id", fund_id).execute()
        except Exception as e:
            logger.error(f"Error fetching fund {fund_id}: {e}")
            raise classify_backend_error(e, "load fund")

        if not response.data:
            raise RecordNotFoundError("Fund not found")
        return response.data[0]

    async def get_fund(self, fund_id: str, investor_id: Optional[str] = None) -> FundDetail:
        """
        Fund with its agent and documents.

        Args:
            fund_id: Fund UUID
            investor_id: When given, ``has_expressed_interest`` reflects this investor

        Raises:
            RecordNotFoundError: No such fund
            BackendError: The uploading agent's record is missing
        """
        row = await self.get_fund_row(fund_id)

        agent_id = row.get("uploaded_by_agent_id")
        agent = self._agents_by_id([agent_id]).get(agent_id)
        if agent is None:
            logger.error(f"Fund {fund_id} references missing agent {agent_id}")
            raise BackendError(
                "Fund agent record is missing",
                details=f"No agent with user_id {agent_id}"
            )

        try:
            documents = self.client.table("fund_documents").select("*").eq("fund_id", fund_id).execute()
        except Exception as e:
            logger.error(f"Error fetching documents of fund {fund_id}: {e}")
            raise classify_backend_error(e, "load fund documents")

        has_interest = False
        if investor_id:
            try:
                interest = (
                    self.client.table("interests")
                    .select("id")
                    .eq("fund_id", fund_id)
                    .eq("investor_id", investor_id)
                    .execute()
                )
                has_interest = bool(interest.data)
            except Exception as e:
                logger.error(f"Error checking interest of {investor_id} in fund {fund_id}: {e}")
                raise classify_backend_error(e, "check interest")

        return FundDetail(
            **row,
            agent=agent,
            documents=[FundDocument(**doc) for doc in documents.data or []],
            has_expressed_interest=has_interest,
        )

    # ============ Agent Operations ============

    async def create_fund(self, agent_id: str, data: FundCreate) -> FundDetail:
        """
        List a new fund owned by ``agent_id``, with its document references.
        """
        row = data.model_dump(exclude={"documents"})
        row["uploaded_by_agent_id"] = agent_id
        row["created_at"] = utc_now_iso()

        try:
            response = self.client.table("funds").insert(row).execute()
        except Exception as e:
            logger.error(f"Error creating fund for agent {agent_id}: {e}")
            raise classify_backend_error(e, "create fund")

        if not response.data:
            raise BackendError("Failed to create fund", details="Insert returned no row")

        fund = response.data[0]
        documents = []
        if data.documents:
            document_rows = [
                {"fund_id": fund["id"], **document.model_dump()}
                for document in data.documents
            ]
            try:
                documents = self.client.table("fund_documents").insert(document_rows).execute().data or []
            except Exception as e:
                logger.error(f"Error attaching documents to fund {fund['id']}: {e}")
                raise classify_backend_error(e, "attach fund documents")

        logger.info(f"Agent {agent_id} created fund {fund['id']} with {len(documents)} documents")
        return FundDetail(**fund, documents=[FundDocument(**doc) for doc in documents])

    async def update_fund(self, fund_id: str, agent_id: str, data: FundUpdate) -> FundListing:
        """
        Update a fund owned by ``agent_id``; only provided fields change.

        Raises:
            RecordNotFoundError: No such fund
            PermissionDeniedError: Caller does not own the fund
        """
        row = await self.get_fund_row(fund_id)
        self._check_owner(row, agent_id)

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return FundListing(**row)

        try:
            response = self.client.table("funds").update(changes).eq("id", fund_id).execute()
        except Exception as e:
            logger.error(f"Error updating fund {fund_id}: {e}")
            raise classify_backend_error(e, "update fund")

        logger.info(f"Fund {fund_id} updated: {sorted(changes)}")
        return FundListing(**(response.data[0] if response.data else {**row, **changes}))

    async def delete_fund(self, fund_id: str, agent_id: str) -> bool:
        """
        Delete a fund owned by ``agent_id`` together with its documents.

        Raises:
            RecordNotFoundError: No such fund
            PermissionDeniedError: Caller does not own the fund
        """
        row = await self.get_fund_row(fund_id)
        self._check_owner(row, agent_id)

        try:
            self.client.table("fund_documents").delete().eq("fund_id", fund_id).execute()
            self.client.table("funds").delete().eq("id", fund_id).execute()
        except Exception as e:
            logger.error(f"Error deleting fund {fund_id}: {e}")
            raise classify_backend_error(e, "delete fund")

        logger.info(f"Fund {fund_id} deleted by agent {agent_id}")
        return True

    def _check_owner(self, row: Dict[str, Any], agent_id: str) -> None:
        if row.get("uploaded_by_agent_id") != agent_id:
            logger.warning(f"Agent {agent_id} denied access to fund {row.get('id')}")
            raise PermissionDeniedError("You can only modify funds you uploaded")

    async def list_agent_funds(self, agent_id: str) -> List[AgentFund]:
        """The agent's funds, newest first, each with its interest count"""
        try:
            response = (
                self.client.table("funds")
                .select("*")
                .eq("uploaded_by_agent_id", agent_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing funds of agent {agent_id}: {e}")
            raise classify_backend_error(e, "load funds")

        funds = []
        for row in response.data or []:
            funds.append(AgentFund(**row, interest_count=self._interest_count(row["id"])))
        return funds

    def _interest_count(self, fund_id: str) -> int:
        try:
            response = self.client.table("interests").select("id", count="exact").eq("fund_id", fund_id).execute()
        except Exception as e:
            logger.warning(f"Could not count interests of fund {fund_id}: {e}")
            return 0
        if response.count is not None:
            return response.count
        return len(response.data or [])


# Global fund service instance
_fund_service: Optional[FundService] = None


def get_fund_service() -> FundService:
    """Get or create global fund service instance"""
    global _fund_service
    if _fund_service is None:
        _fund_service = FundService()
    return _fund_service
