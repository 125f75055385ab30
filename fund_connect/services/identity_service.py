"""
Identity Service

Determines whether a user is registered as an agent or an investor.
"""
import logging
from typing import Any, Dict, List, Optional
from supabase import Client

from fund_connect.config import settings
from fund_connect.models.roles import Role, RoleResolution
from fund_connect.services.errors import BackendError, error_text
from fund_connect.services.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)


def _first(data: Any) -> Optional[Dict[str, Any]]:
    """First row of a PostgREST/RPC payload that may be a list or a single object"""
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


class IdentityService:
    """Resolves platform roles from the agents and investors tables"""

    def __init__(
        self,
        supabase_client: Optional[Client] = None,
        bulk_scan_fallback: Optional[bool] = None
    ):
        self._client = supabase_client
        self.bulk_scan_fallback = (
            settings.ROLE_BULK_SCAN_FALLBACK if bulk_scan_fallback is None else bulk_scan_fallback
        )

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ============ Role Resolution ============

    async def resolve_role(self, user_id: str) -> Optional[RoleResolution]:
        """
        Resolve the role of a user.

        Strategies are tried in order, each only when the previous one errored
        or found nothing:

        1. ``get_user_role`` procedure
        2. direct ``agents`` lookup
        3. direct ``investors`` lookup
        4. scan of every agent and investor (when bulk scan is enabled)

        Args:
            user_id: Auth user UUID

        Returns:
            RoleResolution, or None when the user has no role
        """
        if not user_id:
            logger.warning("resolve_role called without a user id")
            return None

        resolution = self._resolve_via_rpc(user_id)
        if resolution:
            return resolution

        for role in (Role.AGENT, Role.INVESTOR):
            record = self._lookup_direct(role, user_id)
            if record:
                logger.info(f"User {user_id} resolved as {role.value} via direct query")
                return RoleResolution(role=role, record=record)

        if self.bulk_scan_fallback:
            resolution = self._resolve_via_scan(user_id)
            if resolution:
                return resolution

        logger.info(f"No role found for user {user_id}")
        return None

    def _resolve_via_rpc(self, user_id: str) -> Optional[RoleResolution]:
        try:
            response = self.client.rpc("get_user_role", {"user_id_param": user_id}).execute()
        except Exception as e:
            logger.warning(f"get_user_role procedure failed, falling back to direct queries: {error_text(e)}")
            return None

        payload = _first(response.data)
        if not payload:
            return None

        is_agent = bool(payload.get("isAgent"))
        is_investor = bool(payload.get("isInvestor"))

        if is_agent and is_investor:
            logger.warning(f"User {user_id} is registered as both agent and investor; using agent")

        if is_agent:
            return RoleResolution(role=Role.AGENT, record=payload.get("agentData") or {"user_id": user_id})
        if is_investor:
            return RoleResolution(role=Role.INVESTOR, record=payload.get("investorData") or {"user_id": user_id})
        return None

    def _lookup_direct(self, role: Role, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.table(role.table).select("*").eq("user_id", user_id).execute()
        except Exception as e:
            logger.warning(f"Direct {role.table} lookup failed for {user_id}: {error_text(e)}")
            return None
        return _first(response.data)

    def _resolve_via_scan(self, user_id: str) -> Optional[RoleResolution]:
        logger.warning(f"Scanning all agents and investors to resolve user {user_id}")

        for role in (Role.AGENT, Role.INVESTOR):
            try:
                rows = self._list_rows(role)
            except BackendError as e:
                logger.warning(f"Bulk {role.table} scan failed: {e.details}")
                continue

            match = next((row for row in rows if row.get("user_id") == user_id), None)
            if match:
                logger.info(f"User {user_id} found in {role.table} scan")
                return RoleResolution(role=role, record=match)
        return None

    # ============ Directory Operations ============

    async def list_agents(self) -> List[Dict[str, Any]]:
        """
        Every agent row.

        Raises:
            BackendError: If both the procedure and the direct query fail
        """
        return self._list_rows(Role.AGENT)

    async def list_investors(self) -> List[Dict[str, Any]]:
        """
        Every investor row.

        Raises:
            BackendError: If both the procedure and the direct query fail
        """
        return self._list_rows(Role.INVESTOR)

    def _list_rows(self, role: Role) -> List[Dict[str, Any]]:
        procedure = f"get_all_{role.table}"
        try:
            response = self.client.rpc(procedure, {}).execute()
            return list(response.data or [])
        except Exception as e:
            logger.warning(f"{procedure} procedure failed, falling back to direct query: {error_text(e)}")

        try:
            response = self.client.table(role.table).select("*").execute()
            return list(response.data or [])
        except Exception as e:
            logger.error(f"Error fetching {role.table}: {error_text(e)}")
            raise BackendError(f"Error fetching {role.table}", details=error_text(e))

    async def get_record(self, role: Role, user_id: str) -> Optional[Dict[str, Any]]:
        """Single agent/investor record by user id, None when absent"""
        try:
            response = self.client.table(role.table).select("*").eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"Error fetching {role.value} {user_id}: {error_text(e)}")
            raise BackendError(f"Error fetching {role.value}", details=error_text(e))
        return _first(response.data)


# Global identity service instance
_identity_service: Optional[IdentityService] = None


def get_identity_service() -> IdentityService:
    """Get or create global identity service instance"""
    global _identity_service
    if _identity_service is None:
        _identity_service = IdentityService()
    return _identity_service
