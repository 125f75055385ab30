"""
Registration Service

Creates agent and investor records: role assignment with defaults, profile
registration after sign-up, and agent-issued invitation codes.
"""
import logging
import secrets
import string
from typing import Any, Dict, List, Optional
from supabase import Client

from fund_connect.config import settings
from fund_connect.models.roles import (
    AssignRoleResponse,
    Invitation,
    InvestorRecord,
    RegistrationResponse,
    Role,
)
from fund_connect.models.user import User
from fund_connect.services.errors import (
    BackendError,
    InvalidInputError,
    PermissionDeniedError,
    error_text,
    is_rls_violation,
)
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_invitation_code(length: Optional[int] = None) -> str:
    """Random uppercase alphanumeric code"""
    length = length or settings.INVITATION_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _sql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return "'" + str(value).replace("'", "''") + "'"


def repair_insert_sql(table: str, row: Dict[str, Any]) -> str:
    """INSERT statement an operator can run by hand to create ``row``"""
    columns = ", ".join(row)
    values = ", ".join(_sql_literal(value) for value in row.values())
    return f"INSERT INTO {table} ({columns}) VALUES ({values});"


class RegistrationService:
    """Service for creating platform role records"""

    def __init__(self, supabase_client: Optional[Client] = None):
        self._client = supabase_client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ============ Role Assignment ============

    async def assign_role(self, user_id: Optional[str], role: Optional[str]) -> AssignRoleResponse:
        """
        Give a user a role with a default record unless they already have it.

        Args:
            user_id: Auth user UUID
            role: 'agent' or 'investor'

        Returns:
            AssignRoleResponse

        Raises:
            InvalidInputError: Missing user id or unknown role
            BackendError: The existence check or both insert strategies
                failed; ``extra["sqlCommand"]`` holds the manual insert
        """
        if not user_id:
            raise InvalidInputError("User ID is required")
        if role not in (Role.AGENT.value, Role.INVESTOR.value):
            raise InvalidInputError("Valid role (agent or investor) is required")
        role = Role(role)

        logger.info(f"Assigning role {role.value} to user {user_id}")

        exists, existing = self._role_exists(role, user_id)
        if exists:
            logger.info(f"User {user_id} already has {role.value} role")
            return AssignRoleResponse(message=f"User already has {role.value} role", data=existing)

        row = self._default_record(role, user_id)
        data = self._insert_record(role, row)
        logger.info(f"Assigned {role.value} role to user {user_id}")
        return AssignRoleResponse(message=f"Successfully assigned {role.value} role to user", data=data)

    def _role_exists(self, role: Role, user_id: str):
        try:
            response = self.client.rpc(
                "check_user_role",
                {"user_id_param": user_id, "table_name_param": role.table}
            ).execute()
            payload = response.data[0] if isinstance(response.data, list) and response.data else response.data
            return bool(isinstance(payload, dict) and payload.get("exists")), None
        except Exception as e:
            rpc_error = error_text(e)
            logger.warning(f"check_user_role procedure failed, using direct query: {rpc_error}")

        try:
            response = self.client.table(role.table).select("*").eq("user_id", user_id).execute()
        except Exception as e:
            logger.error(f"Error checking existing {role.value} role for {user_id}: {error_text(e)}")
            raise BackendError(f"Error checking existing {role.value} role", details=rpc_error)

        rows = response.data or []
        return bool(rows), (rows[0] if rows else None)

    def _default_record(self, role: Role, user_id: str) -> Dict[str, Any]:
        if role is Role.AGENT:
            return {
                "user_id": user_id,
                "name": settings.DEFAULT_AGENT_NAME,
                "firm": settings.DEFAULT_AGENT_FIRM,
            }
        return {
            "user_id": user_id,
            "name": settings.DEFAULT_INVESTOR_NAME,
            "approved": True,
        }

    def _insert_record(self, role: Role, row: Dict[str, Any]) -> Any:
        try:
            response = self.client.table(role.table).insert(row).execute()
            return response.data
        except Exception as e:
            insert_error = error_text(e)
            logger.warning(f"Direct {role.table} insert failed, trying procedure: {insert_error}")

        params = {f"{column}_param": value for column, value in row.items()}
        try:
            self.client.rpc(f"insert_{role.value}", params).execute()
            logger.info(f"{role.value.capitalize()} record for {row['user_id']} created via procedure")
            return {"success": True}
        except Exception as e:
            logger.error(f"insert_{role.value} procedure failed: {error_text(e)}")

        sql_command = repair_insert_sql(role.table, row)
        logger.error(f"Manual SQL command to run: {sql_command}")
        raise BackendError(
            f"Error assigning {role.value} role",
            details=insert_error,
            extra={"sqlCommand": sql_command}
        )

    # ============ Registration ============

    async def register_profile(
        self,
        user: User,
        role: Role,
        name: str,
        firm: Optional[str] = None,
        invitation_code: Optional[str] = None
    ) -> RegistrationResponse:
        """
        Create the caller's agent or investor record after sign-up.

        Investors with a valid invitation code are linked to the inviting
        agent and approved immediately; others wait for approval.

        Raises:
            InvalidInputError: Empty name, or an agent without a firm
            PermissionDeniedError: RLS rejected the insert
            BackendError: Insert failed
        """
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Name is required")

        if role is Role.AGENT:
            if not (firm or "").strip():
                raise InvalidInputError("Firm is required for agents")
            row = {
                "user_id": user.user_id,
                "name": name,
                "firm": firm.strip(),
                "broker_dealer_verified": False,
            }
        else:
            agent_id = await self.resolve_invitation(invitation_code) if invitation_code else None
            row = {
                "user_id": user.user_id,
                "name": name,
                "introducing_agent_id": agent_id,
                "approved": agent_id is not None,
            }

        try:
            response = self.client.table(role.table).insert(row).execute()
        except Exception as e:
            logger.error(f"Error registering {role.value} {user.user_id}: {error_text(e)}")
            if is_rls_violation(e):
                raise PermissionDeniedError(
                    f"Database security policy prevented creating your {role.value} profile. "
                    f"Ask an administrator to allow {role.table} inserts for authenticated users.",
                    details=error_text(e)
                )
            raise BackendError(f"Failed to create {role.value} profile", details=error_text(e))

        record = response.data[0] if response.data else row
        logger.info(f"Registered {user.user_id} as {role.value}")
        return RegistrationResponse(
            role=role,
            record=record,
            approved=row.get("approved") if role is Role.INVESTOR else None,
        )

    async def resolve_invitation(self, code: str) -> Optional[str]:
        """Agent id behind an invitation code, None when unknown"""
        normalized = code.strip().upper()
        if not normalized:
            return None
        try:
            response = self.client.table("invitation_codes").select("*").eq("code", normalized).execute()
        except Exception as e:
            logger.error(f"Error looking up invitation code {normalized}: {error_text(e)}")
            raise BackendError("Failed to look up invitation code", details=error_text(e))

        if not response.data:
            logger.warning(f"Invitation code {normalized} not found; investor will await approval")
            return None
        return response.data[0].get("agent_id")

    # ============ Invitations ============

    async def create_invitation(self, agent_id: str, investor_name: str, investor_email: str) -> Invitation:
        """
        Issue an invitation code and record the invited investor.

        Failure to record the pending investor is logged; the code is still
        returned.
        """
        code = generate_invitation_code()
        try:
            self.client.table("invitation_codes").insert({
                "code": code,
                "agent_id": agent_id,
                "created_at": utc_now_iso(),
            }).execute()
        except Exception as e:
            logger.error(f"Error creating invitation code for agent {agent_id}: {error_text(e)}")
            if is_rls_violation(e):
                raise PermissionDeniedError("Not allowed to create invitations", details=error_text(e))
            raise BackendError("Failed to create invitation", details=error_text(e))

        recorded = True
        try:
            self.client.table("pending_investors").insert({
                "name": investor_name,
                "email": investor_email,
                "invitation_code": code,
                "agent_id": agent_id,
                "created_at": utc_now_iso(),
            }).execute()
        except Exception as e:
            recorded = False
            logger.error(f"Error recording pending investor for code {code}: {error_text(e)}")

        logger.info(f"Agent {agent_id} created invitation {code}")
        return Invitation(code=code, agent_id=agent_id, pending_investor_recorded=recorded)

    async def list_introduced_investors(self, agent_id: str) -> List[InvestorRecord]:
        try:
            response = (
                self.client.table("investors")
                .select("*")
                .eq("introducing_agent_id", agent_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching investors of agent {agent_id}: {error_text(e)}")
            raise BackendError("Failed to fetch investors", details=error_text(e))
        return [InvestorRecord(**row) for row in response.data or []]


# Global registration service instance
_registration_service: Optional[RegistrationService] = None


def get_registration_service() -> RegistrationService:
    """Get or create global registration service instance"""
    global _registration_service
    if _registration_service is None:
        _registration_service = RegistrationService()
    return _registration_service
