"""
Conversation Service

Get-or-create semantics for one-to-one agent/investor conversations, plus
participant checks and per-user conversation listings.
"""
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from supabase import Client

from fund_connect.models.messaging import Conversation, ConversationDetail, ConversationSummary
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext
from fund_connect.services.errors import (
    BackendError,
    InvalidInputError,
    PermissionDeniedError,
    RecordNotFoundError,
    classify_backend_error,
)
from fund_connect.services.identity_service import IdentityService, get_identity_service
from fund_connect.services.message_service import MessageService, get_message_service
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now_iso, parse_timestamp

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

logger = logging.getLogger(__name__)

PAIR_CONFLICT_COLUMNS = "agent_id,investor_id"


def require_role(session: SessionContext) -> Role:
    """
    Role of the caller.

    Raises:
        PermissionDeniedError: If the caller is neither agent nor investor
    """
    if session.role is None:
        raise PermissionDeniedError("Your account is not set up as an investor or agent")
    return session.role


class ConversationService:
    """Service for agent/investor conversations in Supabase"""

    def __init__(
        self,
        supabase_client: Optional[Client] = None,
        identity_service: Optional[IdentityService] = None,
        message_service: Optional[MessageService] = None
    ):
        self._client = supabase_client
        self.identity = identity_service or IdentityService(supabase_client)
        self.messages = message_service or MessageService(supabase_client)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ============ Get or Create ============

    async def get_or_create_conversation(self, agent_id: str, investor_id: str) -> str:
        """
        Return the conversation between an agent and an investor, creating it
        on first contact.

        The pair is looked up first; when absent a row is inserted as an
        upsert on the (agent_id, investor_id) unique key that ignores
        duplicates, then re-read if a concurrent insert won.

        Args:
            agent_id: Agent user UUID
            investor_id: Investor user UUID

        Returns:
            Conversation UUID

        Raises:
            InvalidInputError: Missing id (checked before any backend call)
            PermissionDeniedError: RLS rejected the query or insert
            BackendError: Query or insert failed
        """
        if not agent_id or not investor_id:
            raise InvalidInputError("Both agent_id and investor_id are required")

        try:
            existing = self._find_pair(agent_id, investor_id)
            if existing:
                return existing["id"]

            row = {
                "agent_id": agent_id,
                "investor_id": investor_id,
                "created_at": utc_now_iso(),
                "agent_last_read": None,
                "investor_last_read": None,
            }
            response = (
                self.client.table("conversations")
                .upsert(row, on_conflict=PAIR_CONFLICT_COLUMNS, ignore_duplicates=True)
                .execute()
            )
            if response.data:
                conversation_id = response.data[0]["id"]
                logger.info(f"Created conversation {conversation_id} between agent {agent_id} and investor {investor_id}")
                return conversation_id

            # Lost a race with a concurrent first contact
            existing = self._find_pair(agent_id, investor_id)
        except Exception as e:
            logger.error(f"Error getting or creating conversation ({agent_id}, {investor_id}): {e}")
            raise classify_backend_error(e, "start conversation")

        if not existing:
            raise BackendError("Failed to start conversation", details="Insert returned no row")
        return existing["id"]

    def _find_pair(self, agent_id: str, investor_id: str) -> Optional[Dict[str, Any]]:
        response = (
            self.client.table("conversations")
            .select("*")
            .eq("agent_id", agent_id)
            .eq("investor_id", investor_id)
            .execute()
        )
        rows = response.data or []
        if len(rows) > 1:
            logger.warning(f"{len(rows)} conversations exist for agent {agent_id} and investor {investor_id}")
        return rows[0] if rows else None

    async def start_conversation(self, session: SessionContext, counterpart_id: str) -> str:
        """
        Open the conversation between the caller and a counterpart of the
        opposite role.

        Raises:
            InvalidInputError: Missing counterpart id
            PermissionDeniedError: Caller has no role
            RecordNotFoundError: Counterpart is not registered in the opposite role
        """
        role = require_role(session)
        if not counterpart_id:
            raise InvalidInputError("Counterpart ID is required")

        counterpart_role = role.counterpart
        counterpart = await self.identity.get_record(counterpart_role, counterpart_id)
        if not counterpart:
            raise RecordNotFoundError(f"{counterpart_role.value.capitalize()} not found")

        if role is Role.AGENT:
            return await self.get_or_create_conversation(session.user_id, counterpart_id)
        return await self.get_or_create_conversation(counterpart_id, session.user_id)

    # ============ Lookup ============

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """
        Single conversation row.

        Raises:
            InvalidInputError: Missing id
            RecordNotFoundError: No such conversation
        """
        if not conversation_id:
            raise InvalidInputError("Conversation ID is required")

        try:
            response = self.client.table("conversations").select("*").eq("id", conversation_id).execute()
        except Exception as e:
            logger.error(f"Error fetching conversation {conversation_id}: {e}")
            raise classify_backend_error(e, "fetch conversation")

        if not response.data:
            raise RecordNotFoundError("Conversation not found")
        return Conversation(**response.data[0])

    async def get_conversation_for_participant(
        self,
        conversation_id: str,
        session: SessionContext
    ) -> Conversation:
        """
        Conversation the caller participates in.

        Raises:
            InvalidInputError: Missing id
            PermissionDeniedError: Caller has no role or is not the participant of their role
            RecordNotFoundError: No such conversation
        """
        if not conversation_id:
            raise InvalidInputError("Conversation ID is required")
        role = require_role(session)
        conversation = await self.get_conversation(conversation_id)

        if getattr(conversation, role.participant_field) != session.user_id:
            logger.warning(
                f"User {session.user_id} ({role.value}) denied access to conversation {conversation_id}"
            )
            raise PermissionDeniedError("You don't have permission to view this conversation")
        return conversation

    async def open_conversation(self, conversation_id: str, session: SessionContext) -> ConversationDetail:
        """
        Load a conversation with its full history and mark it read for the caller.
        """
        conversation = await self.get_conversation_for_participant(conversation_id, session)
        role = session.role
        counterpart_id = getattr(conversation, role.counterpart.participant_field)

        messages = await self.messages.load_messages(conversation.id)
        await self.messages.mark_read(conversation.id, role)

        return ConversationDetail(
            conversation=conversation,
            counterpart_id=counterpart_id,
            counterpart_name=await self._counterpart_name(role.counterpart, counterpart_id, {}),
            messages=messages,
        )

    # ============ Listing ============

    async def list_conversations(self, session: SessionContext) -> List[ConversationSummary]:
        """
        The caller's conversations with counterpart name, last message and
        unread count; conversations with unread messages first, then by most
        recent activity.
        """
        role = require_role(session)

        try:
            response = (
                self.client.table("conversations")
                .select("*")
                .eq(role.participant_field, session.user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching conversations for {session.user_id}: {e}")
            raise classify_backend_error(e, "fetch conversations")

        names: Dict[str, str] = {}
        summaries = []
        for row in response.data or []:
            conversation = Conversation(**row)
            counterpart_id = getattr(conversation, role.counterpart.participant_field)
            last = await self.messages.last_messages(conversation.id, limit=1)
            unread = await self.messages.count_unread(
                conversation.id,
                session.user_id,
                getattr(conversation, role.last_read_field)
            )
            summaries.append(ConversationSummary(
                id=conversation.id,
                counterpart_id=counterpart_id,
                counterpart_name=await self._counterpart_name(role.counterpart, counterpart_id, names),
                last_message=last[0] if last else None,
                unread_count=unread,
                created_at=conversation.created_at,
            ))

        summaries.sort(key=_activity_key, reverse=True)
        logger.info(f"Listed {len(summaries)} conversations for {role.value} {session.user_id}")
        return summaries

    async def unread_total(self, session: SessionContext) -> int:
        summaries = await self.list_conversations(session)
        return sum(summary.unread_count for summary in summaries)

    async def _counterpart_name(self, role: Role, user_id: str, cache: Dict[str, str]) -> str:
        if user_id in cache:
            return cache[user_id]
        name = role.value.capitalize()
        try:
            record = await self.identity.get_record(role, user_id)
            if record and record.get("name"):
                name = str(record["name"])
        except BackendError as e:
            logger.warning(f"Could not load {role.value} {user_id} name: {e.details}")
        cache[user_id] = name
        return name


def _activity_key(summary: ConversationSummary):
    activity = summary.last_message.timestamp if summary.last_message else summary.created_at
    return (summary.unread_count, parse_timestamp(activity) or EPOCH)


# Global conversation service instance
_conversation_service: Optional[ConversationService] = None


def get_conversation_service() -> ConversationService:
    """Get or create global conversation service instance"""
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService(
            identity_service=get_identity_service(),
            message_service=get_message_service()
        )
    return _conversation_service
