"""
Message Service

Service layer for conversation messages and per-participant read markers.
"""
import logging
from typing import List, Optional, Union
from datetime import datetime
from supabase import Client

from fund_connect.config import settings
from fund_connect.models.messaging import Message
from fund_connect.models.roles import Role
from fund_connect.services.errors import BackendError, InvalidInputError, classify_backend_error
from fund_connect.services.supabase_client import get_supabase_client
from fund_connect.utils import utc_now, parse_timestamp

logger = logging.getLogger(__name__)


def validate_content(content: Optional[str]) -> str:
    """
    Normalize message text.

    Raises:
        InvalidInputError: If the content is not text, or is blank or too long
    """
    if content is not None and not isinstance(content, str):
        raise InvalidInputError("Message content must be text")
    text = (content or "").strip()
    if not text:
        raise InvalidInputError("Message content cannot be empty")
    if len(text) > settings.MESSAGE_MAX_LENGTH:
        raise InvalidInputError(
            f"Message content exceeds {settings.MESSAGE_MAX_LENGTH} characters"
        )
    return text


def sort_messages(messages: List[Message]) -> List[Message]:
    """Ascending by timestamp; same-timestamp messages ordered by id"""
    return sorted(messages, key=lambda message: (message.timestamp, message.id))


class MessageService:
    """Appends, loads and marks messages as read"""

    def __init__(self, supabase_client: Optional[Client] = None):
        self._client = supabase_client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def append_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        """
        Persist a new message.

        Validation happens before any backend call. The timestamp is assigned
        here, in UTC. Read markers are not touched.

        Args:
            conversation_id: UUID of the conversation
            sender_id: User UUID of the sender
            content: Message text

        Returns:
            The stored message

        Raises:
            InvalidInputError: Missing ids or empty content
            PermissionDeniedError: RLS rejected the insert
            BackendError: Insert failed
        """
        if not conversation_id:
            raise InvalidInputError("Conversation ID is required")
        if not sender_id:
            raise InvalidInputError("Sender ID is required")
        text = validate_content(content)

        data = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": text,
            "timestamp": utc_now().isoformat(),
        }

        try:
            response = self.client.table("messages").insert(data).execute()
        except Exception as e:
            logger.error(f"Error sending message to conversation {conversation_id}: {e}")
            raise classify_backend_error(e, "send message")

        if not response.data:
            raise BackendError("Failed to send message", details="Insert returned no row")

        message = Message(**response.data[0])
        logger.info(f"Message {message.id} sent by {sender_id} in conversation {conversation_id}")
        return message

    async def load_messages(self, conversation_id: str) -> List[Message]:
        """
        Entire history of a conversation, oldest first.

        Raises:
            InvalidInputError: Missing conversation id
            PermissionDeniedError / BackendError: Query failed
        """
        if not conversation_id:
            raise InvalidInputError("Conversation ID is required")

        try:
            response = (
                self.client.table("messages")
                .select("*")
                .eq("conversation_id", conversation_id)
                .order("timestamp", desc=False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error loading messages for conversation {conversation_id}: {e}")
            raise classify_backend_error(e, "load messages")

        messages = sort_messages([Message(**row) for row in response.data or []])
        logger.info(f"Loaded {len(messages)} messages for conversation {conversation_id}")
        return messages

    async def mark_read(self, conversation_id: str, reader_role: Union[Role, str]) -> datetime:
        """
        Set the reader's last-read marker to now.

        Only the marker of ``reader_role`` is written.

        Returns:
            The timestamp written

        Raises:
            InvalidInputError: Missing id or unknown role
            PermissionDeniedError / BackendError: Update failed
        """
        if not conversation_id:
            raise InvalidInputError("Conversation ID is required")
        try:
            role = Role(reader_role)
        except ValueError:
            raise InvalidInputError(f"Unknown reader role: {reader_role}")

        read_at = utc_now()
        try:
            (
                self.client.table("conversations")
                .update({role.last_read_field: read_at.isoformat()})
                .eq("id", conversation_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error marking conversation {conversation_id} read: {e}")
            raise classify_backend_error(e, "mark conversation as read")

        logger.debug(f"Marked conversation {conversation_id} read for {role.value}")
        return read_at

    async def last_messages(self, conversation_id: str, limit: int = 1) -> List[Message]:
        """Newest messages of a conversation, newest first"""
        try:
            response = (
                self.client.table("messages")
                .select("*")
                .eq("conversation_id", conversation_id)
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching last messages for conversation {conversation_id}: {e}")
            raise classify_backend_error(e, "load messages")
        return [Message(**row) for row in response.data or []]

    async def count_unread(
        self,
        conversation_id: str,
        reader_id: str,
        last_read: Optional[Union[datetime, str]]
    ) -> int:
        """
        Messages from the other participant newer than the reader's marker;
        every message from the other participant when the marker is unset.
        """
        query = (
            self.client.table("messages")
            .select("id", count="exact")
            .eq("conversation_id", conversation_id)
            .neq("sender_id", reader_id)
        )
        marker = parse_timestamp(last_read)
        if marker is not None:
            query = query.gt("timestamp", marker.isoformat())

        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error counting unread messages for conversation {conversation_id}: {e}")
            raise classify_backend_error(e, "count unread messages")

        if response.count is not None:
            return response.count
        return len(response.data or [])


# Global message service instance
_message_service: Optional[MessageService] = None


def get_message_service() -> MessageService:
    """Get or create global message service instance"""
    global _message_service
    if _message_service is None:
        _message_service = MessageService()
    return _message_service
