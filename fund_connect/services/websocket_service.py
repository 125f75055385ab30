"""
WebSocket Service
Tracks open conversation sockets and fans new messages out to them
"""
from fastapi import WebSocket
from typing import Any, Dict, List, Optional, Set
import logging

from fund_connect.models.messaging import Message
from fund_connect.services.errors import FundConnectError
from fund_connect.utils import utc_now, utc_now_iso

logger = logging.getLogger(__name__)


def message_frame(frame_type: str, message: Message, **extra: Any) -> Dict[str, Any]:
    """JSON frame carrying a message"""
    return {
        "type": frame_type,
        "timestamp": utc_now_iso(),
        "data": message.model_dump(mode="json"),
        **extra
    }


class ConnectionManager:
    """
    Manages WebSocket connections per conversation.

    Each socket may carry a ``ConversationFeed``; when present, broadcasts go
    through the feed so duplicates are dropped and read markers updated.
    """

    def __init__(self):
        # {conversation_id: Set[WebSocket]}
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # {WebSocket: {"conversation_id", "user_id", "feed", "connected_at"}}
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(
        self,
        websocket: WebSocket,
        conversation_id: str,
        user_id: Optional[str] = None,
        feed: Any = None
    ):
        """
        Register an accepted WebSocket connection.

        Args:
            websocket: WebSocket connection instance (already accepted)
            conversation_id: Conversation UUID
            user_id: Connected user UUID
            feed: Optional ConversationFeed bound to this socket
        """
        self.active_connections.setdefault(conversation_id, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "conversation_id": conversation_id,
            "user_id": user_id,
            "feed": feed,
            "connected_at": utc_now()
        }

        logger.info(
            f"WebSocket connected: conversation={conversation_id}, user={user_id}, "
            f"total_connections={len(self.active_connections[conversation_id])}"
        )

    def disconnect(self, websocket: WebSocket):
        metadata = self.connection_metadata.pop(websocket, {})
        conversation_id = metadata.get("conversation_id")

        if conversation_id and conversation_id in self.active_connections:
            self.active_connections[conversation_id].discard(websocket)
            if not self.active_connections[conversation_id]:
                del self.active_connections[conversation_id]

        logger.info(
            f"WebSocket disconnected: conversation={conversation_id}, user={metadata.get('user_id')}, "
            f"remaining_connections={len(self.active_connections.get(conversation_id, []))}"
        )

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """
        Send a frame to one connection.

        Sockets that turn out to be closed are unregistered.
        """
        if websocket not in self.connection_metadata:
            logger.warning("Attempted to send message to unregistered WebSocket")
            return

        try:
            await websocket.send_json(message)
            logger.debug(f"Sent personal message: type={message.get('type')}")
        except RuntimeError as e:
            logger.error(f"WebSocket not connected: {e}")
            self.disconnect(websocket)

    async def broadcast_new_message(self, conversation_id: str, message: Message):
        """
        Deliver a stored message to every socket open on its conversation.

        Used when Supabase Realtime is disabled.
        """
        connections = list(self.active_connections.get(conversation_id, set()))
        if not connections:
            logger.debug(f"No active connections for conversation {conversation_id}")
            return

        failed = []
        for connection in connections:
            feed = self.connection_metadata.get(connection, {}).get("feed")
            try:
                if feed is not None:
                    await feed.handle_insert(message)
                else:
                    await connection.send_json(message_frame("new_message", message))
            except FundConnectError as e:
                logger.warning(f"Feed could not process message {message.id}: {e.message}")
            except RuntimeError as e:
                logger.error(f"Failed to broadcast to connection: {e}")
                failed.append(connection)

        for connection in failed:
            self.disconnect(connection)

        logger.info(
            f"Broadcast message {message.id} to conversation {conversation_id}: "
            f"sent={len(connections) - len(failed)}, failed={len(failed)}"
        )

    def get_connection_count(self, conversation_id: Optional[str] = None) -> int:
        if conversation_id:
            return len(self.active_connections.get(conversation_id, set()))
        return sum(len(connections) for connections in self.active_connections.values())

    def get_conversations_with_connections(self) -> List[str]:
        return list(self.active_connections.keys())

    def get_stats(self) -> Dict[str, Any]:
        conversations = self.get_conversations_with_connections()
        return {
            "total_connections": self.get_connection_count(),
            "conversations_with_connections": len(conversations),
            "connections_by_conversation": {
                conversation_id: self.get_connection_count(conversation_id)
                for conversation_id in conversations
            }
        }


# Singleton instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get the global ConnectionManager singleton instance"""
    return connection_manager
