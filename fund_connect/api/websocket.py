"""
WebSocket API Endpoint
Live conversation channel: history snapshot, optimistic sends and pushed messages
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query, status
import asyncio
import json
import logging
from typing import Optional

from fund_connect.auth.jwt_handler import extract_user_from_token, JWTValidationError
from fund_connect.config import settings
from fund_connect.models.messaging import Message
from fund_connect.models.user import SessionContext
from fund_connect.services.conversation_service import ConversationService, get_conversation_service
from fund_connect.services.errors import FundConnectError
from fund_connect.services.identity_service import IdentityService, get_identity_service
from fund_connect.services.message_service import MessageService, get_message_service
from fund_connect.services.realtime_service import (
    ConversationFeed,
    MessageThread,
    RealtimeService,
    get_realtime_service,
)
from fund_connect.services.websocket_service import get_connection_manager, message_frame
from fund_connect.utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def authenticate_websocket(token: Optional[str], identity: IdentityService) -> SessionContext:
    """
    Session for a WebSocket token.

    Raises:
        JWTValidationError: Missing or invalid token
    """
    if not token:
        raise JWTValidationError("Token is required")
    user = extract_user_from_token(token)
    resolution = await identity.resolve_role(user.user_id)
    if resolution is None:
        return SessionContext(user=user)
    return SessionContext(user=user, role=resolution.role, record=resolution.record)


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_websocket(
    websocket: WebSocket,
    conversation_id: str,
    token: Optional[str] = Query(None, description="Supabase access token"),
    identity: IdentityService = Depends(get_identity_service),
    conversations: ConversationService = Depends(get_conversation_service),
    messages: MessageService = Depends(get_message_service),
    realtime: RealtimeService = Depends(get_realtime_service)
):
    """
    Live conversation channel.

    **Connection URL:**
    ```
    ws://your-api.com/ws/conversations/{conversation_id}?token={jwt_token}
    ```

    **Frames sent by the server:**
    - `connection_established` once accepted
    - `history` with every message, oldest first
    - `new_message` for each message not yet seen by this socket
    - `message_pending`, then `message_confirmed` or `message_failed` for each send
    - `ping` after 30 seconds of silence, `pong` in reply to a client `ping`
    - `error` for unreadable frames

    **Frames accepted from the client:**
    ```json
    {"type": "send_message", "content": "Hello"}
    {"type": "ping"}
    ```

    The caller must be the conversation's agent or investor; otherwise the
    socket is closed with a policy-violation code before it is accepted.
    """
    manager = get_connection_manager()

    if not settings.WEBSOCKET_ENABLED:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        session = await authenticate_websocket(token, identity)
        await conversations.get_conversation_for_participant(conversation_id, session)
    except JWTValidationError as e:
        logger.warning(f"Rejected WebSocket for conversation {conversation_id}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    except FundConnectError as e:
        logger.warning(f"Rejected WebSocket for conversation {conversation_id}: {e.message}")
        code = status.WS_1011_INTERNAL_ERROR if e.status_code >= 500 else status.WS_1008_POLICY_VIOLATION
        await websocket.close(code=code)
        return

    await websocket.accept()

    async def push(message: Message) -> None:
        await manager.send_personal_message(message_frame("new_message", message), websocket)

    async def pending(message: Message) -> None:
        await manager.send_personal_message(message_frame("message_pending", message), websocket)

    feed: Optional[ConversationFeed] = None
    try:
        history = await messages.load_messages(conversation_id)
        feed = ConversationFeed(
            session=session,
            thread=MessageThread(conversation_id, history),
            message_service=messages,
            on_message=push,
            realtime_service=realtime if settings.is_realtime_configured else None,
        )
        await manager.connect(websocket, conversation_id, session.user_id, feed=feed)

        await manager.send_personal_message(
            {
                "type": "connection_established",
                "message": f"Connected to conversation {conversation_id}",
                "connection_count": manager.get_connection_count(conversation_id)
            },
            websocket
        )
        await manager.send_personal_message(
            {
                "type": "history",
                "timestamp": utc_now_iso(),
                "data": [message.model_dump(mode="json") for message in feed.thread.messages]
            },
            websocket
        )
        await messages.mark_read(conversation_id, session.role)

        try:
            await feed.start()
        except RuntimeError as e:
            logger.error(f"Realtime subscription for conversation {conversation_id} failed: {e}")

        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.WEBSOCKET_KEEPALIVE_SECONDS
                )
            except asyncio.TimeoutError:
                await manager.send_personal_message(
                    {"type": "ping", "timestamp": utc_now_iso(), "message": "keepalive"},
                    websocket
                )
                continue

            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_personal_message({"type": "error", "error": "Frames must be JSON"}, websocket)
                continue

            frame_type = frame.get("type", "") if isinstance(frame, dict) else ""

            if frame_type == "ping":
                await manager.send_personal_message({"type": "pong", "timestamp": utc_now_iso()}, websocket)

            elif frame_type == "pong":
                logger.debug(f"Received pong from user={session.user_id}")

            elif frame_type == "send_message":
                content = frame.get("content")
                try:
                    temp, message = await feed.send(content, on_pending=pending)
                except FundConnectError as e:
                    payload = e.to_payload()
                    payload.setdefault("restored_content", content)
                    await manager.send_personal_message({"type": "message_failed", **payload}, websocket)
                    continue

                await manager.send_personal_message(
                    message_frame("message_confirmed", message, temp_id=temp.id),
                    websocket
                )
                if not settings.is_realtime_configured:
                    await manager.broadcast_new_message(conversation_id, message)

            else:
                await manager.send_personal_message(
                    {"type": "error", "error": f"Unknown frame type: {frame_type or 'missing'}"},
                    websocket
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user={session.user_id}, conversation={conversation_id}")

    except FundConnectError as e:
        logger.error(f"WebSocket for conversation {conversation_id} failed: {e.message} ({e.details})")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)

    finally:
        if feed is not None:
            await feed.close()
        manager.disconnect(websocket)


@router.get(
    "/ws/stats",
    summary="Get WebSocket connection statistics",
    description="Get statistics about active conversation WebSocket connections"
)
async def get_websocket_stats():
    """
    **Response Example:**
    ```json
    {
        "total_connections": 3,
        "conversations_with_connections": 2,
        "connections_by_conversation": {"c1": 2, "c2": 1}
    }
    ```
    """
    stats = get_connection_manager().get_stats()
    logger.info(f"WebSocket stats requested: {stats}")
    return stats
