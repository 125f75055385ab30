"""
Conversation API Endpoints

Agent/investor conversations: get-or-create, listings with unread counts,
history and sending.
"""
from fastapi import APIRouter, Depends
import logging

from fund_connect.auth.dependencies import get_session_context
from fund_connect.config import settings
from fund_connect.models.messaging import (
    ConversationDetail,
    ConversationListResponse,
    ConversationRef,
    ConversationStart,
    Message,
    MessageCreate,
    MessageListResponse,
    UnreadCountResponse,
)
from fund_connect.models.user import SessionContext
from fund_connect.services.conversation_service import ConversationService, get_conversation_service
from fund_connect.services.message_service import MessageService, get_message_service
from fund_connect.services.websocket_service import ConnectionManager, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("", response_model=ConversationRef)
async def start_conversation(
    request: ConversationStart,
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service)
):
    """
    Get or create the conversation between the caller and a counterpart of
    the opposite role. Repeated calls return the same id.
    """
    conversation_id = await conversations.start_conversation(session, request.counterpart_id)
    return ConversationRef(conversation_id=conversation_id)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service)
):
    """The caller's conversations, unread first, then most recent activity"""
    summaries = await conversations.list_conversations(session)
    return ConversationListResponse(
        conversations=summaries,
        total=len(summaries),
        unread_total=sum(summary.unread_count for summary in summaries)
    )


@router.get("/unread", response_model=UnreadCountResponse)
async def unread_total(
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service)
):
    return UnreadCountResponse(unread_total=await conversations.unread_total(session))


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def open_conversation(
    conversation_id: str,
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service)
):
    """Conversation with full history; marks it read for the caller"""
    return await conversations.open_conversation(conversation_id, session)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: str,
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service),
    messages: MessageService = Depends(get_message_service)
):
    conversation = await conversations.get_conversation_for_participant(conversation_id, session)
    history = await messages.load_messages(conversation.id)
    return MessageListResponse(messages=history, total=len(history))


@router.post("/{conversation_id}/messages", response_model=Message, status_code=201)
async def send_message(
    conversation_id: str,
    request: MessageCreate,
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service),
    messages: MessageService = Depends(get_message_service),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    """
    Send a message as the caller.

    Example:
        ```json
        {"content": "Hi Bob, happy to walk you through the fund."}
        ```
    """
    conversation = await conversations.get_conversation_for_participant(conversation_id, session)
    message = await messages.append_message(conversation.id, session.user_id, request.content)

    if not settings.is_realtime_configured:
        await manager.broadcast_new_message(conversation.id, message)
    return message


@router.post("/{conversation_id}/read")
async def mark_read(
    conversation_id: str,
    session: SessionContext = Depends(get_session_context),
    conversations: ConversationService = Depends(get_conversation_service),
    messages: MessageService = Depends(get_message_service)
):
    conversation = await conversations.get_conversation_for_participant(conversation_id, session)
    read_at = await messages.mark_read(conversation.id, session.role)
    return {"conversation_id": conversation.id, "read_at": read_at.isoformat()}
