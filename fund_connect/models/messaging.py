"""
Messaging Models

Pydantic models for agent/investor conversations and their messages.
"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime


# Request Models

class ConversationStart(BaseModel):
    """Schema for opening (or reopening) a conversation with a counterpart"""
    counterpart_id: str = Field(..., min_length=1, description="User UUID of the agent or investor to message")

    class Config:
        json_schema_extra = {
            "example": {"counterpart_id": "i1"}
        }


class MessageCreate(BaseModel):
    """Schema for sending a message; emptiness is checked by the service"""
    content: str = Field(..., description="Message text")

    class Config:
        json_schema_extra = {
            "example": {"content": "Hi Bob, happy to walk you through the fund."}
        }


# Response Models

class Conversation(BaseModel):
    """Row of the conversations table"""
    id: str = Field(..., description="Conversation UUID")
    agent_id: str = Field(..., description="Agent user UUID")
    investor_id: str = Field(..., description="Investor user UUID")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    agent_last_read: Optional[datetime] = Field(None, description="When the agent last read the thread")
    investor_last_read: Optional[datetime] = Field(None, description="When the investor last read the thread")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "c0ffee00-0000-0000-0000-000000000001",
                "agent_id": "a1",
                "investor_id": "i1",
                "created_at": "2025-10-10T10:00:00Z",
                "agent_last_read": None,
                "investor_last_read": "2025-10-10T10:05:00Z"
            }
        }


class Message(BaseModel):
    """Row of the messages table (or an optimistic local copy of one)"""
    id: str = Field(..., description="Message UUID, or temp-N while unconfirmed")
    conversation_id: str = Field(..., description="Conversation UUID")
    sender_id: str = Field(..., description="User UUID of the sender")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(..., description="Send time")
    pending: bool = Field(False, description="True while only held locally")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "m1",
                "conversation_id": "c0ffee00-0000-0000-0000-000000000001",
                "sender_id": "a1",
                "content": "Hi Bob",
                "timestamp": "2025-10-10T10:01:00Z",
                "pending": False
            }
        }


class ConversationRef(BaseModel):
    """Identifier returned by get-or-create"""
    conversation_id: str


class ConversationSummary(BaseModel):
    """Conversation list entry for one participant"""
    id: str
    counterpart_id: str
    counterpart_name: str
    last_message: Optional[Message] = None
    unread_count: int = 0
    created_at: Optional[datetime] = None


class ConversationListResponse(BaseModel):
    """Schema for list of conversations"""
    conversations: List[ConversationSummary]
    total: int
    unread_total: int


class ConversationDetail(BaseModel):
    """A conversation with its counterpart and full history"""
    conversation: Conversation
    counterpart_id: str
    counterpart_name: str
    messages: List[Message]


class MessageListResponse(BaseModel):
    """Schema for list of messages"""
    messages: List[Message]
    total: int


class UnreadCountResponse(BaseModel):
    unread_total: int
