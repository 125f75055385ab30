"""Business logic services"""
from .errors import (
    FundConnectError,
    InvalidInputError,
    PermissionDeniedError,
    RecordNotFoundError,
    BackendError,
)
from .identity_service import IdentityService, get_identity_service
from .conversation_service import ConversationService, get_conversation_service
from .message_service import MessageService, get_message_service

__all__ = [
    "FundConnectError",
    "InvalidInputError",
    "PermissionDeniedError",
    "RecordNotFoundError",
    "BackendError",
    "IdentityService",
    "get_identity_service",
    "ConversationService",
    "get_conversation_service",
    "MessageService",
    "get_message_service",
]
