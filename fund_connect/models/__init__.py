"""Pydantic models"""
from fund_connect.models.roles import Role, RoleResolution, RoleCheck
from fund_connect.models.user import User, SessionContext
from fund_connect.models.messaging import Conversation, Message

__all__ = [
    "Role",
    "RoleResolution",
    "RoleCheck",
    "User",
    "SessionContext",
    "Conversation",
    "Message",
]
