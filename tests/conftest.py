"""Pytest configuration and fixtures for Fund Connect tests.

Services are built over an in-memory FakeSupabase; nothing talks to a real
Supabase project. JWTs are real HS256 tokens signed with a test secret.
"""

import pytest

from fund_connect.config import settings
from fund_connect.models.roles import Role
from fund_connect.models.user import SessionContext
from fund_connect.services.conversation_service import ConversationService
from fund_connect.services.identity_service import IdentityService
from fund_connect.services.message_service import MessageService
from tests.fakes import FakeSupabase
from tests.helpers import AGENT_ID, INVESTOR_ID, OTHER_INVESTOR_ID, TEST_JWT_SECRET, make_session


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings: auth on, Realtime off, bulk scan on"""
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "SUPABASE_JWT_AUDIENCE", "authenticated")
    monkeypatch.setattr(settings, "REALTIME_ENABLED", False)
    monkeypatch.setattr(settings, "WEBSOCKET_ENABLED", True)
    monkeypatch.setattr(settings, "ROLE_BULK_SCAN_FALLBACK", True)
    monkeypatch.setattr(settings, "MESSAGE_MAX_LENGTH", 5000)
    yield settings


@pytest.fixture
def db() -> FakeSupabase:
    """Fake Supabase with one agent and two investors"""
    fake = FakeSupabase()
    fake.seed("agents", {"user_id": AGENT_ID, "name": "Alice", "firm": "Harbor Partners"})
    fake.seed(
        "investors",
        {"user_id": INVESTOR_ID, "name": "Bob", "approved": True},
        {"user_id": OTHER_INVESTOR_ID, "name": "Carol", "approved": True},
    )
    return fake


@pytest.fixture
def identity(db) -> IdentityService:
    return IdentityService(db)


@pytest.fixture
def messages(db) -> MessageService:
    return MessageService(db)


@pytest.fixture
def conversations(db, identity, messages) -> ConversationService:
    return ConversationService(db, identity_service=identity, message_service=messages)


@pytest.fixture
def agent_session() -> SessionContext:
    return make_session(AGENT_ID, Role.AGENT, "Alice")


@pytest.fixture
def investor_session() -> SessionContext:
    return make_session(INVESTOR_ID, Role.INVESTOR, "Bob")


@pytest.fixture
def other_investor_session() -> SessionContext:
    return make_session(OTHER_INVESTOR_ID, Role.INVESTOR, "Carol")
