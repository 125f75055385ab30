"""
API tests through the FastAPI app.

Services are overridden with instances over FakeSupabase; authentication uses
real HS256 tokens so the bearer and session dependencies run unchanged.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from fund_connect.services.conversation_service import ConversationService, get_conversation_service
from fund_connect.services.fund_service import FundService, get_fund_service
from fund_connect.services.identity_service import IdentityService, get_identity_service
from fund_connect.services.interest_service import InterestService, get_interest_service
from fund_connect.services.message_service import MessageService, get_message_service
from fund_connect.services.profile_service import ProfileService, get_profile_service
from fund_connect.services.registration_service import RegistrationService, get_registration_service
from fund_connect.services.saved_search_service import SavedSearchService, get_saved_search_service
from main import app
from tests.fakes import api_error
from tests.helpers import AGENT_ID, INVESTOR_ID, OTHER_INVESTOR_ID, make_token


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def provide(service):
    """Zero-argument dependency returning the same instance on every request"""
    def dependency():
        return service
    return dependency


@pytest.fixture
def client(db):
    identity = IdentityService(db)
    messages = MessageService(db)
    funds = FundService(db)
    services = {
        get_identity_service: identity,
        get_message_service: messages,
        get_conversation_service: ConversationService(db, identity_service=identity, message_service=messages),
        get_registration_service: RegistrationService(db),
        get_fund_service: funds,
        get_interest_service: InterestService(db, fund_service=funds),
        get_saved_search_service: SavedSearchService(db),
        get_profile_service: ProfileService(db),
    }
    for dependency, service in services.items():
        app.dependency_overrides[dependency] = provide(service)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def conversation(db):
    return db.seed("conversations", {
        "id": "c1",
        "agent_id": AGENT_ID,
        "investor_id": INVESTOR_ID,
        "created_at": "2025-01-01T00:00:00+00:00",
        "agent_last_read": None,
        "investor_last_read": None,
    })[0]


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["realtime_enabled"] is False


class TestAuthentication:
    def test_missing_token_is_rejected(self, client):
        response = client.get("/me")

        assert response.status_code in (401, 403)
        assert "error" in response.json()

    def test_invalid_token_is_401(self, client):
        response = client.get("/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}

    def test_expired_token_is_401(self, client):
        token = make_token(AGENT_ID, expires_in=-60)

        response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"] == "Token has expired"

    def test_me_reports_role(self, client):
        response = client.get("/me", headers=auth(AGENT_ID))

        body = response.json()
        assert response.status_code == 200
        assert body["role"] == "agent"
        assert body["display_name"] == "Alice"
        assert body["token_expires_at"] is not None

    def test_me_without_role(self, client):
        body = client.get("/me", headers=auth("u9")).json()

        assert body["role"] is None
        assert body["display_name"] == "U9"


class TestRoleEndpoints:
    def test_check_role_for_investor(self, client):
        response = client.get("/check-role", params={"userId": INVESTOR_ID}, headers=auth(AGENT_ID))

        assert response.status_code == 200
        assert response.json()["isInvestor"] is True
        assert response.json()["isAgent"] is False

    def test_check_role_unknown_user_is_not_an_error(self, client):
        response = client.get("/check-role", params={"userId": "nobody"}, headers=auth(AGENT_ID))

        assert response.status_code == 200
        assert response.json()["isAgent"] is False
        assert response.json()["isInvestor"] is False

    def test_check_role_requires_user_id(self, client):
        response = client.get("/check-role", headers=auth(AGENT_ID))

        assert response.status_code == 400
        assert response.json() == {"error": "userId is required"}

    def test_directory_failure_is_500_with_details(self, client, db):
        db.fail("agents", "select", api_error("relation does not exist"))

        response = client.get("/get-all-agents", headers=auth(INVESTOR_ID))

        assert response.status_code == 500
        assert response.json()["details"] == "relation does not exist"

    def test_get_conversation_for_participant(self, client, conversation):
        response = client.get("/get-conversation", params={"id": "c1"}, headers=auth(INVESTOR_ID))

        assert response.status_code == 200
        assert response.json()["agent_id"] == AGENT_ID

    def test_get_conversation_denied_to_others(self, client, conversation):
        response = client.get("/get-conversation", params={"id": "c1"}, headers=auth(OTHER_INVESTOR_ID))

        assert response.status_code == 403

    def test_get_conversation_not_found(self, client):
        response = client.get("/get-conversation", params={"id": "nope"}, headers=auth(AGENT_ID))

        assert response.status_code == 404
        assert response.json() == {"error": "Conversation not found"}

    def test_get_conversation_requires_id_before_role(self, client):
        response = client.get("/get-conversation", headers=auth("u9"))

        assert response.status_code == 400
        assert response.json() == {"error": "Conversation ID is required"}

    def test_assign_role_for_someone_else_is_forbidden(self, client, db):
        response = client.post("/assign-role", json={"userId": OTHER_INVESTOR_ID, "role": "agent"}, headers=auth(INVESTOR_ID))

        assert response.status_code == 403
        assert response.json()["error"] == "You can only assign a role to yourself"
        assert OTHER_INVESTOR_ID not in [row["user_id"] for row in db.rows("agents")]

    def test_assign_role_invalid_role(self, client):
        response = client.post("/assign-role", json={"userId": "u9", "role": "admin"}, headers=auth("u9"))

        assert response.status_code == 400
        assert response.json()["error"] == "Valid role (agent or investor) is required"

    def test_assign_role_failure_includes_sql(self, client, db):
        db.fail("investors", "insert", api_error("permission denied"))

        response = client.post("/assign-role", json={"userId": "u9", "role": "investor"}, headers=auth("u9"))

        assert response.status_code == 500
        assert response.json()["sqlCommand"].startswith("INSERT INTO investors")

    def test_register_investor_with_invitation(self, client, db):
        db.seed("invitation_codes", {"code": "ABCD1234", "agent_id": AGENT_ID})

        response = client.post(
            "/register",
            json={"role": "investor", "name": "Erin", "invitation_code": "abcd1234"},
            headers=auth("u9"),
        )

        assert response.status_code == 201
        assert response.json()["approved"] is True

    def test_invitations_are_agent_only(self, client):
        response = client.post(
            "/invitations",
            json={"investor_name": "Erin", "investor_email": "erin@example.com"},
            headers=auth(INVESTOR_ID),
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Requires agent role"}

    def test_role_required_for_role_only_endpoints(self, client):
        response = client.get("/invitations/investors", headers=auth("u9"))

        assert response.status_code == 403
        assert response.json() == {"error": "User has no role assigned"}


class TestConversationEndpoints:
    def test_start_is_idempotent_across_participants(self, client, db):
        first = client.post("/conversations", json={"counterpart_id": INVESTOR_ID}, headers=auth(AGENT_ID))
        second = client.post("/conversations", json={"counterpart_id": AGENT_ID}, headers=auth(INVESTOR_ID))

        assert first.status_code == 200
        assert first.json()["conversation_id"] == second.json()["conversation_id"]
        assert len(db.rows("conversations")) == 1

    def test_start_with_unknown_counterpart(self, client):
        response = client.post("/conversations", json={"counterpart_id": "ghost"}, headers=auth(AGENT_ID))

        assert response.status_code == 404

    def test_malformed_body_is_400(self, client):
        response = client.post("/conversations", json={}, headers=auth(AGENT_ID))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_send_then_list_unread(self, client, conversation):
        sent = client.post("/conversations/c1/messages", json={"content": "Hi Bob"}, headers=auth(AGENT_ID))
        listing = client.get("/conversations", headers=auth(INVESTOR_ID)).json()

        assert sent.status_code == 201
        assert sent.json()["sender_id"] == AGENT_ID
        assert listing["unread_total"] == 1
        assert listing["conversations"][0]["last_message"]["content"] == "Hi Bob"

    def test_open_marks_read(self, client, conversation):
        client.post("/conversations/c1/messages", json={"content": "Hi Bob"}, headers=auth(AGENT_ID))

        detail = client.get("/conversations/c1", headers=auth(INVESTOR_ID)).json()
        unread = client.get("/conversations/unread", headers=auth(INVESTOR_ID)).json()

        assert [message["content"] for message in detail["messages"]] == ["Hi Bob"]
        assert unread == {"unread_total": 0}

    def test_empty_message_is_400(self, client, conversation, db):
        response = client.post("/conversations/c1/messages", json={"content": "   "}, headers=auth(AGENT_ID))

        assert response.status_code == 400
        assert db.rows("messages") == []

    def test_non_participant_cannot_send(self, client, conversation, db):
        response = client.post("/conversations/c1/messages", json={"content": "Hi"}, headers=auth(OTHER_INVESTOR_ID))

        assert response.status_code == 403
        assert db.rows("messages") == []

    def test_mark_read_only_touches_callers_marker(self, client, conversation):
        response = client.post("/conversations/c1/read", headers=auth(AGENT_ID))

        assert response.status_code == 200
        assert conversation["agent_last_read"] is not None
        assert conversation["investor_last_read"] is None


class TestFundEndpoints:
    def test_agent_lists_fund_and_investor_expresses_interest(self, client, db):
        created = client.post(
            "/funds",
            json={"name": "Harbor Buyout IV", "size": 500000000, "strategy": "Buyout", "geography": "Europe"},
            headers=auth(AGENT_ID),
        )
        fund_id = created.json()["id"]

        interest = client.post(f"/funds/{fund_id}/interest", headers=auth(INVESTOR_ID))
        detail = client.get(f"/funds/{fund_id}", headers=auth(INVESTOR_ID)).json()
        mine = client.get("/funds/mine", headers=auth(AGENT_ID)).json()

        assert created.status_code == 201
        assert interest.status_code == 201
        assert detail["has_expressed_interest"] is True
        assert detail["agent"]["firm"] == "Harbor Partners"
        assert mine[0]["interest_count"] == 1

    def test_investor_cannot_create_fund(self, client):
        response = client.post(
            "/funds",
            json={"name": "Nope", "size": 1, "strategy": "Buyout"},
            headers=auth(INVESTOR_ID),
        )

        assert response.status_code == 403

    def test_browse_with_filters(self, client, db):
        db.seed(
            "funds",
            {"id": "f1", "name": "A", "size": 500_000_000, "strategy": "Buyout", "geography": "Europe",
             "uploaded_by_agent_id": AGENT_ID, "created_at": "2025-01-01T00:00:00+00:00"},
            {"id": "f2", "name": "B", "size": 50_000_000, "strategy": "Buyout", "geography": "Asia",
             "uploaded_by_agent_id": AGENT_ID, "created_at": "2025-01-02T00:00:00+00:00"},
        )

        body = client.get("/funds", params={"strategy": "Buyout", "min_size": 100}, headers=auth(INVESTOR_ID)).json()

        assert body["total"] == 1
        assert body["funds"][0]["id"] == "f1"

    def test_saved_search_lifecycle(self, client):
        created = client.post(
            "/saved-searches",
            json={"name": "EU buyouts", "criteria": {"strategy": "Buyout"}},
            headers=auth(INVESTOR_ID),
        ).json()

        updated = client.patch(
            f"/saved-searches/{created['id']}", json={"alerts_enabled": True}, headers=auth(INVESTOR_ID)
        )
        listed = client.get("/saved-searches", headers=auth(INVESTOR_ID)).json()

        assert updated.json()["alerts_enabled"] is True
        assert [search["name"] for search in listed] == ["EU buyouts"]

    def test_profile_created_on_first_access(self, client):
        response = client.get("/profile", headers=auth("u9"))

        assert response.status_code == 200
        assert response.json()["id"] == "u9"


class TestConversationWebSocket:
    def test_rejects_missing_token(self, client, conversation):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/conversations/c1"):
                pass

        assert exc_info.value.code == 1008

    def test_rejects_non_participant(self, client, conversation):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/conversations/c1?token={make_token(OTHER_INVESTOR_ID)}"):
                pass

        assert exc_info.value.code == 1008

    def test_history_then_ping(self, client, conversation, db):
        db.seed("messages", {"id": "m1", "conversation_id": "c1", "sender_id": AGENT_ID,
                             "content": "Welcome", "timestamp": "2025-01-01T10:00:00+00:00"})

        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(INVESTOR_ID)}") as ws:
            established = ws.receive_json()
            history = ws.receive_json()
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert established["type"] == "connection_established"
        assert history["type"] == "history"
        assert [message["content"] for message in history["data"]] == ["Welcome"]
        assert pong["type"] == "pong"
        assert conversation["investor_last_read"] is not None

    def test_send_reaches_counterpart_once(self, client, conversation, db):
        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(INVESTOR_ID)}") as investor_ws:
            investor_ws.receive_json()
            investor_ws.receive_json()

            with client.websocket_connect(f"/ws/conversations/c1?token={make_token(AGENT_ID)}") as agent_ws:
                established = agent_ws.receive_json()
                agent_ws.receive_json()
                agent_ws.send_json({"type": "send_message", "content": "Hello Bob"})
                pending = agent_ws.receive_json()
                confirmed = agent_ws.receive_json()

                pushed = investor_ws.receive_json()

        assert established["connection_count"] == 2
        assert pending["type"] == "message_pending"
        assert pending["data"]["pending"] is True
        assert confirmed["type"] == "message_confirmed"
        assert confirmed["temp_id"] == pending["data"]["id"]
        assert pushed["type"] == "new_message"
        assert pushed["data"]["id"] == confirmed["data"]["id"]
        assert len(db.rows("messages")) == 1

    def test_failed_send_returns_content(self, client, conversation, db):
        db.fail("messages", "insert", api_error("network down"))

        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(AGENT_ID)}") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"type": "send_message", "content": "Draft"})
            ws.receive_json()
            failed = ws.receive_json()

        assert failed["type"] == "message_failed"
        assert failed["restored_content"] == "Draft"
        assert failed["error"] == "Failed to send message"

    def test_empty_send_fails_without_pending(self, client, conversation):
        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(AGENT_ID)}") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"type": "send_message", "content": ""})
            failed = ws.receive_json()

        assert failed["type"] == "message_failed"
        assert failed["error"] == "Message content cannot be empty"

    def test_non_text_content_keeps_socket_open(self, client, conversation, db):
        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(AGENT_ID)}") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"type": "send_message", "content": 5})
            failed = ws.receive_json()
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert failed["type"] == "message_failed"
        assert failed["error"] == "Message content must be text"
        assert pong["type"] == "pong"
        assert db.rows("messages") == []

    def test_unknown_frame(self, client, conversation):
        with client.websocket_connect(f"/ws/conversations/c1?token={make_token(AGENT_ID)}") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_text("not json")
            bad_json = ws.receive_json()
            ws.send_json({"type": "dance"})
            unknown = ws.receive_json()

        assert bad_json["type"] == "error"
        assert unknown["error"] == "Unknown frame type: dance"

    def test_stats(self, client):
        body = client.get("/ws/stats").json()

        assert set(body) == {"total_connections", "conversations_with_connections", "connections_by_conversation"}
