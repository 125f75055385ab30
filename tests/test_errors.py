"""Tests for backend error classification and token decoding."""

import pytest

from fund_connect.auth.jwt_handler import JWTValidationError, decode_jwt_token, extract_user_from_token
from fund_connect.services.errors import (
    BackendError,
    InvalidInputError,
    PermissionDeniedError,
    classify_backend_error,
    is_rls_violation,
)
from tests.fakes import api_error, rls_error
from tests.helpers import make_token


class TestClassifyBackendError:
    def test_rls_code_is_permission_denied(self):
        error = classify_backend_error(rls_error(), "send message")

        assert isinstance(error, PermissionDeniedError)
        assert error.message == "Not allowed to send message"
        assert error.status_code == 403

    def test_rls_message_without_code(self):
        assert is_rls_violation(RuntimeError("new row violates row-level security policy"))

    def test_other_errors_are_backend_errors(self):
        error = classify_backend_error(api_error("timeout"), "load messages")

        assert isinstance(error, BackendError)
        assert error.details == "timeout"
        assert error.status_code == 500

    def test_service_errors_pass_through(self):
        original = InvalidInputError("bad")

        assert classify_backend_error(original, "anything") is original

    def test_payload_merges_extra(self):
        error = BackendError("Error assigning agent role", details="denied", extra={"sqlCommand": "INSERT ..."})

        assert error.to_payload() == {
            "error": "Error assigning agent role",
            "details": "denied",
            "sqlCommand": "INSERT ...",
        }


class TestTokens:
    def test_valid_token(self):
        user = extract_user_from_token(make_token("u1", email="u1@example.com"))

        assert user.user_id == "u1"
        assert user.email == "u1@example.com"
        assert user.display_name == "U1"

    def test_wrong_audience(self):
        with pytest.raises(JWTValidationError):
            decode_jwt_token(make_token("u1", aud="somebody-else"))

    def test_auth_not_configured(self, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "SUPABASE_JWT_SECRET", "")

        with pytest.raises(JWTValidationError) as exc_info:
            decode_jwt_token(make_token("u1"))

        assert str(exc_info.value) == "Authentication service is not configured"
