"""
Service Errors

Exception hierarchy raised by the service layer. Each error carries the HTTP
status the API layer renders it with, a human-readable message and optional
details.
"""
import logging
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError

logger = logging.getLogger(__name__)

# PostgreSQL insufficient_privilege, returned by PostgREST on RLS rejection
RLS_ERROR_CODE = "42501"


class FundConnectError(RuntimeError):
    """Base class for errors surfaced to API callers"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = extra or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class InvalidInputError(FundConnectError):
    """Rejected before any backend call"""
    status_code = 400


class PermissionDeniedError(FundConnectError):
    """Row-level security rejection or failed participant check"""
    status_code = 403


class RecordNotFoundError(FundConnectError):
    status_code = 404


class BackendError(FundConnectError):
    """The backing store failed and no alternate strategy succeeded"""
    status_code = 500


def is_rls_violation(exc: BaseException) -> bool:
    """Check whether a backend error is a row-level-security rejection"""
    if isinstance(exc, APIError) and exc.code == RLS_ERROR_CODE:
        return True
    return "row-level security" in str(getattr(exc, "message", None) or exc).lower()


def error_text(exc: BaseException) -> str:
    """Best human-readable text of a backend exception"""
    return str(getattr(exc, "message", None) or exc)


def classify_backend_error(exc: BaseException, action: str) -> FundConnectError:
    """
    Map an exception from the Supabase client to a service error.

    Args:
        exc: Exception raised by a query/insert/update
        action: Short description used as the error message ("load messages")

    Returns:
        PermissionDeniedError for RLS rejections, BackendError otherwise
        (service errors are passed through unchanged)
    """
    if isinstance(exc, FundConnectError):
        return exc
    if is_rls_violation(exc):
        return PermissionDeniedError(
            f"Not allowed to {action}",
            details=error_text(exc)
        )
    return BackendError(f"Failed to {action}", details=error_text(exc))
