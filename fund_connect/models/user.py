"""
Caller Identity Models

``User`` holds what the verified access token says about the caller;
``SessionContext`` adds the platform role looked up in the agents/investors
tables.
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime

from fund_connect.models.roles import Role


class User(BaseModel):
    """Signed-in Supabase user, as described by their access token"""

    user_id: str = Field(..., description="Auth user UUID (the token's sub)")
    email: str = Field(..., description="Sign-in email")
    display_name: str = Field("", description="Name entered at sign-up (user_metadata.name)")

    aud: Optional[str] = Field(None, description="Token audience, 'authenticated' for signed-in users")
    role: Optional[str] = Field(None, description="Postgres role of the token, not agent/investor")
    session_id: Optional[str] = Field(None, description="Supabase Auth session id")
    exp: Optional[int] = Field(None, description="Expiry, seconds since epoch")
    iat: Optional[int] = Field(None, description="Issue time, seconds since epoch")

    user_metadata: Optional[Dict[str, Any]] = Field(default_factory=dict, description="Sign-up form data")
    app_metadata: Optional[Dict[str, Any]] = Field(default_factory=dict, description="Provider data set by Supabase")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
                "email": "alice@harborpartners.com",
                "display_name": "Alice Chen",
                "aud": "authenticated",
                "role": "authenticated",
                "exp": 1735689600,
                "iat": 1735603200,
                "user_metadata": {"name": "Alice Chen"},
                "app_metadata": {"provider": "email"}
            }
        }


class SessionContext(BaseModel):
    """
    Per-request identity: the verified user plus the platform role resolved
    from the agents/investors tables. Passed explicitly to services.
    """
    user: User
    role: Optional[Role] = None
    record: Dict[str, Any] = Field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.user.user_id

    @property
    def display_name(self) -> str:
        return self.record.get("name") or self.user.display_name or self.user.email


class GetMeResponse(BaseModel):
    """Response model for /me."""
    user_id: str
    email: str
    display_name: str
    role: Optional[Role] = Field(None, description="Platform role, null when none is assigned")
    record: Dict[str, Any] = Field(default_factory=dict)
    token_expires_at: Optional[datetime] = None
