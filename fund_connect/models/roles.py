"""
Role Models

Pydantic models for agent/investor identities, role checks and registration.
"""
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field
from enum import Enum


class Role(str, Enum):
    """The two participant roles of the platform"""
    AGENT = "agent"
    INVESTOR = "investor"

    @property
    def table(self) -> str:
        """Table holding records of this role"""
        return _ROLE_TABLES[self]

    @property
    def participant_field(self) -> str:
        """Conversation column that identifies a participant of this role"""
        return _PARTICIPANT_FIELDS[self]

    @property
    def last_read_field(self) -> str:
        """Conversation column holding this role's read marker"""
        return _LAST_READ_FIELDS[self]

    @property
    def counterpart(self) -> "Role":
        """The role on the other side of a conversation"""
        return _COUNTERPARTS[self]


_ROLE_TABLES = {Role.AGENT: "agents", Role.INVESTOR: "investors"}
_PARTICIPANT_FIELDS = {Role.AGENT: "agent_id", Role.INVESTOR: "investor_id"}
_LAST_READ_FIELDS = {Role.AGENT: "agent_last_read", Role.INVESTOR: "investor_last_read"}
_COUNTERPARTS = {Role.AGENT: Role.INVESTOR, Role.INVESTOR: Role.AGENT}


# Records

class InvestorRecord(BaseModel):
    """Row of the investors table"""
    user_id: str = Field(..., description="Auth user UUID of the investor")
    name: Optional[str] = Field(None, description="Investor display name")
    introducing_agent_id: Optional[str] = Field(None, description="Agent that invited this investor")
    approved: bool = Field(False, description="Whether the investor has been approved")

    class Config:
        extra = "allow"


class RoleResolution(BaseModel):
    """Outcome of resolving a user's role"""
    role: Role
    record: Dict[str, Any] = Field(default_factory=dict)


class RoleCheck(BaseModel):
    """Response of GET /check-role"""
    isAgent: bool = False
    isInvestor: bool = False
    agentData: Optional[Dict[str, Any]] = None
    investorData: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "isAgent": True,
                "isInvestor": False,
                "agentData": {"user_id": "a1", "name": "Alice", "firm": "Harbor Partners"}
            }
        }

    @classmethod
    def from_resolution(cls, resolution: Optional[RoleResolution]) -> "RoleCheck":
        if resolution is None:
            return cls(message="User has no role assigned")
        if resolution.role is Role.AGENT:
            return cls(isAgent=True, agentData=resolution.record)
        return cls(isInvestor=True, investorData=resolution.record)


# Request Models

class AssignRoleRequest(BaseModel):
    """Body of POST /assign-role; validated in the service to keep 400 semantics"""
    userId: Optional[str] = Field(None, description="Auth user UUID")
    role: Optional[str] = Field(None, description="'agent' or 'investor'")

    class Config:
        json_schema_extra = {"example": {"userId": "a1b2c3d4", "role": "investor"}}


class AssignRoleResponse(BaseModel):
    """Response of POST /assign-role"""
    success: bool = True
    message: str
    data: Optional[Any] = None


class RegistrationRequest(BaseModel):
    """Schema for creating the caller's agent or investor record after sign-up"""
    role: Role = Field(..., description="Role to register as")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    firm: Optional[str] = Field(None, max_length=255, description="Firm (agents only)")
    invitation_code: Optional[str] = Field(None, max_length=64, description="Invitation code (investors only)")

    class Config:
        json_schema_extra = {
            "example": {
                "role": "investor",
                "name": "Bob Stone",
                "invitation_code": "K3F9QZ1A"
            }
        }


class RegistrationResponse(BaseModel):
    """Result of a registration"""
    role: Role
    record: Dict[str, Any]
    approved: Optional[bool] = None


class InvitationCreate(BaseModel):
    """Schema for inviting an investor"""
    investor_name: str = Field(..., min_length=1, max_length=255)
    investor_email: str = Field(..., min_length=3, max_length=255)


class Invitation(BaseModel):
    """A generated invitation code"""
    code: str
    agent_id: str
    pending_investor_recorded: bool = True


class InvestorListResponse(BaseModel):
    """Investors introduced by an agent"""
    investors: List[InvestorRecord]
    total: int
