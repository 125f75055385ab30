"""
Fund Models

Pydantic models for fund listings, investor interests and saved searches.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


MILLION = 1_000_000


class FundFilters(BaseModel):
    """Browse filters; sizes are expressed in millions"""
    strategy: Optional[str] = Field(None, description="Exact strategy")
    geography: Optional[str] = Field(None, description="Substring of the geography")
    sector: Optional[str] = Field(None, description="Substring of the sector focus")
    min_size: Optional[float] = Field(None, ge=0, description="Minimum fund size in millions")
    max_size: Optional[float] = Field(None, ge=0, description="Maximum fund size in millions")

    class Config:
        json_schema_extra = {
            "example": {"strategy": "Buyout", "geography": "Europe", "min_size": 100}
        }

    def is_empty(self) -> bool:
        return not any(value not in (None, "") for value in self.model_dump().values())


class FundCreate(BaseModel):
    """Schema for listing a new fund"""
    name: str = Field(..., min_length=1, max_length=255)
    size: float = Field(..., gt=0, description="Fund size in dollars")
    minimum_investment: Optional[float] = Field(None, ge=0)
    strategy: str = Field(..., min_length=1, max_length=100)
    sector_focus: Optional[str] = None
    geography: Optional[str] = None
    description: Optional[str] = None
    target_return: Optional[float] = None
    track_record_irr: Optional[float] = None
    track_record_moic: Optional[float] = None
    team_background: Optional[str] = None
    management_fee: Optional[float] = None
    carry: Optional[float] = None
    documents: List["FundDocumentCreate"] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Harbor Growth III",
                "size": 250000000,
                "minimum_investment": 5000000,
                "strategy": "Growth Equity",
                "sector_focus": "Healthcare",
                "geography": "North America",
                "management_fee": 2.0,
                "carry": 20.0
            }
        }


class FundUpdate(BaseModel):
    """Schema for updating a fund; only provided fields change"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    size: Optional[float] = Field(None, gt=0)
    minimum_investment: Optional[float] = Field(None, ge=0)
    strategy: Optional[str] = None
    sector_focus: Optional[str] = None
    geography: Optional[str] = None
    description: Optional[str] = None
    target_return: Optional[float] = None
    track_record_irr: Optional[float] = None
    track_record_moic: Optional[float] = None
    team_background: Optional[str] = None
    management_fee: Optional[float] = None
    carry: Optional[float] = None


class FundDocumentCreate(BaseModel):
    """Reference to an already uploaded document"""
    document_type: str = Field(..., min_length=1, max_length=100)
    file_url: str = Field(..., min_length=1)


class FundDocument(BaseModel):
    id: str
    fund_id: Optional[str] = None
    document_type: str
    file_url: str


class AgentSummary(BaseModel):
    user_id: Optional[str] = None
    name: Optional[str] = None
    firm: Optional[str] = None


class Fund(BaseModel):
    """Row of the funds table"""
    id: str
    name: str
    size: Optional[float] = None
    minimum_investment: Optional[float] = None
    strategy: Optional[str] = None
    sector_focus: Optional[str] = None
    geography: Optional[str] = None
    description: Optional[str] = None
    fund_logo_url: Optional[str] = None
    target_return: Optional[float] = None
    track_record_irr: Optional[float] = None
    track_record_moic: Optional[float] = None
    team_background: Optional[str] = None
    management_fee: Optional[float] = None
    carry: Optional[float] = None
    uploaded_by_agent_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class FundListing(Fund):
    """Fund with its agent, as shown when browsing"""
    agent: Optional[AgentSummary] = None


class FundDetail(FundListing):
    """Fund with agent, documents and the caller's interest state"""
    documents: List[FundDocument] = Field(default_factory=list)
    has_expressed_interest: bool = False


class AgentFund(Fund):
    """Fund owned by the calling agent with its interest count"""
    interest_count: int = 0


class FundListResponse(BaseModel):
    funds: List[FundListing]
    total: int


class FilterOptions(BaseModel):
    strategies: List[str] = Field(default_factory=list)
    geographies: List[str] = Field(default_factory=list)
    sectors: List[str] = Field(default_factory=list)


# Interests

class Interest(BaseModel):
    """Row of the interests table"""
    id: str
    investor_id: str
    fund_id: str
    timestamp: Optional[datetime] = None


class InterestWithFund(BaseModel):
    """An investor's interest with the fund it refers to"""
    id: str
    timestamp: Optional[datetime] = None
    fund: Optional[FundListing] = None


class FundInterest(BaseModel):
    """An interest as seen by the fund's agent"""
    id: str
    investor_id: str
    investor_name: Optional[str] = None
    timestamp: Optional[datetime] = None


# Saved searches

class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    criteria: FundFilters = Field(default_factory=FundFilters)
    alerts_enabled: bool = False


class SavedSearchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    alerts_enabled: Optional[bool] = None


class SavedSearch(BaseModel):
    id: str
    investor_id: str
    name: str
    criteria: Dict[str, Any] = Field(default_factory=dict)
    alerts_enabled: bool = False
    created_at: Optional[datetime] = None


FundCreate.model_rebuild()
