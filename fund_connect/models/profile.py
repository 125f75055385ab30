"""
Profile Models
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class Profile(BaseModel):
    """Row of the profiles table (id is the auth user id)"""
    id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class ProfileUpdate(BaseModel):
    """Personal, professional and preference fields; only provided ones change"""
    full_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    bio: Optional[str] = Field(None, max_length=2000)
    avatar_url: Optional[str] = None
    company: Optional[str] = Field(None, max_length=255)
    title: Optional[str] = Field(None, max_length=255)
    preferences: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "full_name": "Bob Stone",
                "company": "Stone Family Office",
                "preferences": {"email_notifications": True}
            }
        }
