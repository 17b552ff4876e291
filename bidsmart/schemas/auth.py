"""Authentication schemas for Supabase JWT tokens."""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, EmailStr


class JWTClaims(BaseModel):
    """JWT claims extracted from Supabase access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: EmailStr = Field(..., description="User email")
    role: str = Field(default="authenticated", description="User role")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    iss: str = Field(..., description="Token issuer")

    aud: Optional[str] = Field(None, description="Audience")
    app_metadata: Optional[Dict[str, Any]] = Field(None, description="Application metadata")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")
    session_id: Optional[str] = Field(None, description="Session ID")


class CurrentUser(BaseModel):
    """Authenticated caller as seen by the API layer."""

    id: str = Field(..., description="Supabase user ID")
    email: EmailStr = Field(..., description="User email")
    role: str = Field(default="user", description="User role")
    app_metadata: Optional[Dict[str, Any]] = None
    user_metadata: Optional[Dict[str, Any]] = None

    @property
    def full_name(self) -> Optional[str]:
        if self.user_metadata:
            return self.user_metadata.get("full_name") or self.user_metadata.get("name")
        return None


class UserResponse(BaseModel):
    """User response model with database fields."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Internal user ID")
    supabase_user_id: str
    email: EmailStr
    full_name: Optional[str] = None
    created_at: Optional[datetime] = None
