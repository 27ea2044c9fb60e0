from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class RegisterRequest(BaseCreateSchema):
    """Business owner registration."""
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=8, max_length=72)
    full_name: str = Field(..., min_length=1, max_length=200)
    business_name: str = Field(..., min_length=1, max_length=200)
    business_address: str = Field(..., min_length=1)
    business_gstin: Optional[str] = Field(None, min_length=15, max_length=15, description="15-character GSTIN")
    business_contact: str = Field(..., min_length=1, max_length=50)
    bank_details: Optional[str] = None


class LoginRequest(BaseCreateSchema):
    """Login request schema."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Token response schema."""
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")


class UserResponse(BaseResponseSchema):
    """Current user with the business identity used on invoices."""
    id: UUID
    email: str
    full_name: str
    business_name: str
    business_address: str
    business_gstin: Optional[str] = None
    business_contact: str
    bank_details: Optional[str] = None
    is_active: bool
