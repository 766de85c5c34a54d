from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from advoqat.models import UserRole

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str

class UserProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=500)

class TokenData(BaseModel):
    email: Optional[str] = None
    role: Optional[UserRole] = None

class UserResponse(BaseModel):
    id: int
    external_id: str
    name: Optional[str] = None
    email: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None
    onboarding_stage: Optional[str] = None
    profile_status: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
