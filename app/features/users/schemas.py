"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_\s]+$")
    email: EmailStr


class UserCreate(UserBase):
    """Schema for creating a new user."""
    password: str = Field(..., min_length=6, max_length=128)


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    username: str | None = Field(None, min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_\s]+$")
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=6, max_length=128)


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: int
    username: str
    email: str

    model_config = {"from_attributes": True}


class UserResponse(UserPublic):
    """Schema for user responses."""
    created_at: datetime
    updated_at: datetime


class GroupSummary(BaseModel):
    id: int
    name: str
    description: str | None = None

    model_config = {"from_attributes": True}


class UserDetail(UserResponse):
    """User with the groups they belong to."""
    groups: list[GroupSummary] = []


class UserListItem(UserResponse):
    groups: list[str] = []


# ============================================================================
# Auth
# ============================================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    message: str
    token: str
    user: UserPublic
