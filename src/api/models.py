"""Pydantic models for API request/response."""

from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Request model for user registration."""
    name: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    """Request model for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)
    action: Literal["verify-email", "link-account"] = "verify-email"


class EmailRequest(BaseModel):
    """Request model for resend-verification and forgot-password."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str


class UserResponse(BaseModel):
    """Public view of a user; never carries hashes or tokens."""
    id: str
    name: str
    email: str
    avatar: str = ""
    auth_methods: list[str]
    is_email_verified: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class AuthResponse(BaseModel):
    """Response model for authentication."""
    success: bool = True
    message: str
    token: str
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    requires_verification: Optional[bool] = None
    linking_account: Optional[bool] = None
