"""Schemas for sign-up, sign-in and session payloads."""

from pydantic import BaseModel, Field
from typing import Optional
from .profile_schema import ProfileInput


class CredentialsRequest(BaseModel):
    email: str = Field(..., min_length=1, examples=["jane@example.com"])
    password: str = Field(..., min_length=6, description="At least 6 characters")


class SignUpRequest(CredentialsRequest):
    profile: Optional[ProfileInput] = None


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class AuthUser(BaseModel):
    id: str
    email: str
    email_confirmed: bool = False


class SessionInfo(BaseModel):
    """Issued token pair; `expires_at` is in epoch seconds."""

    access_token: str
    refresh_token: str
    expires_at: int
    user: AuthUser


class AuthResponse(BaseModel):
    user: AuthUser
    session: Optional[SessionInfo] = None


class SignUpResponse(AuthResponse):
    auto_logged_in: bool = False
