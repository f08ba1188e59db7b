"""
Auth API schemas (request/response models) and the per-request AuthContext.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

# bcrypt only looks at the first 72 bytes and rejects longer input.
MAX_PASSWORD_BYTES = 72

SELF_REGISTER_ROLES = frozenset({"recruiter", "jobseeker"})


class Role(str, Enum):
    ADMIN = "admin"
    HIRING_MANAGER = "hiring_manager"
    RECRUITER = "recruiter"
    JOBSEEKER = "jobseeker"


class AuthContext(BaseModel):
    user_id: int
    email: str
    role: Role
    organization_id: int | None = None


class RegisterRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    role: Role = Role.RECRUITER

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return value


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=20)


class LogoutRequest(BaseModel):
    # If omitted, all of the caller's refresh tokens are revoked.
    refresh_token: str | None = Field(default=None, min_length=20)


class UserResponse(BaseModel):
    id: int
    name: str | None = None
    email: str
    role: Role
    organization_id: int | None = None
    is_active: bool
    created_at: datetime


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(BaseModel):
    success: bool = True
    user: UserResponse
    tokens: TokenPairResponse
