"""Pydantic schemas for users and the auth endpoints.

Learn: Separate request schemas (input) from UserRead (output). UserRead
has no password fields at all, so a hash can never be serialized by
accident. Signup has no role field: extra keys such as "role" are
ignored, and public signups are always regular users.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from natours.db.models import Role


# ─── Auth requests ──────────────────────────────────────


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str


class UpdatePasswordRequest(BaseModel):
    password_current: str
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str


# ─── Profile ────────────────────────────────────────────


class UpdateMeRequest(BaseModel):
    """Self-service profile update.

    extra="allow" keeps unexpected keys (e.g. password) visible to the
    service, which rejects password changes on this route explicitly.
    """

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = Field(None, min_length=1, max_length=30)
    email: Optional[EmailStr] = None
    photo: Optional[str] = Field(None, max_length=255)


class UserRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    photo: Optional[str] = None
    role: Role

    model_config = {"from_attributes": True}


# ─── Admin ──────────────────────────────────────────────


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: Role = Role.USER


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=30)
    email: Optional[EmailStr] = None
    photo: Optional[str] = Field(None, max_length=255)
    role: Optional[Role] = None
