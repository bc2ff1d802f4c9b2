from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from shops_auth.db.models import UserRole
from shops_auth.schemas import CamelModel


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    name: Optional[str] = Field(default=None, min_length=2)
    role: UserRole


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    role: UserRole


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class GoogleCallbackPayload(BaseModel):
    code: Optional[str] = None
    state: Optional[str] = None
