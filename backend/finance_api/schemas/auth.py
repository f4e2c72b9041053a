# finance_api/schemas/auth.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = Field(None, max_length=200)


class LoginRequest(BaseModel):
    username_or_email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserSummary(BaseModel):
    """What other users may see: enough to pick a transfer recipient."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str


class RefreshRequest(BaseModel):
    token: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
