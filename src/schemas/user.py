"""User schema definitions."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from pydantic import BaseModel, Field


class User(BaseModel):
    user_id: str = Field(
        description="The unique identifier for the user.",
        default_factory=lambda: str(uuid.uuid4()),
    )
    username: str
    password_hash: str
    role: str = Field(description="'lecturer' or 'student'")
    display_name: Optional[str] = None
    email: Optional[str] = None
    notifications_enabled: bool = True
    create_at: str = Field(
        default_factory=lambda: datetime.now(pytz.utc).isoformat()
    )


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=6)
    role: str
    email: str
    display_name: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    user: Dict[str, Any]
    token: str


class CurrentUserResponse(BaseModel):
    user: Dict[str, Any]
