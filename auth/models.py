from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, EmailStr, Field


DEFAULT_PREFERENCES: Dict[str, Any] = {
    "currency": "USD",
    "language": "es",
    "notifications": {"email": True, "push": False},
}


class User(BaseModel):
    id: str
    email: EmailStr
    hashed_password: str
    name: str | None = None
    role: str = "user"
    plan: str = "free"
    preferences: Dict[str, Any] = Field(default_factory=lambda: {**DEFAULT_PREFERENCES})
    is_active: bool = True
    is_superuser: bool = False
    is_verified: bool = False
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
