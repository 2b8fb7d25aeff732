from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi_users import schemas


class UserRead(schemas.BaseUser[str]):
    name: Optional[str] = None
    plan: str = "free"
    preferences: Dict[str, Any] = {}
    last_login: Optional[str] = None


class UserCreate(schemas.BaseUserCreate):
    name: str


class UserUpdate(schemas.BaseUserUpdate):
    name: Optional[str] = None
