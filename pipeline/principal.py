from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Principal:
    """Read-only view of the authenticated user handed to the pipeline."""

    id: str
    is_active: bool = True
    plan: str = "free"
    preferences: Dict[str, Any] = field(default_factory=dict)
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        return cls(
            id=str(user.id),
            is_active=bool(user.is_active),
            plan=getattr(user, "plan", None) or "free",
            preferences=dict(getattr(user, "preferences", None) or {}),
            last_login=getattr(user, "last_login", None),
        )

    @property
    def currency(self) -> str:
        return self.preferences.get("currency") or "USD"

    @property
    def language(self) -> str:
        return self.preferences.get("language") or "es"
