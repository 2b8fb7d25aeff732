from typing import Any, Dict, Optional, Union
from datetime import datetime, timezone
import logging

from fastapi import HTTPException
from fastapi_users.db import BaseUserDatabase
from surrealdb import AsyncSurreal
from auth.models import User, DEFAULT_PREFERENCES
from settings.records import normalize_record, record_key, rows_from
from transactions.transaction_model import iso_timestamp


logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return iso_timestamp(datetime.now(timezone.utc))


class SurrealUserDatabase(BaseUserDatabase[User, str]):
    """fastapi-users storage adapter over the SurrealDB ``users`` table."""

    def __init__(self, db: AsyncSurreal, collection: str = "users") -> None:
        self.db = db
        self.collection = collection

    def _ref(self, id: Union[str, int]) -> str:
        return f"{self.collection}:{record_key(id)}"

    def _to_user(self, record: Any) -> Optional[User]:
        if isinstance(record, list):
            record = record[0] if record else None
        return User(**normalize_record(record)) if record else None

    async def get(self, id: Union[str, int]) -> Optional[User]:
        try:
            record = await self.db.select(self._ref(id))
        except Exception as exc:
            logger.exception("Error loading %s", self._ref(id))
            raise HTTPException(status_code=500, detail="Error querying user by id") from exc
        return self._to_user(record)

    async def get_by_email(self, email: str) -> Optional[User]:
        query = f"SELECT * FROM {self.collection} WHERE email = $email"
        try:
            rows = rows_from(await self.db.query(query, {"email": email.lower()}))
        except Exception as exc:
            logger.exception("Error querying user by email from collection '%s'", self.collection)
            raise HTTPException(status_code=500, detail="Error querying user by email") from exc
        return self._to_user(rows)

    async def create(self, create_dict: Dict[str, Any]) -> User:
        now_iso = _now_iso()
        defaults: Dict[str, Any] = {
            "role": "user",
            "plan": "free",
            "preferences": {**DEFAULT_PREFERENCES},
            "last_login": None,
            "is_active": True,
            "is_superuser": False,
            "is_verified": False,
            "created_at": now_iso,
            "updated_at": now_iso,
        }
        payload = {**defaults, **create_dict, "email": str(create_dict["email"]).lower()}
        record = await self.db.create(self.collection, payload)
        logger.info("Created user %s", record_key(record["id"]) if isinstance(record, dict) else "?")
        return self._to_user(record)

    async def update(self, user: User, update_dict: Dict[str, Any]) -> User:
        record = await self.db.merge(self._ref(user.id), {**update_dict, "updated_at": _now_iso()})
        return self._to_user(record)

    async def touch_last_login(self, user: User, moment: Optional[datetime] = None) -> User:
        """Record a successful login; the inactivity policy reads this back."""
        return await self.update(user, {"last_login": iso_timestamp(moment or datetime.now(timezone.utc))})

    async def update_preferences(self, user: User, preferences: Dict[str, Any]) -> User:
        return await self.update(user, {"preferences": preferences})

    async def delete(self, user: User) -> None:
        await self.db.delete(self._ref(user.id))
