from fastapi import Depends, Request, Response
from fastapi_users import BaseUserManager, InvalidPasswordException
from typing import Optional, Union
import logging

from settings.config import settings
from settings.db import get_user_db
from settings.records import record_key
from users.user_repo import SurrealUserDatabase
from pipeline.schema import SchemaValidator, FieldRule
from pipeline.rulesets import password_checks
from .models import User
from .schemas import UserCreate

logger = logging.getLogger(__name__)

_password_rule = SchemaValidator([FieldRule("password", password_checks())])


class UserManager(BaseUserManager[User, str]):
    reset_password_token_secret = settings.ENV_RESET_PASSWORD_TOKEN_SECRET
    verification_token_secret = settings.ENV_VERIFICATION_TOKEN_SECRET

    def parse_id(self, value) -> str:
        return record_key(value)

    async def validate_password(self, password: str, user: Union[UserCreate, User]) -> None:
        errors = _password_rule.collect({"body": {"password": password}})
        if errors:
            raise InvalidPasswordException(reason=errors[0].message)
        if user.email and user.email.split("@")[0].lower() in password.lower():
            raise InvalidPasswordException(reason="Password should not contain the e-mail")

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        logger.info(f"User {user.id} has registered.")

    async def on_after_login(
        self,
        user: User,
        request: Optional[Request] = None,
        response: Optional[Response] = None,
    ):
        await self.user_db.touch_last_login(user)
        logger.info(f"User {user.id} logged in.")


async def get_user_manager(user_db: SurrealUserDatabase = Depends(get_user_db)) -> UserManager:
    yield UserManager(user_db)
