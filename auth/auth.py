from __future__ import annotations

from fastapi_users import FastAPIUsers
from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy
from fastapi import Depends

from pipeline.principal import Principal
from settings.config import settings
from .models import User
from .user_manager import get_user_manager


bearer_transport = BearerTransport(tokenUrl="/api/auth/login")


def get_jwt_strategy() -> JWTStrategy:
    return JWTStrategy(secret=settings.ENV_SECRET, lifetime_seconds=settings.JWT_LIFETIME_SECONDS)


auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)


fastapi_users = FastAPIUsers[User, str](
    get_user_manager,
    [auth_backend],
)


# Inactive users still authenticate here; the business rules answer 403 for them.
_current_user = fastapi_users.current_user(active=False)


async def get_current_user(user: User = Depends(_current_user)) -> User:
    return user


async def get_principal(user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(user)
