from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from fastapi_users.authentication import JWTStrategy
from fastapi_users.exceptions import InvalidPasswordException, UserAlreadyExists

from pipeline.composer import RoutePipeline
from pipeline.errors import AccountInactive, InvalidCredentials, ValidationError, ValidationFailure
from pipeline.guards import FORM, JSON
from pipeline.rulesets import login_rules, register_rules
from pipeline.sanitizer import LOGIN_SANITIZERS, REGISTER_SANITIZERS
from settings.config import settings
from .auth import get_current_user, get_jwt_strategy
from .models import User
from .schemas import UserCreate, UserRead
from .user_manager import UserManager, get_user_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

register_pipeline = RoutePipeline(
    name="register",
    max_body=settings.MAX_BODY_REGISTER,
    sanitizers=REGISTER_SANITIZERS,
    rules=register_rules(),
)

login_pipeline = RoutePipeline(
    name="login",
    max_body=settings.MAX_BODY_LOGIN,
    content_types=(JSON, FORM),
    sanitizers=LOGIN_SANITIZERS,
    rules=login_rules(),
)


def public_profile(user: User) -> dict:
    return UserRead.model_validate(user).model_dump(mode="json")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
    strategy: JWTStrategy = Depends(get_jwt_strategy),
):
    body = (await register_pipeline.run(request)).body
    user_create = UserCreate(name=body["name"], email=body["email"], password=body["password"])
    try:
        user = await user_manager.create(user_create, safe=True, request=request)
    except UserAlreadyExists:
        raise ValidationFailure([ValidationError("email", "This email is already registered", body["email"])])
    except InvalidPasswordException as e:
        raise ValidationFailure([ValidationError("password", str(e.reason))])

    token = await strategy.write_token(user)
    # A fresh registration counts as a login for the inactivity policy.
    await user_manager.on_after_login(user, request)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"user": public_profile(await user_manager.get(user.id)), "token": token},
    }


@router.post("/login")
async def login(
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
    strategy: JWTStrategy = Depends(get_jwt_strategy),
):
    body = (await login_pipeline.run(request)).body
    credentials = OAuth2PasswordRequestForm(username=body["username"], password=body["password"])
    user = await user_manager.authenticate(credentials)
    if user is None:
        logger.warning("Failed login attempt")
        raise InvalidCredentials()
    if not user.is_active:
        raise InvalidCredentials("Your account has been deactivated. Contact the administrator.", message="Account deactivated")

    token = await strategy.write_token(user)
    await user_manager.on_after_login(user, request)
    return {
        "success": True,
        "message": "Login successful",
        "data": {"user": public_profile(await user_manager.get(user.id)), "token": token, "token_type": "bearer"},
    }


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    if not user.is_active:
        raise AccountInactive("Your account has been deactivated. Contact the administrator.")
    return {"success": True, "data": {"user": public_profile(user)}}
