import pytest
import pytest_asyncio
from fastapi import HTTPException, Request
from fastapi_users import InvalidPasswordException

from auth.schemas import UserCreate
from auth.user_manager import UserManager
from users.user_repo import SurrealUserDatabase


@pytest_asyncio.fixture
async def user_manager(fake_db):
    user_db = SurrealUserDatabase(fake_db, "users")
    yield UserManager(user_db)
    await fake_db.query("REMOVE TABLE users")


@pytest.mark.asyncio
async def test_on_after_register(user_manager: UserManager):
    # Simulate user
    user_data = {"email": "hook@example.com", "hashed_password": "secret", "is_verified": True, "is_active": True}
    created = await user_manager.user_db.create(user_data)

    # Should not raise errors
    await user_manager.on_after_register(created, Request({"type": "http"}))


@pytest.mark.asyncio
async def test_create_fills_defaults(user_manager: UserManager):
    created = await user_manager.user_db.create({"email": "New@Example.com", "hashed_password": "secret"})

    assert created.email == "new@example.com"
    assert created.plan == "free"
    assert created.role == "user"
    assert created.preferences["currency"] == "USD"
    assert created.last_login is None
    assert ":" not in created.id


@pytest.mark.asyncio
async def test_get_by_email_found(user_manager: UserManager):
    user_data = {"email": "found@example.com", "hashed_password": "secret", "is_verified": True, "is_active": True}
    created = await user_manager.user_db.create(user_data)

    found = await user_manager.user_db.get_by_email("Found@Example.com")
    assert found is not None
    assert found.id == created.id
    assert found.email == created.email


@pytest.mark.asyncio
async def test_get_by_email_not_found(user_manager: UserManager):
    missing = await user_manager.user_db.get_by_email("missing@example.com")
    assert missing is None


@pytest.mark.asyncio
async def test_get_by_email_handles_exception(user_manager: UserManager, monkeypatch):
    async def raise_error(query, vars):
        raise RuntimeError("DB failure")

    # Monkeypatch the underlying db.query to raise an exception
    monkeypatch.setattr(user_manager.user_db.db, "query", raise_error)

    with pytest.raises(HTTPException) as exc_info:
        await user_manager.user_db.get_by_email("error@example.com")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_parse_id_strips_table_prefix(user_manager: UserManager):
    assert user_manager.parse_id("users:abc123") == "abc123"
    assert user_manager.parse_id("abc123") == "abc123"


@pytest.mark.asyncio
async def test_validate_password_rejects_weak_password(user_manager: UserManager):
    candidate = UserCreate(email="weak@example.com", password="password", name="Weak")
    with pytest.raises(InvalidPasswordException) as exc_info:
        await user_manager.validate_password("password", candidate)
    assert "uppercase" in exc_info.value.reason


@pytest.mark.asyncio
async def test_validate_password_rejects_email_in_password(user_manager: UserManager):
    candidate = UserCreate(email="carlos@example.com", password="Carlos!2024", name="Carlos")
    with pytest.raises(InvalidPasswordException):
        await user_manager.validate_password("Carlos!2024", candidate)


@pytest.mark.asyncio
async def test_validate_password_accepts_strong_password(user_manager: UserManager):
    candidate = UserCreate(email="maria@example.com", password="Str0ng!Pass", name="Maria")
    await user_manager.validate_password("Str0ng!Pass", candidate)


@pytest.mark.asyncio
async def test_on_after_login_records_last_login(user_manager: UserManager):
    created = await user_manager.user_db.create({"email": "login@example.com", "hashed_password": "secret"})

    await user_manager.on_after_login(created)

    refreshed = await user_manager.user_db.get(created.id)
    assert refreshed.last_login is not None
    assert refreshed.last_login.endswith("Z")
