"""
Pytest fixtures for CRM tests.

Every test that needs a database gets its own temp-file SQLite database with
the repository's migration units applied, and its own application instance.
"""

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.config import Settings
from src.kernel.identity.jwt import TokenIssuer
from src.kernel.identity.password import hash_password
from src.kernel.identity.records import UserRecord
from src.kernel.migrations import MigrationManager
from src.kernel.models.user import User, UserRole
from src.main import create_app

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"
TEST_SECRET_KEY = "test-secret-key-for-testing-only-0123456789"

ADMIN_PASSWORD = "AdminPass123"
STAFF_PASSWORD = "StaffPass123"


@dataclass
class SeededUser:
    id: uuid.UUID
    email: str
    password: str
    role: UserRole


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh temp-file database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'crm-test.db'}",
        secret_key=TEST_SECRET_KEY,
        migrations_dir=str(MIGRATIONS_DIR),
        auto_migrate=False,
        environment="test",
        log_level="WARNING",
    )


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(secret_key=TEST_SECRET_KEY, algorithm="HS256", access_token_expire_minutes=30)


@pytest.fixture
def user_record() -> UserRecord:
    return UserRecord(
        id=uuid.uuid4(),
        name="Test Staff",
        email="staff@example.com",
        role=UserRole.STAFF,
        is_active=True,
    )


@pytest_asyncio.fixture
async def app(test_settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """Application bound to a migrated temp database."""
    application = create_app(test_settings)
    await MigrationManager(application.state.engine, MIGRATIONS_DIR).migrate()
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def _seed_user(app: FastAPI, name: str, email: str, password: str, role: UserRole) -> SeededUser:
    user = User(
        id=uuid.uuid4(),
        name=name,
        email=email,
        # Low cost factor keeps the suite fast
        password_hash=hash_password(password, rounds=4),
        role=role.value,
        is_active=True,
    )
    async with app.state.session_maker() as session:
        session.add(user)
        await session.commit()
    return SeededUser(id=user.id, email=email, password=password, role=role)


@pytest_asyncio.fixture
async def admin_user(app: FastAPI) -> SeededUser:
    return await _seed_user(app, "Alice Admin", "admin@example.com", ADMIN_PASSWORD, UserRole.ADMINISTRATOR)


@pytest_asyncio.fixture
async def staff_user(app: FastAPI) -> SeededUser:
    return await _seed_user(app, "Sam Staff", "staff@example.com", STAFF_PASSWORD, UserRole.STAFF)


@pytest.fixture
def login_as(client: AsyncClient):
    """Coroutine that logs a seeded user in and returns Authorization headers."""

    async def _login(user: SeededUser) -> dict:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": user.password},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest_asyncio.fixture
async def admin_headers(login_as, admin_user: SeededUser) -> dict:
    return await login_as(admin_user)


@pytest_asyncio.fixture
async def staff_headers(login_as, staff_user: SeededUser) -> dict:
    return await login_as(staff_user)
