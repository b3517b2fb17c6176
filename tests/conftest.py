"""Pytest configuration and fixtures for MDShare tests."""
import os
from typing import AsyncGenerator, Callable, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.dml import Delete

# Set test env BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing")
os.environ.setdefault("JWT_REFRESH_SECRET_KEY", "test-refresh-secret-key-for-testing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

# Clear config cache so get_settings picks up test env
from mdshare.config import get_settings

get_settings.cache_clear()

import resend

from mdshare.auth import create_access_token, hash_password
from mdshare.database import get_db
from mdshare.main import app
from mdshare.models import Base, Post, User
from mdshare.utils.timeutils import utcnow

TEST_DATABASE_URL = os.environ["DATABASE_URL"]

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in TEST_DATABASE_URL else {},
    poolclass=StaticPool if "sqlite" in TEST_DATABASE_URL else None,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

TEST_PASSWORD = "TestPass123"


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch) -> list[dict]:
    """Capture outgoing Resend emails instead of calling the API."""
    outbox: list[dict] = []

    def fake_send(params: dict) -> dict:
        outbox.append(params)
        return {"id": f"test-{len(outbox)}"}

    monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
    return outbox


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables and yield a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    """Factory for users inserted straight into the database (verified by default)."""

    async def _make_user(
        email: str = "author@example.com",
        name: str = "Author",
        password: Optional[str] = TEST_PASSWORD,
        verified: bool = True,
    ) -> User:
        user = User(
            email=email,
            name=name,
            hashed_password=hash_password(password) if password else None,
            email_verified_at=utcnow() if verified else None,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_post(db_session: AsyncSession) -> Callable:
    async def _make_post(author: User, title: str = "Doc", content: str = "# Hello", is_public: bool = False, **extra) -> Post:
        post = Post(author_id=author.id, title=title, content=content, is_public=is_public, **extra)
        db_session.add(post)
        await db_session.commit()
        return post

    return _make_post


def claim_elsewhere_first(monkeypatch, session: AsyncSession, model) -> None:
    """Empty the token table right before the session's next DELETE on it runs.

    Leaves the session looking like another request redeemed the token between
    its lookup and its claim.
    """
    execute = session.execute
    fired = False

    async def execute_after_other_claim(statement, *args, **kwargs):
        nonlocal fired
        if not fired and isinstance(statement, Delete) and statement.table.name == model.__tablename__:
            fired = True
            await execute(delete(model))
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(session, "execute", execute_after_other_claim)


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
async def auth_headers(client: AsyncClient, db_session: AsyncSession) -> dict:
    """Register a test user through the API, verify the email, log in and return auth headers."""
    from sqlalchemy import select

    from mdshare.models import EmailVerificationToken

    await client.post(
        "/api/auth/register",
        json={
            "email": "test@example.com",
            "password": TEST_PASSWORD,
            "name": "Test User",
        },
    )

    user = (await db_session.execute(select(User).where(User.email == "test@example.com"))).scalar_one()
    token = (
        await db_session.execute(
            select(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id)
        )
    ).scalar_one()
    await client.post("/api/auth/verify-email", json={"token": token.token})

    response = await client.post(
        "/api/auth/login",
        json={
            "email": "test@example.com",
            "password": TEST_PASSWORD,
        },
    )
    access_token = response.json()["access_token"]

    return {"Authorization": f"Bearer {access_token}"}
