"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from paperlens.config import get_settings
from paperlens.db import engine as engine_module
from paperlens.db.models import Base
from paperlens.docs.embedder import get_embedder
from paperlens.extraction import progress as progress_module
from paperlens.extraction.progress import ProgressHub
from paperlens.llm.client import Completion, get_llm_client
from paperlens.main import app
from tests.fakes import HashingEmbedder, ScriptedClient, last_user_text


@pytest.fixture
def embedder() -> HashingEmbedder:
    """Deterministic test embedder."""
    return HashingEmbedder()


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Async session on the test engine."""
    async with AsyncSession(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def app_engine(test_engine: AsyncEngine, monkeypatch: pytest.MonkeyPatch) -> AsyncEngine:
    """Make the application's global engine point at the test database."""
    monkeypatch.setattr(engine_module, "_async_engine", test_engine)
    return test_engine


@pytest.fixture
def upload_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the upload root at a temporary directory."""
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setattr(get_settings(), "upload_dir", str(root))
    return root


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string
    with the pgvector extension available. Tests using this fixture should
    be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    settings = get_settings().model_copy(update={"database_url": database_url})
    engine = engine_module.create_async_engine_from_settings(settings)

    async with engine.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for PostgreSQL integration tests."""
    async with AsyncSession(postgres_engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()


@pytest.fixture
def hub(monkeypatch: pytest.MonkeyPatch) -> ProgressHub:
    """Fresh progress hub installed as the application's hub."""
    fresh = ProgressHub(idle_timeout_s=5.0)
    monkeypatch.setattr(progress_module, "_progress_hub", fresh)
    return fresh


@pytest.fixture
def echo_client() -> ScriptedClient:
    """Client whose formatting and redaction passes are identity transforms."""
    return ScriptedClient(lambda messages, max_tokens: Completion(text=last_user_text(messages)))


@pytest_asyncio.fixture
async def api_client(
    app_engine: AsyncEngine,
    upload_dir: Path,
    echo_client: ScriptedClient,
    embedder: HashingEmbedder,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the app, wired to the test database and service doubles."""
    app.dependency_overrides[get_llm_client] = lambda: echo_client
    app.dependency_overrides[get_embedder] = lambda: embedder

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
