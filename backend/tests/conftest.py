from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import database
from app.database import engine_options
from app.config import settings
from app.models import Base
from app.services.file_storage import FileStorageService


def _memory_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        **engine_options("sqlite+aiosqlite://"),
    )


@pytest.fixture
def storage(tmp_path) -> FileStorageService:
    return FileStorageService(tmp_path / "uploads")


@pytest.fixture
def db_scope():
    """Async context manager yielding a session on a fresh in-memory database.

    Use it inside the coroutine passed to ``asyncio.run`` so the engine
    lives on that event loop.
    """

    @asynccontextmanager
    async def scope():
        engine = _memory_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with session_factory() as session:
                yield session
        finally:
            await engine.dispose()

    return scope


@pytest.fixture
def client(tmp_path, monkeypatch):
    engine = _memory_engine()
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(
        database, "async_session",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )
    monkeypatch.setattr(settings, "FILE_STORAGE_PATH", str(tmp_path / "uploads"))

    from app.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
