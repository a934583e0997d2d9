"""
Conftest
"""

import os
import tempfile

# Settings are read at import time
os.environ["ENV"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_AUTO_CREATE"] = "false"
os.environ["ENABLE_REDIS_RELAY"] = "false"
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="fitsocial-media-")

import uuid
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fitsocial.core.deps import get_data_service
from fitsocial.core.security import create_access_token
from fitsocial.infra.db import get_db
from fitsocial.infra.storage import LocalBlobStorage
from fitsocial.main import app
from fitsocial.models import Base
from fitsocial.realtime.feed import ChangeFeed
from fitsocial.schemas.profile import ProfileRead
from fitsocial.services.data_service import DataService


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture
async def test_engine(tmp_path):
    # File-backed so concurrent sessions get their own connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def storage(tmp_path) -> LocalBlobStorage:
    return LocalBlobStorage(root=str(tmp_path / "media"), base_url="/media")


@pytest.fixture
def data_service(session_factory, feed, storage) -> DataService:
    return DataService(session_factory, feed, storage)


@pytest.fixture
def make_profile(data_service):
    async def _make(
        username: Optional[str] = None,
        *,
        private: bool = False,
        full_name: Optional[str] = None,
        **fields,
    ) -> ProfileRead:
        profile_id = str(uuid.uuid4())
        row = await data_service.insert(
            "profiles",
            {
                "id": profile_id,
                "username": username or f"user_{profile_id[:8]}",
                "full_name": full_name,
                "is_profile_private": private,
                **fields,
            },
        )
        return ProfileRead.model_validate(row)

    return _make


@pytest.fixture
async def client(data_service, session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_data_service] = lambda: data_service
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth_for():
    return auth_headers
