"""
Shared fixtures: in-memory SQLite store, token issuer, fake media store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from auth.jwt import TokenIssuer
from connectors.base import BaseUploader, UploadResult
from core.errors import DependencyError
from core.profile import ProfileService
from core.session_manager import SessionManager
from database.session import Database
from database.user_store import UserStore

ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"


class FakeUploader(BaseUploader):
    """Records uploads instead of talking to a media store."""

    def __init__(self) -> None:
        self.uploaded: List[str] = []
        self.deleted: List[str] = []
        self.fail_when: Optional[Callable[[str], bool]] = None

    @property
    def provider_name(self) -> str:
        return "fake"

    async def upload(self, local_path: str) -> UploadResult:
        name = Path(local_path).name
        Path(local_path).unlink(missing_ok=True)
        if self.fail_when is not None and self.fail_when(local_path):
            raise DependencyError("Media upload failed")
        self.uploaded.append(local_path)
        return UploadResult(url=f"https://media.test/{name}", public_id=name)

    async def delete(self, public_id: str) -> bool:
        self.deleted.append(public_id)
        return True


@pytest_asyncio.fixture
async def database():
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.connect()
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database):
    return UserStore(database, timeout=5.0)


@pytest.fixture
def issuer():
    return TokenIssuer(ACCESS_SECRET, 900, REFRESH_SECRET, 86400)


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest_asyncio.fixture
async def manager(store, issuer, uploader):
    return SessionManager(store, issuer, uploader, password_rounds=4)


@pytest_asyncio.fixture
async def profiles(store, uploader):
    return ProfileService(store, uploader)


@pytest_asyncio.fixture
async def alice(manager):
    return await manager.register(
        "Alice Liddell", "alice@x.com", "alice", "pw123", "/tmp/alice-avatar.png",
    )
