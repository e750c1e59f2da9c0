"""
Pytest Configuration and Fixtures
"""

import os
import tempfile
from typing import Callable, Dict, Generator, List, Optional, Tuple
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from scenegen.core.provider_client import ProviderClient
from scenegen.models import Base
from scenegen.models import generation, project, scene  # noqa: F401
from scenegen.models.project import ProfileStatus
from scenegen.services.object_storage import StorageError
from scenegen.services.storage import ProfileDB, ProjectDB, ShotTypeDB
from scenegen.services.video_downloader import VideoDownloader


OWNER_ID = "user-123"
PROJECT_NAME = "demo"
PROMPT = "Slow dolly in, soft morning light"


@pytest.fixture
def test_db_path() -> Generator[str, None, None]:
    """Create temporary database file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def test_db_engine(test_db_path: str) -> Generator:
    """Create test database engine"""
    engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    session = session_factory()
    yield session
    session.close()


class FakeStorage:
    """In-memory stand-in for StorageClient"""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.public_objects: Dict[str, str] = {}
        self.signed_keys: List[str] = []
        self.copies: List[Tuple[str, str, Optional[str]]] = []
        self.removed: List[str] = []
        self.fail_sign = False
        self.fail_upload = False
        self.fail_copy = False

    async def list(self, prefix: str, bucket: Optional[str] = None) -> List[str]:
        prefix = prefix.strip("/") + "/"
        return [
            key for key in self.objects
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        ]

    async def upload(self, key, data, content_type, bucket=None, upsert=True):
        if self.fail_upload:
            raise StorageError("upload failed", "https://storage.test/upload", status=500, body="boom")
        self.objects[key] = (data, content_type)
        return key

    async def remove(self, keys, bucket=None):
        for key in keys:
            self.objects.pop(key, None)
            self.removed.append(key)
        return len(keys)

    async def create_signed_url(self, key, ttl_seconds, bucket=None):
        if self.fail_sign:
            raise StorageError("sign failed", "https://storage.test/sign", status=400, body="not found")
        self.signed_keys.append(key)
        return f"https://storage.test/storage/v1/object/sign/media/{key}?token=t{len(self.signed_keys)}"

    async def copy(self, source_key, destination_key, destination_bucket=None):
        if self.fail_copy:
            raise StorageError("copy failed", "https://storage.test/copy", status=500, body="boom")
        self.copies.append((source_key, destination_key, destination_bucket))
        self.public_objects[destination_key] = source_key
        return destination_key

    def public_url(self, key, bucket=None):
        return f"https://storage.test/storage/v1/object/public/{bucket or 'public-media'}/{key}"

    async def close(self):
        pass


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def owner_id() -> str:
    return OWNER_ID


@pytest.fixture
def seeded(test_db_session):
    """Approved owner with one project and one global shot type"""
    ProfileDB.upsert_profile(test_db_session, OWNER_ID, ProfileStatus.APPROVED.value, "owner@example.com")
    project_row = ProjectDB.create_project(test_db_session, OWNER_ID, PROJECT_NAME)
    shot_type = ShotTypeDB.create_shot_type(test_db_session, "Dolly in", PROMPT)
    return {
        "owner_id": OWNER_ID,
        "project": project_row,
        "shot_type": shot_type,
        "start_key": f"{OWNER_ID}/{PROJECT_NAME}/photos/start.jpg",
        "end_key": f"{OWNER_ID}/{PROJECT_NAME}/photos/end.jpg",
    }


@pytest.fixture
def provider_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], ProviderClient]:
    """Build a ProviderClient whose HTTP calls go to handler"""

    def _make(handler):
        return ProviderClient(
            api_key="test-key",
            base_url="https://provider.test/v1",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=AsyncMock(),
        )

    return _make


@pytest.fixture
def downloader_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], VideoDownloader]:
    """Build a VideoDownloader whose HTTP calls go to handler"""

    def _make(handler):
        return VideoDownloader(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    return _make
