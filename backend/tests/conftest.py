"""
Shared fixtures for the DocVault test suite.

Database tests run against a temporary SQLite file through aiosqlite. Object
storage is replaced by ``InMemoryObjectStore`` for service and API tests; the
real MinIO/S3 backends are tested separately with mocked SDK clients.
"""

import os
from typing import Dict, List

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Keep the module-level settings away from real infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from app.config import Settings  # noqa: E402
from app.core.auth.auth_service import AuthService  # noqa: E402
from app.core.database.base import Base  # noqa: E402
from app.core.database.models import User  # noqa: E402
from app.core.errors import ObjectNotFoundError, StorageError  # noqa: E402
from app.core.shared.database_service import DatabaseService  # noqa: E402
from app.core.storage.object_store import UploadResult  # noqa: E402
from app.services.document_service import DocumentService  # noqa: E402
from app.services.ingestion_service import IngestionService  # noqa: E402

TEST_JWT_SECRET = "test-secret"

SEED_USERS = [
    {"id": 1, "email": "admin@example.com", "username": "admin", "role": "admin"},
    {"id": 2, "email": "editor@example.com", "username": "editor", "role": "editor"},
    {"id": 3, "email": "user@example.com", "username": "user", "role": "user"},
    {"id": 4, "email": "viewer@example.com", "username": "viewer", "role": "viewer"},
]


class InMemoryObjectStore:
    """Dict-backed object store with switchable failures."""

    backend = "memory"

    def __init__(self, bucket: str = "test-documents"):
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.puts: List[str] = []
        self.deletes: List[str] = []
        self.fail_put = False
        self.fail_delete = False

    def put(self, data: bytes, key: str, content_type: str) -> UploadResult:
        if self.fail_put:
            raise StorageError(f"Failed to upload {key}: simulated outage")
        self.puts.append(key)
        self.objects[key] = data
        self.content_types[key] = content_type
        return UploadResult(key=key, url=self.sign_url(key), bucket=self.bucket)

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {key}")
        return self.objects[key]

    def delete(self, key: str) -> None:
        self.deletes.append(key)
        if self.fail_delete:
            raise StorageError(f"Failed to delete {key}: simulated outage")
        self.objects.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.objects

    def sign_url(self, key: str, ttl_seconds: int = 3600) -> str:
        return f"https://storage.test/{self.bucket}/{key}?expires={ttl_seconds}"


def seed_users_sync(sqlite_path: str) -> None:
    """Create the schema and the seed users with a plain synchronous engine."""
    engine = create_engine(f"sqlite:///{sqlite_path}")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        for data in SEED_USERS:
            session.add(User(**data))
        session.commit()
    engine.dispose()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest_asyncio.fixture
async def database(tmp_path):
    db = DatabaseService(f"sqlite+aiosqlite:///{tmp_path / 'docvault-test.db'}")
    await db.init_db()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def session(database):
    async with database.get_session() as session:
        yield session


@pytest_asyncio.fixture
async def users(session) -> Dict[str, User]:
    created = {}
    for data in SEED_USERS:
        user = User(**data)
        session.add(user)
        created[data["role"]] = user
    await session.commit()
    return created


@pytest.fixture
def document_service(object_store) -> DocumentService:
    return DocumentService(object_store, max_upload_size=10 * 1024 * 1024)


@pytest_asyncio.fixture
async def ingestion_service(database):
    service = IngestionService(
        database.get_session,
        start_delay=0,
        tick_interval=0.01,
        seconds_per_item=30,
    )
    yield service
    await service.shutdown()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'docvault-api.db'}",
        jwt_secret_key=TEST_JWT_SECRET,
        ingestion_start_delay_seconds=0,
        ingestion_tick_interval_seconds=0.01,
        log_level="WARNING",
    )


@pytest.fixture
def auth_headers():
    """Build a Bearer header for a seed user by role."""
    auth = AuthService(jwt_secret=TEST_JWT_SECRET, jwt_algorithm="HS256", access_token_expire_minutes=5)
    ids = {u["role"]: u["id"] for u in SEED_USERS}

    def _headers(role: str) -> Dict[str, str]:
        token = auth.create_access_token(user_id=ids[role], role=role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_client(test_settings, tmp_path):
    """Build a TestClient over a fresh app with seeded users and the given store."""
    from fastapi.testclient import TestClient

    from app.main import create_app

    seed_users_sync(str(tmp_path / "docvault-api.db"))

    def _make(store) -> TestClient:
        return TestClient(create_app(app_settings=test_settings, object_store=store))

    return _make


@pytest.fixture
def client(make_client, object_store):
    with make_client(object_store) as test_client:
        yield test_client
