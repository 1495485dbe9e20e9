"""
Pytest Configuration and Test Fixtures for the User Files Backend

This module provides the shared fixtures:
- Isolated Settings built without .env files
- An in-memory stand-in for the Motor metadata collection
- A mocked StorageClient with async transfer methods
- Authenticated user, JWT and service fixtures
- A FastAPI TestClient wired with the mocked collaborators
"""

import asyncio
import copy

from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from fastapi.testclient import TestClient

from user_files.config import Settings
from user_files.core.auth import create_local_jwt
from user_files.core.metadata import MetadataStore
from user_files.core.storage import StorageClient, StoredObject
from user_files.main import create_app
from user_files.models.user import CurrentUser
from user_files.services.file_service import UserFileService


TEST_BUCKET = "bucket"
TEST_USER_ID = "xyz123"
TEST_ACCOUNTS_BASE_URL = "https://service/v1/accounts"
TEST_USER_HREF = f"{TEST_ACCOUNTS_BASE_URL}/{TEST_USER_ID}"
S3_BASE_URL = "https://s3.amazonaws.com/"

STORAGE_ENV_VARS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_BUCKET", "AWS_REGION")


# ==============================================================================
# Pytest Configuration
# ==============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ==============================================================================
# Fakes
# ==============================================================================


class FakeCollection:
    """
    In-memory replacement for the Motor custom_data collection.

    Each call yields to the event loop before touching the data, the way a
    network round trip would, so interleavings between concurrent
    read-modify-write cycles show up in tests.
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.find_one_calls: list[dict[str, Any]] = []
        self.replace_one_calls: list[dict[str, Any]] = []
        self.find_error: Exception | None = None
        self.replace_errors: dict[str, Exception] = {}

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        self.find_one_calls.append(query)
        await asyncio.sleep(0)
        if self.find_error is not None:
            raise self.find_error
        document = self.documents.get(query["_id"])
        return copy.deepcopy(document)

    async def replace_one(
        self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False
    ) -> None:
        self.replace_one_calls.append(copy.deepcopy(replacement))
        await asyncio.sleep(0)
        names = {item["name"] for item in replacement.get("files", [])}
        for file_name in names & self.replace_errors.keys():
            raise self.replace_errors.pop(file_name)
        if query["_id"] not in self.documents and not upsert:
            return
        self.documents[query["_id"]] = {"_id": query["_id"], **copy.deepcopy(replacement)}

    def stored_files(self, href: str) -> dict[str, dict[str, Any]] | None:
        document = self.documents.get(href)
        if document is None or "files" not in document:
            return None
        return {item["name"]: item for item in document["files"]}


def listing(*pages: list[StoredObject], error: Exception | None = None) -> Mock:
    """Build an iter_object_pages replacement yielding ``pages`` then raising ``error``."""

    async def iter_object_pages(prefix: str):
        for page in pages:
            await asyncio.sleep(0)
            yield page
        if error is not None:
            raise error

    return Mock(side_effect=iter_object_pages)


def stored_object(key: str, day: int = 1) -> StoredObject:
    return StoredObject(key=key, last_modified=datetime(2024, 1, day, 12, 0, tzinfo=UTC))


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def clean_storage_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove the S3 environment variables so only explicit values apply."""
    for name in STORAGE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def test_settings(clean_storage_env: pytest.MonkeyPatch) -> Settings:
    """Settings with complete S3 configuration and no .env file."""
    return Settings(
        _env_file=None,
        app_env="testing",
        aws_access_key_id="id",
        aws_secret_access_key="secret",
        aws_bucket=TEST_BUCKET,
        secret_key="test-secret-key-for-jwt-signing-minimum-32-chars",
        accounts_base_url=TEST_ACCOUNTS_BASE_URL,
        json_logs=False,
    )


# ==============================================================================
# Collaborator Fixtures
# ==============================================================================


@pytest.fixture
def fake_collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def metadata_store(fake_collection: FakeCollection) -> MetadataStore:
    return MetadataStore(lambda: fake_collection)


@pytest.fixture
def mock_storage() -> Mock:
    """
    StorageClient double with async transfer methods.

    object_url builds the same href as the real client; iter_object_pages
    yields nothing unless a test replaces it with listing(...).
    """
    storage = Mock(spec=StorageClient)
    storage.bucket_name = TEST_BUCKET
    storage.upload_file = AsyncMock(return_value=None)
    storage.download_file = AsyncMock(return_value=None)
    storage.delete_objects = AsyncMock(return_value={})
    storage.object_url = Mock(side_effect=lambda key: f"{S3_BASE_URL}{TEST_BUCKET}/{key}")
    storage.iter_object_pages = listing()
    return storage


@pytest.fixture
def make_listing() -> Callable[..., Mock]:
    return listing


@pytest.fixture
def make_object() -> Callable[..., StoredObject]:
    return stored_object


@pytest.fixture
def file_service(mock_storage: Mock, metadata_store: MetadataStore) -> UserFileService:
    return UserFileService(mock_storage, metadata_store, TEST_USER_HREF)


# ==============================================================================
# Authentication Fixtures
# ==============================================================================


@pytest.fixture
def test_user() -> CurrentUser:
    return CurrentUser(href=TEST_USER_HREF, email="user@example.com")


@pytest.fixture
def test_jwt_token(test_settings: Settings) -> str:
    return create_local_jwt(TEST_USER_ID, "user@example.com", test_settings)


@pytest.fixture
def auth_headers(test_jwt_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {test_jwt_token}"}


# ==============================================================================
# Application Fixtures
# ==============================================================================


@pytest.fixture
def app_factory(
    test_settings: Settings, mock_storage: Mock, metadata_store: MetadataStore
) -> Callable[..., Any]:
    def factory(**overrides: Any):
        kwargs = {
            "settings": test_settings,
            "storage_client": mock_storage,
            "metadata_store": metadata_store,
        }
        kwargs.update(overrides)
        return create_app(**kwargs)

    return factory


@pytest.fixture
def client(app_factory: Callable[..., Any]) -> Generator[TestClient, None, None]:
    with TestClient(app_factory()) as test_client:
        yield test_client
