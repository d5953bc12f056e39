"""Pytest configuration and fixtures."""
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from fastapi import FastAPI
from fastapi.testclient import TestClient

from s3proxy.api.main import create_app
from s3proxy.core.config import Settings
from s3proxy.storage import LocalStorage, RemoteStorage


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Test settings with safe defaults."""
    return Settings(
        environment="development",
        debug=True,
        cloud_provider="local",
        cloud_filesystem_basedir=tmp_path / "buckets",
    )


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    """Filesystem backend rooted in a temporary directory."""
    return LocalStorage(tmp_path / "buckets")


@pytest.fixture
def app(storage: LocalStorage) -> FastAPI:
    """Application serving the temporary filesystem backend."""
    return create_app(storage=storage)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Synchronous test client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def mock_s3() -> MagicMock:
    """Mock boto3 S3 client that accepts the startup credential check."""
    mock = MagicMock()
    mock.list_buckets.return_value = {
        "Buckets": [],
        "Owner": {"ID": "owner-id", "DisplayName": "owner"},
    }
    return mock


@pytest.fixture
def remote_storage(mock_s3: MagicMock) -> Generator[RemoteStorage, None, None]:
    """Remote backend wired to the mock client."""
    with patch.object(RemoteStorage, "_build_client", return_value=mock_s3):
        yield RemoteStorage(identity="AKIDTEST", secret="secret", region="us-east-1")


@pytest.fixture
def client_error() -> Callable[..., ClientError]:
    """Factory for botocore ClientErrors carrying an S3 error code."""

    def build(code: str, operation: str = "Operation", status: int = 400) -> ClientError:
        return ClientError(
            {
                "Error": {"Code": code, "Message": f"{code} raised by test"},
                "ResponseMetadata": {"HTTPStatusCode": status},
            },
            operation,
        )

    return build
