"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")


class FakeChatBackend:
    """In-memory stand-in for ChatBackend.

    Records writes, hands out incrementing row ids and keeps the realtime
    callbacks so tests can push INSERT/UPDATE events by hand. Set the
    ``*_error`` attributes to make the matching call fail.
    """

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.inserted: list[dict[str, Any]] = []
        self.uploads: list[tuple[str, bytes, str]] = []
        self.deleted: list[str] = []
        self.lookups: list[str] = []
        self.read_calls: list[list[str]] = []
        self.conversation_read_calls: list[tuple[str, str]] = []
        self.subscriptions: list[dict[str, Any]] = []
        self.unsubscribed: list[Any] = []
        self.closed = False

        self.fetch_error: Exception | None = None
        self.insert_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.find_error: Exception | None = None
        self.mark_error: Exception | None = None
        self.subscribe_error: Exception | None = None

        self.during_insert: Any = None
        self._next_id = 1

    def make_row(self, **overrides: Any) -> dict[str, Any]:
        row = {
            "id": f"00000000-0000-0000-0000-{self._next_id:012d}",
            "conversation_id": "conv-1",
            "sender_id": "user-1",
            "content": "",
            "message_type": "text",
            "file_url": None,
            "is_read": False,
            "read_at": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._next_id += 1
        row.update(overrides)
        return row

    @property
    def on_insert(self) -> Any:
        return self.subscriptions[-1]["on_insert"]

    @property
    def on_update(self) -> Any:
        return self.subscriptions[-1]["on_update"]

    async def fetch_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        if self.fetch_error:
            raise self.fetch_error
        return [row for row in self.rows if row["conversation_id"] == conversation_id]

    async def insert_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        row = self.make_row(**payload)
        if self.during_insert is not None:
            self.during_insert(row)
        if self.insert_error:
            raise self.insert_error
        self.inserted.append(row)
        self.rows.append(row)
        return row

    async def find_message_by_file_url(self, conversation_id: str, file_url: str) -> dict[str, Any] | None:
        self.lookups.append(file_url)
        if self.find_error:
            raise self.find_error
        for row in self.rows:
            if row["conversation_id"] == conversation_id and row.get("file_url") == file_url:
                return row
        return None

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> list[dict[str, Any]]:
        if self.mark_error:
            raise self.mark_error
        self.conversation_read_calls.append((conversation_id, reader_id))
        return []

    async def mark_read(self, message_ids: list[str]) -> list[dict[str, Any]]:
        if self.mark_error:
            raise self.mark_error
        self.read_calls.append(list(message_ids))
        return []

    async def subscribe(self, conversation_id: str, on_insert: Any, on_update: Any, on_status: Any = None) -> Any:
        if self.subscribe_error:
            raise self.subscribe_error
        channel = object()
        self.subscriptions.append(
            {
                "conversation_id": conversation_id,
                "on_insert": on_insert,
                "on_update": on_update,
                "on_status": on_status,
                "channel": channel,
            }
        )
        return channel

    async def unsubscribe(self, channel: Any) -> None:
        self.unsubscribed.append(channel)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.upload_error:
            raise self.upload_error
        self.uploads.append((path, data, content_type))
        return f"https://test-project.supabase.co/storage/v1/object/public/ad-images/{path}"

    async def delete_by_url(self, url: str) -> bool:
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(url)
        return True

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def fake_backend() -> FakeChatBackend:
    """Provide an in-memory chat backend."""
    return FakeChatBackend()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
