from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from app.blob_storage import LocalBlobSink
from app.config import Settings
from app.feed import FeedService
from app.main import create_app
from app.storage import MemoryStorage


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def feed(storage: MemoryStorage) -> FeedService:
    return FeedService(storage)


async def make_user(storage: MemoryStorage, username: str, **extra: Any) -> dict:
    return await storage.create_user({"username": username, "password": "not-a-hash", **extra})


async def make_video(feed: FeedService, owner_id: int, **extra: Any):
    params = {"video_url": f"/uploads/video/{owner_id}.mp4", "duration": 30}
    params.update(extra)
    return await feed.create_video(owner_id=owner_id, **params)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        secret_key="test-secret",
        storage_backend="memory",
        blob_backend="local",
        upload_dir=str(tmp_path / "uploads"),
        max_upload_bytes=1024,
        log_level="WARNING",
    )


@pytest.fixture
def client(settings: Settings, storage: MemoryStorage) -> Iterator[TestClient]:
    sink = LocalBlobSink(settings.upload_dir, settings.upload_url_prefix, settings.max_upload_bytes)
    app = create_app(settings=settings, storage=storage, sink=sink)
    with TestClient(app) as test_client:
        yield test_client
