from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.blob_storage import BlobSink, LocalBlobSink
from app.crud import PostgresStorage
from app.database import DatabaseManager, duration_constraint
from app.errors import ConflictError, ValidationError
from app.security import verify_password
from app.storage import MemoryStorage
from conftest import make_user


@pytest.mark.asyncio
async def test_username_lookup_is_case_insensitive(storage: MemoryStorage) -> None:
    created = await make_user(storage, "DanceQueen")

    assert (await storage.get_user_by_username("dancequeen"))["id"] == created["id"]
    with pytest.raises(ConflictError):
        await make_user(storage, "DANCEQUEEN")


@pytest.mark.asyncio
async def test_instances_are_isolated() -> None:
    first = MemoryStorage()
    second = MemoryStorage()
    await make_user(first, "alice")

    assert await second.get_user(1) is None
    assert (await make_user(second, "bob"))["id"] == 1


@pytest.mark.asyncio
async def test_returned_records_are_copies(storage: MemoryStorage) -> None:
    user = await make_user(storage, "alice")
    user["username"] = "mallory"

    assert (await storage.get_user(user["id"]))["username"] == "alice"


@pytest.mark.asyncio
async def test_update_ignores_password(storage: MemoryStorage) -> None:
    user = await make_user(storage, "alice")

    updated = await storage.update_user(user["id"], {"password": "x", "website": "https://example.com"})

    assert updated["password"] == "not-a-hash"
    assert updated["website"] == "https://example.com"
    assert await storage.update_user(42, {"bio": "x"}) is None


@pytest.mark.asyncio
async def test_seed_sample_data() -> None:
    seeded = MemoryStorage(seed=True)
    await seeded.open()
    await seeded.open()

    assert len(seeded.users) == 3
    chef = await seeded.get_user_by_username("chefmaria")
    assert verify_password("password123", chef["password"])


def _upload(name: str, content: bytes, content_type: str) -> UploadFile:
    return UploadFile(file=BytesIO(content), filename=name, headers=Headers({"content-type": content_type}))


@pytest.mark.asyncio
async def test_local_sink_writes_file(tmp_path: Path) -> None:
    sink = LocalBlobSink(str(tmp_path), "/uploads/", max_bytes=100)

    url = await sink.save(_upload("clip.webm", b"abc", "video/webm"))

    assert url.startswith("/uploads/video/")
    assert url.endswith(".webm")
    assert (tmp_path / url[len("/uploads/"):]).read_bytes() == b"abc"


@pytest.mark.asyncio
async def test_local_sink_rejects_bad_uploads(tmp_path: Path) -> None:
    sink = LocalBlobSink(str(tmp_path), "/uploads", max_bytes=4)

    with pytest.raises(ValidationError):
        await sink.save(_upload("photo.png", b"png", "image/png"))
    with pytest.raises(ValidationError):
        await sink.save(_upload("clip.mp4", b"too large", "video/mp4"))
    assert not any(tmp_path.iterdir())


def test_like_pattern_escapes_wildcards() -> None:
    from app.crud import _like_pattern

    assert _like_pattern("100%_fun") == "%100\\%\\_fun%"


def test_backend_selection() -> None:
    from app.config import Settings
    from app.main import build_storage

    assert isinstance(build_storage(Settings(storage_backend="memory")), MemoryStorage)
    postgres = build_storage(Settings(storage_backend="postgres", database_url="postgresql://db/test"))
    assert isinstance(postgres, PostgresStorage)
    assert postgres.db.pool is None
    assert postgres.max_video_duration == 60

    longer = build_storage(
        Settings(storage_backend="postgres", database_url="postgresql://db/test", max_video_duration=90)
    )
    assert longer.max_video_duration == 90


def test_duration_constraint_follows_setting() -> None:
    drop, add = duration_constraint(90)

    assert "DROP CONSTRAINT IF EXISTS videos_duration_check" in drop
    assert "duration <= 90" in add


def test_blob_sink_is_abstract() -> None:
    with pytest.raises(TypeError):
        BlobSink(max_bytes=10)


@pytest.mark.asyncio
async def test_local_sink_stops_reading_oversized_upload(tmp_path: Path) -> None:
    sink = LocalBlobSink(str(tmp_path), "/uploads", max_bytes=4)
    upload = _upload("clip.mp4", b"0" * 10_000, "video/mp4")

    with pytest.raises(ValidationError):
        await sink.save(upload)
    assert upload.file.tell() == 5


class ScriptedPostgres(PostgresStorage):
    """Answers `_fetchone` from a fixed list of rows and records the queries."""

    def __init__(self, *rows):
        super().__init__(DatabaseManager("postgresql://db/test"))
        self.rows = list(rows)
        self.queries = []

    async def _fetchone(self, query, params=()):
        self.queries.append((" ".join(query.split()), params))
        return self.rows.pop(0)


@pytest.mark.asyncio
async def test_postgres_like_conflict_reads_existing_row() -> None:
    existing = {"id": 5, "user_id": 1, "video_id": 2, "created_at": "2024-01-01T00:00:00Z"}
    store = ScriptedPostgres(None, existing)

    assert await store.add_like(1, 2) == existing
    insert, select = store.queries
    assert insert[0].startswith("INSERT INTO likes")
    assert "ON CONFLICT (user_id, video_id) DO NOTHING" in insert[0]
    assert select == ("SELECT * FROM likes WHERE user_id = %s AND video_id = %s", (1, 2))


@pytest.mark.asyncio
async def test_postgres_follow_conflict_reads_existing_row() -> None:
    existing = {"id": 3, "follower_id": 2, "followed_id": 1, "created_at": "2024-01-01T00:00:00Z"}
    store = ScriptedPostgres(None, existing)

    assert await store.add_follow(2, 1) == existing
    insert, select = store.queries
    assert "ON CONFLICT (follower_id, followed_id) DO NOTHING" in insert[0]
    assert select == ("SELECT * FROM follows WHERE follower_id = %s AND followed_id = %s", (2, 1))


@pytest.mark.asyncio
async def test_postgres_like_insert_skips_lookup() -> None:
    inserted = {"id": 1, "user_id": 1, "video_id": 2, "created_at": "2024-01-01T00:00:00Z"}
    store = ScriptedPostgres(inserted)

    assert await store.add_like(1, 2) == inserted
    assert len(store.queries) == 1
