# blob_storage.py
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob.aio import BlobServiceClient
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from app.config import Settings
from app.errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class BlobSink(ABC):
    """Stores an uploaded video and returns the URL it can be fetched from."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    async def save(self, file: UploadFile, file_type: str = "video") -> str:
        if file is None or not file.filename:
            raise ValidationError("No video file uploaded")
        if not (file.content_type or "").startswith("video/"):
            raise ValidationError("Only video files are allowed")

        content = await self._read_limited(file)
        extension = os.path.splitext(file.filename)[1]
        name = f"{file_type}/{uuid.uuid4()}{extension}"
        url = await self._store(name, content, file.content_type)
        logger.info("Stored %s upload %s (%d bytes)", file_type, name, len(content))
        return url

    async def _read_limited(self, file: UploadFile) -> bytes:
        chunks = []
        total = 0
        while True:
            chunk = await file.read(min(CHUNK_SIZE, self.max_bytes + 1 - total))
            if not chunk:
                break
            total += len(chunk)
            if total > self.max_bytes:
                raise ValidationError(f"File too large (max {self.max_bytes // (1024 * 1024)} MB)")
            chunks.append(chunk)
        return b"".join(chunks)

    @abstractmethod
    async def _store(self, name: str, content: bytes, content_type: str) -> str:
        ...


class LocalBlobSink(BlobSink):
    def __init__(self, root: str, url_prefix: str, max_bytes: int):
        super().__init__(max_bytes)
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    async def _store(self, name: str, content: bytes, content_type: str) -> str:
        target = self.root / name
        await run_in_threadpool(target.parent.mkdir, parents=True, exist_ok=True)
        await run_in_threadpool(target.write_bytes, content)
        return f"{self.url_prefix}/{name}"


class AzureBlobSink(BlobSink):
    def __init__(self, connection_string: str, container_name: str, max_bytes: int):
        super().__init__(max_bytes)
        self.connection_string = connection_string
        self.container_name = container_name

    async def _store(self, name: str, content: bytes, content_type: str) -> str:
        async with BlobServiceClient.from_connection_string(self.connection_string) as service:
            container = service.get_container_client(self.container_name)
            try:
                await container.create_container()
            except ResourceExistsError:
                pass
            blob_client = container.get_blob_client(name)
            await blob_client.upload_blob(content, overwrite=True)
            return blob_client.url


def build_sink(settings: Settings) -> BlobSink:
    if settings.blob_backend == "azure":
        return AzureBlobSink(
            settings.azure_storage_connection_string,
            settings.azure_blob_container_name,
            settings.max_upload_bytes,
        )
    return LocalBlobSink(settings.upload_dir, settings.upload_url_prefix, settings.max_upload_bytes)
