"""
shared/utils/media.py
Client for the external media store (Cloudinary REST API).

Uploads for a single operation run concurrently, bounded by
MEDIA_UPLOAD_CONCURRENCY, and are joined before the caller continues.
The first failure cancels the remaining uploads and is re-raised.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Iterable, List, Sequence, TypeVar

import httpx

from config.settings import settings
from shared.exceptions import MediaUploadError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROFILE_IMAGES_FOLDER = "profile_images"
PROVIDER_PORTFOLIO_FOLDER = "provider_portfolios"
SERVICE_OFFERINGS_FOLDER = "service_offerings"


@dataclass(frozen=True)
class MediaFile:
    """An in-memory file received from a multipart request."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class StoredMedia:
    url: str
    public_id: str

    def as_dict(self) -> dict:
        return {"url": self.url, "public_id": self.public_id}


async def run_bounded(coros: Iterable[Awaitable[T]], limit: int) -> List[T]:
    """
    Run awaitables concurrently, at most `limit` in flight.
    Results keep input order. On the first failure every other task is
    cancelled and the original exception propagates.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _guarded(coro: Awaitable[T]) -> T:
        async with semaphore:
            return await coro

    coros = list(coros)
    tasks = [asyncio.ensure_future(_guarded(c)) for c in coros]
    if not tasks:
        return []
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled while queued on the semaphore never started theirs
        for coro in coros:
            if asyncio.iscoroutine(coro):
                coro.close()
        raise


class MediaStore:
    """Signed upload/destroy calls against the Cloudinary image API."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        base_url: str = settings.CLOUDINARY_API_BASE_URL,
        timeout: float = settings.MEDIA_REQUEST_TIMEOUT_SECONDS,
        concurrency: int = settings.MEDIA_UPLOAD_CONCURRENCY,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.concurrency = concurrency
        self.transport = transport

    def _sign(self, params: dict) -> str:
        """Cloudinary signature: sha1 of sorted `k=v&...` followed by the secret."""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": self._sign(params)}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/{self.cloud_name}",
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _upload_one(self, client: httpx.AsyncClient, file: MediaFile, folder: str) -> StoredMedia:
        try:
            response = await client.post(
                "/image/upload",
                data=self._signed({"folder": folder}),
                files={"file": (file.filename, file.content, file.content_type)},
            )
            response.raise_for_status()
            body = response.json()
            return StoredMedia(url=body["secure_url"], public_id=body["public_id"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Media upload of {file.filename!r} failed: {e!r}")
            raise MediaUploadError(f"Failed to upload {file.filename}") from e

    async def _destroy_one(self, client: httpx.AsyncClient, public_id: str) -> None:
        try:
            response = await client.post(
                "/image/destroy",
                data=self._signed({"public_id": public_id}),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Media delete of {public_id!r} failed: {e}")
            raise MediaUploadError(f"Failed to delete media {public_id}") from e

    async def upload_many(self, files: Sequence[MediaFile], folder: str) -> List[StoredMedia]:
        """Upload all files concurrently. All succeed or the call fails."""
        if not files:
            return []
        async with self._client() as client:
            stored = await run_bounded(
                (self._upload_one(client, f, folder) for f in files), self.concurrency
            )
        logger.info(f"Uploaded {len(stored)} file(s) to {folder}")
        return stored

    async def upload(self, file: MediaFile, folder: str) -> StoredMedia:
        return (await self.upload_many([file], folder))[0]

    async def delete_many(self, public_ids: Sequence[str]) -> None:
        if not public_ids:
            return
        async with self._client() as client:
            await run_bounded(
                (self._destroy_one(client, pid) for pid in public_ids), self.concurrency
            )
        logger.info(f"Deleted {len(public_ids)} media object(s)")


def get_media_store() -> MediaStore:
    """FastAPI dependency for the configured media store."""
    return MediaStore(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
    )


async def read_uploads(uploads) -> List[MediaFile]:
    """Drain FastAPI UploadFile objects into MediaFile values."""
    files = []
    for upload in uploads or []:
        if not upload.filename:
            continue
        files.append(
            MediaFile(
                filename=upload.filename,
                content=await upload.read(),
                content_type=upload.content_type or "application/octet-stream",
            )
        )
    return files
