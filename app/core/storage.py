"""Google Cloud Storage access.

The client library is synchronous, so every call is pushed to Starlette's
threadpool.
"""
import json
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from google.api_core.exceptions import BadRequest, NotFound
from google.cloud import storage as gcs

from app.core.config import settings

logger = logging.getLogger(__name__)


def _build_client() -> gcs.Client:
    if settings.GCP_KEY:
        info = json.loads(settings.GCP_KEY)
        return gcs.Client.from_service_account_info(info, project=info.get("project_id"))
    if settings.GCP_KEY_FILE:
        return gcs.Client.from_service_account_json(settings.GCP_KEY_FILE)
    return gcs.Client()


def _is_uniform_access_error(exc: Exception) -> bool:
    return isinstance(exc, BadRequest) and "uniform bucket-level access" in str(exc)


class BucketStorage:
    def __init__(self, bucket_name: str, client: Optional[gcs.Client] = None):
        self.bucket_name = bucket_name
        self._client = client
        self._bucket = None
        # None until read from the bucket metadata
        self._uniform_access: Optional[bool] = None

    @property
    def bucket(self):
        if self._bucket is None:
            if self._client is None:
                self._client = _build_client()
            self._bucket = self._client.bucket(self.bucket_name)
        return self._bucket

    def public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None):
        blob = self.bucket.blob(key)
        await run_in_threadpool(
            blob.upload_from_string, data, content_type=content_type or "application/octet-stream"
        )

    async def delete(self, key: str):
        def _delete():
            try:
                self.bucket.blob(key).delete()
            except NotFound:
                pass

        await run_in_threadpool(_delete)

    async def list(self, prefix: str, delimiter: Optional[str] = None) -> List[str]:
        def _list():
            blobs = self.bucket.client.list_blobs(self.bucket, prefix=prefix, delimiter=delimiter)
            return [blob.name for blob in blobs]

        return await run_in_threadpool(_list)

    async def delete_prefix(self, prefix: str) -> int:
        """Enumerate every object under ``prefix`` and delete them."""
        names = await self.list(prefix)

        def _delete_all():
            blobs = [self.bucket.blob(name) for name in names]
            self.bucket.delete_blobs(blobs, on_error=lambda blob: None)

        if names:
            await run_in_threadpool(_delete_all)
        return len(names)

    async def exists(self, key: str) -> bool:
        return await run_in_threadpool(self.bucket.blob(key).exists)

    async def size(self, key: str) -> Optional[int]:
        blob = await run_in_threadpool(self.bucket.get_blob, key)
        return blob.size if blob is not None else None

    async def read(self, key: str) -> bytes:
        return await run_in_threadpool(self.bucket.blob(key).download_as_bytes)

    async def copy(self, source: str, destination: str):
        def _copy():
            self.bucket.copy_blob(self.bucket.blob(source), self.bucket, destination)

        await run_in_threadpool(_copy)

    async def signed_upload_url(self, key: str, content_type: str, minutes: int) -> str:
        blob = self.bucket.blob(key)
        return await run_in_threadpool(
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(minutes=minutes),
            method="PUT",
            content_type=content_type,
        )

    async def uniform_access_enabled(self) -> bool:
        if self._uniform_access is not None:
            return self._uniform_access
        try:
            await run_in_threadpool(self.bucket.reload)
            self._uniform_access = bool(
                self.bucket.iam_configuration.uniform_bucket_level_access_enabled
            )
        except Exception:
            logger.warning("Could not read bucket configuration; trying object ACLs", exc_info=True)
            self._uniform_access = False
        return self._uniform_access

    async def make_public(self, key: str) -> bool:
        if await self.uniform_access_enabled():
            return False
        try:
            await run_in_threadpool(self.bucket.blob(key).make_public)
            return True
        except Exception as exc:
            if _is_uniform_access_error(exc):
                self._uniform_access = True
                return False
            logger.warning("Could not make %s public", key, exc_info=True)
            return False


_storage: Optional[BucketStorage] = None


def get_storage() -> BucketStorage:
    global _storage
    if _storage is None:
        _storage = BucketStorage(settings.BUCKET_NAME)
    return _storage
