"""
Google Cloud Storage BlobStore.

Public URLs have the form ``https://storage.googleapis.com/<bucket>/<path>``
with the path percent-encoded as a single component. When
``signed_url_ttl_seconds`` is positive a V4 signed GET URL is returned
instead, for buckets that are not publicly readable.

The storage SDK is synchronous; calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional
from urllib.parse import quote

from google.api_core import exceptions as gexc
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from sermon_tts.core.logging import get_logger, info
from sermon_tts.stores.base import StoreError

_LOG = get_logger("sermon-tts.blob.gcs")

PUBLIC_URL_ROOT = "https://storage.googleapis.com"

# OSError covers the requests connection errors raised by the storage SDK.
BACKEND_ERRORS = (gexc.GoogleAPIError, GoogleAuthError, OSError)


def public_url(bucket: str, path: str) -> str:
    return f"{PUBLIC_URL_ROOT}/{bucket}/{quote(path, safe='')}"


class GCSBlobStore:
    backend = "gcs"

    def __init__(
        self,
        bucket: str,
        client: Optional[storage.Client] = None,
        signed_url_ttl_seconds: int = 0,
    ):
        self._client = client or storage.Client()
        self._bucket = self._client.bucket(bucket)
        self._bucket_name = bucket
        self._signed_url_ttl_seconds = signed_url_ttl_seconds

    async def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        blob = self._bucket.blob(path)
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except BACKEND_ERRORS as e:
            raise StoreError(f"upload of {path} failed: {e}", backend=self.backend, operation="put") from e
        info(_LOG, "blob_uploaded", bucket=self._bucket_name, path=path, bytes=len(data))

    async def url(self, path: str) -> str:
        if self._signed_url_ttl_seconds <= 0:
            return public_url(self._bucket_name, path)
        blob = self._bucket.blob(path)
        try:
            return await asyncio.to_thread(
                blob.generate_signed_url,
                version="v4",
                expiration=timedelta(seconds=self._signed_url_ttl_seconds),
                method="GET",
            )
        except BACKEND_ERRORS + (ValueError, AttributeError) as e:
            # AttributeError: credentials without a signer (e.g. user ADC).
            raise StoreError(f"signing URL for {path} failed: {e}", backend=self.backend, operation="url") from e

    async def exists(self, path: str) -> bool:
        try:
            return await asyncio.to_thread(self._bucket.blob(path).exists)
        except BACKEND_ERRORS as e:
            raise StoreError(f"exists check for {path} failed: {e}", backend=self.backend, operation="exists") from e

    async def delete(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self._bucket.blob(path).delete)
        except gexc.NotFound:
            return False
        except BACKEND_ERRORS as e:
            raise StoreError(f"delete of {path} failed: {e}", backend=self.backend, operation="delete") from e
        return True
