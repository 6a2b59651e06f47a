"""
Filesystem blob store.

Artifacts are written under ``base_dir`` at their blob path, e.g.

    {base_dir}/
        sermons/audio/
            sermon42/
                en-US.mp3
                es-ES.mp3

and served from ``public_base_url`` (a static mount or CDN in front of the
directory). Writes are atomic: bytes go to a temp file that is renamed into
place, so a reader never sees a half-written artifact.

File IO runs in a worker thread to keep the event loop free.
"""
from __future__ import annotations

import asyncio
import os
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from sermon_tts.core.logging import debug, get_logger, info, warn
from sermon_tts.stores.base import StoreError
from sermon_tts.utils.timeit import timeit

_LOG = get_logger("sermon-tts.blob.local")


class LocalBlobStore:
    backend = "local"

    def __init__(self, base_dir: str, public_base_url: str):
        self._base_dir = Path(base_dir)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path.lstrip("/"))
        if not rel.parts or ".." in rel.parts:
            raise StoreError(f"invalid blob path: {path!r}", backend=self.backend, operation="resolve")
        return self._base_dir.joinpath(*rel.parts)

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.{os.getpid()}.tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    async def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        target = self._resolve(path)
        with timeit("blob_write") as t:
            try:
                await asyncio.to_thread(self._write, target, data)
            except OSError as e:
                warn(_LOG, "blob_write_error", path=path, error=str(e))
                raise StoreError(f"failed to write {path}: {e}", backend=self.backend, operation="put") from e
        info(_LOG, "blob_saved", path=path, bytes=len(data), content_type=content_type, seconds=round(t.timing.seconds, 4))

    async def url(self, path: str) -> str:
        self._resolve(path)
        return f"{self._public_base_url}/{quote(path.lstrip('/'))}"

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def _unlink() -> bool:
            try:
                target.unlink()
                return True
            except FileNotFoundError:
                return False

        try:
            removed = await asyncio.to_thread(_unlink)
        except OSError as e:
            raise StoreError(f"failed to delete {path}: {e}", backend=self.backend, operation="delete") from e
        debug(_LOG, "blob_delete", path=path, removed=removed)
        return removed
