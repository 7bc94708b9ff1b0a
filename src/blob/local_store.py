# src/blob/local_store.py — v1
"""Local filesystem blob store (default backend).

Writes are staged in {root}/staging and published with an atomic rename,
so a partially written blob is never visible under its final hash.
Concurrent writers of identical content race harmlessly: whichever
rename lands last replaces an identical file.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from adacta.blob import layout
from adacta.blob.base_blob_store import BaseBlobStore
from adacta.blob.models import BlobInfo
from adacta.core.errors import BlobNotFound

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024


class LocalBlobStore(BaseBlobStore):
    """Content-addressed store on a local (or mounted) filesystem."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        layout.objects_dir(self._root).mkdir(parents=True, exist_ok=True)
        layout.staging_dir(self._root).mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, data: bytes) -> str:
        """Store bytes if absent and return their hash."""
        blob_hash = layout.compute_hash(data)
        published = await asyncio.to_thread(self._publish_bytes, blob_hash, data)
        if published:
            logger.debug("Published blob %s (%d bytes)", blob_hash, len(data))
        return blob_hash

    async def put_file(self, path: Path) -> str:
        """Stream a file into the store, hashing while copying."""
        blob_hash = await asyncio.to_thread(self._publish_file, Path(path))
        return blob_hash

    async def get(self, blob_hash: str) -> bytes:
        path = self._path(blob_hash)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise BlobNotFound(blob_hash) from None

    async def exists(self, blob_hash: str) -> bool:
        return self._path(blob_hash).is_file()

    async def stat(self, blob_hash: str) -> BlobInfo:
        path = self._path(blob_hash)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise BlobNotFound(blob_hash) from None
        return BlobInfo(
            hash=blob_hash,
            size=st.st_size,
            stored_at=datetime.fromtimestamp(st.st_mtime, timezone.utc),
        )

    async def delete(self, blob_hash: str) -> bool:
        path = self._path(blob_hash)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted blob %s", blob_hash)
        return True

    async def list_hashes(self) -> list[str]:
        return await asyncio.to_thread(
            lambda: [p.name for p in layout.iter_object_paths(self._root)]
        )

    async def verify(self, blob_hash: str) -> bool:
        """Re-hash stored content and compare with its address."""
        data = await self.get(blob_hash)
        return layout.compute_hash(data) == blob_hash

    # ------------------------------------------------------------------
    # Staging + atomic publish
    # ------------------------------------------------------------------

    def _path(self, blob_hash: str) -> Path:
        return layout.object_path(self._root, blob_hash)

    def _stage(self) -> tuple[int, str]:
        return tempfile.mkstemp(dir=layout.staging_dir(self._root), suffix=".tmp")

    def _publish_bytes(self, blob_hash: str, data: bytes) -> bool:
        final = self._path(blob_hash)
        if final.exists():
            return False
        fd, tmp = self._stage()
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            return self._promote(Path(tmp), final)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    def _publish_file(self, source: Path) -> str:
        hasher = layout.new_hasher()
        fd, tmp = self._stage()
        try:
            with os.fdopen(fd, "wb") as out, source.open("rb") as src:
                while chunk := src.read(_COPY_CHUNK):
                    hasher.update(chunk)
                    out.write(chunk)
                out.flush()
                os.fsync(out.fileno())
            blob_hash = hasher.hexdigest()
            if self._promote(Path(tmp), self._path(blob_hash)):
                logger.debug("Published blob %s from %s", blob_hash, source)
            return blob_hash
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    @staticmethod
    def _promote(tmp: Path, final: Path) -> bool:
        """Atomically publish a staged file. Returns False if already present."""
        if final.exists():
            return False
        final.parent.mkdir(parents=True, exist_ok=True)
        os.chmod(tmp, 0o444)
        os.replace(tmp, final)
        return True

    def purge_staging(self) -> int:
        """Remove leftovers of writes interrupted by a crash."""
        staging = layout.staging_dir(self._root)
        removed = 0
        for entry in staging.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
        if removed:
            logger.info("Purged %d stale staging entries", removed)
        return removed
