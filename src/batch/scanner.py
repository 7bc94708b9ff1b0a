# src/batch/scanner.py — v1
"""Inbox scanner — discover specimens in a directory and archive them.

Files whose content is already archived by a live Document are reported
as duplicates and not ingested again.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from adacta.batch.models import ScanEntry, ScanResult
from adacta.blob.layout import compute_hash
from adacta.core.errors import AdactaError

if TYPE_CHECKING:
    from adacta.api.engine import ArchiveEngine

logger = logging.getLogger(__name__)

# Supported file extensions mapped to format names
SUPPORTED_FORMATS: dict[str, str] = {
    ".pdf": "pdf",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".tif": "image",
    ".tiff": "image",
}


class InboxScanner:
    """Scan an inbox directory and ingest new specimens through the engine."""

    def __init__(self, engine: ArchiveEngine) -> None:
        self._engine = engine

    def scan(self, scan_root: Path, recursive: bool = True) -> list[ScanEntry]:
        """Discover all supported files in directory.

        Raises:
            ValueError: If scan_root is not a directory.
        """
        if not scan_root.is_dir():
            msg = f"Scan root is not a directory: {scan_root}"
            raise ValueError(msg)

        entries: list[ScanEntry] = []
        pattern_fn = scan_root.rglob if recursive else scan_root.glob
        for path in sorted(pattern_fn("*")):
            if not path.is_file():
                continue
            fmt = SUPPORTED_FORMATS.get(path.suffix.lower())
            if fmt is None:
                continue
            entries.append(
                ScanEntry(
                    file_path=str(path.resolve()),
                    filename=path.name,
                    format=fmt,
                    size_bytes=path.stat().st_size,
                )
            )

        logger.info(
            "Scanned %s: found %d supported files (recursive=%s)",
            scan_root, len(entries), recursive,
        )
        return entries

    async def scan_and_ingest(
        self,
        scan_root: Path,
        recursive: bool = True,
        tags: list[str] | None = None,
    ) -> ScanResult:
        """Scan, skip archived specimens, ingest the rest."""
        t0 = time.perf_counter()
        entries = self.scan(scan_root, recursive)

        for entry in entries:
            try:
                data = Path(entry.file_path).read_bytes()
                entry.specimen_hash = compute_hash(data)
                existing = await self._engine.find_by_specimen(entry.specimen_hash)
                if existing is not None:
                    entry.status = "duplicate"
                    entry.document_id = existing.id
                    logger.debug("Skipping %s (archived as %s)", entry.filename, existing.id)
                    continue
                doc = await self._engine.ingest(
                    data,
                    tags=tags,
                    metadata={"filename": entry.filename, "format": entry.format},
                )
                entry.status = "archived"
                entry.document_id = doc.id
            except (OSError, AdactaError) as exc:
                entry.status = "error"
                entry.error = str(exc)
                logger.error("Failed to ingest %s: %s", entry.filename, exc)

        duration = time.perf_counter() - t0
        return ScanResult(
            scan_root=str(scan_root),
            total_files_found=len(entries),
            archived=sum(e.status == "archived" for e in entries),
            duplicates=sum(e.status == "duplicate" for e in entries),
            errors=sum(e.status == "error" for e in entries),
            entries=entries,
            duration_seconds=round(duration, 2),
        )
