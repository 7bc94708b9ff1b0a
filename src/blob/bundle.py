# src/blob/bundle.py — v1
"""Sealed export bundles for cold storage and backup.

A bundle is a gzip-compressed tar archive:

    MANIFEST.json            BundleManifest (entries + document ids)
    blobs/<hash>             blob content, mtime = original publication time
    documents/<id>.json      optional Document manifests

The bundle is written to a temporary file next to the destination and
renamed into place once complete.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import tarfile
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from adacta.blob.layout import compute_hash, is_valid_hash
from adacta.blob.models import BundleEntry, BundleManifest, ImportReport
from adacta.core.errors import PermanentError
from adacta.core.models import Document, utcnow
from adacta.documents.manifest import dump_manifest, load_manifest

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore

logger = logging.getLogger(__name__)

MANIFEST_NAME = "MANIFEST.json"
BLOBS_PREFIX = "blobs/"
DOCUMENTS_PREFIX = "documents/"


async def export_bundle(
    store: BaseBlobStore,
    hashes: Iterable[str],
    destination: Path,
    names: dict[str, str] | None = None,
    documents: Iterable[Document] = (),
) -> Path:
    """Pack blobs (and optionally document manifests) into a bundle.

    Raises:
        BlobNotFound: If a selected hash is not stored.
    """
    names = names or {}
    destination = Path(destination).expanduser()
    destination.parent.mkdir(parents=True, exist_ok=True)

    docs = list(documents)
    manifest = BundleManifest(created_at=utcnow(), documents=[d.id for d in docs])
    payloads: list[tuple[BundleEntry, bytes]] = []
    for blob_hash in sorted(set(hashes)):
        info = await store.stat(blob_hash)
        data = await store.get(blob_hash)
        entry = BundleEntry(
            hash=blob_hash,
            name=names.get(blob_hash, blob_hash),
            size=info.size,
            stored_at=info.stored_at,
        )
        manifest.entries.append(entry)
        payloads.append((entry, data))

    await asyncio.to_thread(_write_bundle, destination, manifest, payloads, docs)
    logger.info(
        "Exported %d blobs and %d documents to %s",
        len(payloads), len(docs), destination,
    )
    return destination


def _write_bundle(
    destination: Path,
    manifest: BundleManifest,
    payloads: list[tuple[BundleEntry, bytes]],
    documents: list[Document],
) -> None:
    fd, tmp = tempfile.mkstemp(dir=destination.parent, suffix=".bundle.tmp")
    os.close(fd)
    try:
        with tarfile.open(tmp, "w:gz") as tar:
            created = manifest.created_at.timestamp()
            _add_member(tar, MANIFEST_NAME, manifest.model_dump_json(indent=2).encode(), created)
            for entry, data in payloads:
                _add_member(
                    tar, f"{BLOBS_PREFIX}{entry.hash}", data, entry.stored_at.timestamp()
                )
            for doc in documents:
                _add_member(
                    tar,
                    f"{DOCUMENTS_PREFIX}{doc.id}.json",
                    dump_manifest(doc, indent=None).encode(),
                    doc.updated_at.timestamp(),
                )
        os.replace(tmp, destination)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


def _add_member(tar: tarfile.TarFile, name: str, data: bytes, mtime: float) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mtime = int(mtime)
    info.mode = 0o444
    tar.addfile(info, io.BytesIO(data))


def read_manifest(bundle: Path) -> BundleManifest:
    """Read only the manifest of a bundle."""
    with tarfile.open(bundle, "r:gz") as tar:
        return BundleManifest.model_validate_json(_read_member(tar, MANIFEST_NAME))


async def import_bundle(
    store: BaseBlobStore, bundle: Path
) -> tuple[ImportReport, list[Document]]:
    """Restore blobs from a bundle and return its document manifests.

    Every blob is re-hashed before it is stored.

    Raises:
        PermanentError: If the bundle is malformed or an entry's content
            does not match its recorded hash.
    """
    manifest, blobs, documents = await asyncio.to_thread(_read_bundle, Path(bundle))
    report = ImportReport(documents=[d.id for d in documents])

    for entry in manifest.entries:
        data = blobs[entry.hash]
        if await store.exists(entry.hash):
            report.blobs_present += 1
            continue
        stored = await store.put(data)
        if stored != entry.hash:
            raise PermanentError(f"Bundle entry {entry.name}: stored under {stored}")
        report.blobs_imported += 1

    logger.info(
        "Imported bundle %s: %d new blobs, %d already present, %d documents",
        bundle, report.blobs_imported, report.blobs_present, len(documents),
    )
    return report, documents


def _read_bundle(
    bundle: Path,
) -> tuple[BundleManifest, dict[str, bytes], list[Document]]:
    try:
        with tarfile.open(bundle, "r:gz") as tar:
            manifest = BundleManifest.model_validate_json(_read_member(tar, MANIFEST_NAME))
            blobs: dict[str, bytes] = {}
            for entry in manifest.entries:
                if not is_valid_hash(entry.hash):
                    raise PermanentError(f"Bundle entry {entry.name}: invalid hash")
                data = _read_member(tar, f"{BLOBS_PREFIX}{entry.hash}")
                if len(data) != entry.size or compute_hash(data) != entry.hash:
                    raise PermanentError(
                        f"Bundle entry {entry.name}: content does not match {entry.hash}"
                    )
                blobs[entry.hash] = data
            documents = [
                load_manifest(
                    _read_member(tar, f"{DOCUMENTS_PREFIX}{doc_id}.json")
                )
                for doc_id in manifest.documents
            ]
    except (tarfile.TarError, KeyError, ValueError) as exc:
        raise PermanentError(f"Malformed bundle {bundle}: {exc}") from exc
    return manifest, blobs, documents


def _read_member(tar: tarfile.TarFile, name: str) -> bytes:
    member = tar.getmember(name)
    if not member.isfile():
        raise PermanentError(f"Bundle member {name} is not a regular file")
    fh = tar.extractfile(member)
    if fh is None:
        raise PermanentError(f"Bundle member {name} is unreadable")
    with fh:
        return fh.read()
