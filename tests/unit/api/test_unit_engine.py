# tests/unit/api/test_unit_engine.py — v1
"""Tests for api/engine.py — the archive facade end to end on fakes."""

from __future__ import annotations

import asyncio

import pytest

from adacta.config.settings import Settings
from adacta.core.errors import DocumentDeleted, DocumentNotFound
from adacta.index.memory_index import MemorySearchIndex


def _other_settings(tmp_path, name: str) -> Settings:
    return Settings(
        _env_file=None,
        archive_root=tmp_path / name / "archive",
        work_root=tmp_path / name / "work",
        registry_root=tmp_path / name / "registry",
        executor_pool_size=2,
        sync_retry_delay_s=0.01,
    )


class TestIngest:
    @pytest.mark.asyncio
    async def test_ingest_processes_and_indexes(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"electricity bill", tags=["utilities"])
            await engine.wait_idle()

            stored = await engine.get_document(doc.id)
            assert stored.status == "processed"
            assert await engine.read_artifact(doc.id, "specimen") == b"electricity bill"
            assert await engine.read_artifact(doc.id, "text") == b"text of electricity bill"
            assert await engine.read_log(doc.id, "extract_text") == "ok"
            hits = await engine.search("electricity")
            assert [h.document_id for h in hits] == [doc.id]
            assert (await engine.get_document(doc.id)).needs_index_sync is False

    @pytest.mark.asyncio
    async def test_ingest_deduplicates_specimens(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            first = await engine.ingest(b"same scan")
            second = await engine.ingest(b"same scan")
            third = await engine.ingest(b"same scan", dedup=False)
            await engine.wait_idle()

            assert second.id == first.id
            assert third.id != first.id
            assert third.specimen_hash == first.specimen_hash
            assert len(await engine.list_documents()) == 2

    @pytest.mark.asyncio
    async def test_ingest_file(self, make_engine, scripted_runtime, tmp_path):
        source = tmp_path / "letter.pdf"
        source.write_bytes(b"dear customer")
        async with make_engine() as engine:
            doc = await engine.ingest_file(source, metadata={"filename": "letter.pdf"})
            await engine.wait_idle()
            assert await engine.read_artifact(doc.id, "specimen") == b"dear customer"
            assert (await engine.get_document(doc.id)).metadata == {"filename": "letter.pdf"}

    @pytest.mark.asyncio
    async def test_unknown_artifact_and_log(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"x")
            await engine.wait_idle()
            with pytest.raises(KeyError, match="no artifact 'summary'"):
                await engine.read_artifact(doc.id, "summary")
            with pytest.raises(KeyError, match="no log for step 'summarize'"):
                await engine.read_log(doc.id, "summarize")
            with pytest.raises(DocumentNotFound):
                await engine.read_artifact("unknown", "text")


class TestReingestDelete:
    @pytest.mark.asyncio
    async def test_reingest_reprocesses(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"scan")
            await engine.wait_idle()
            scripted_runtime.on(
                "test/juicer-text", scripted_runtime.produce(text=b"better ocr")
            )
            await engine.reingest(doc.id)
            await engine.wait_idle()
            assert await engine.read_artifact(doc.id, "text") == b"better ocr"
            assert [h.document_id for h in await engine.search("better")] == [doc.id]

    @pytest.mark.asyncio
    async def test_delete_hides_document_but_keeps_blobs(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"old contract")
            await engine.wait_idle()
            stored = await engine.get_document(doc.id)

            tombstone = await engine.delete(doc.id)
            await engine.wait_idle()

            assert tombstone.status == "deleted"
            assert await engine.search("contract") == []
            assert await engine.list_documents() == []
            assert len(await engine.list_documents(include_deleted=True)) == 1
            with pytest.raises(DocumentDeleted):
                await engine.read_artifact(doc.id, "text")
            with pytest.raises(DocumentDeleted):
                await engine.reingest(doc.id)
            for blob_hash in stored.referenced_hashes():
                assert await engine.blob_store.exists(blob_hash)

            report = await engine.collect_garbage()
            assert sorted(report.removed) == sorted(stored.referenced_hashes())

    @pytest.mark.asyncio
    async def test_delete_cancels_running_pipeline(self, make_engine, scripted_runtime):
        scripted_runtime.on("test/juicer-text", scripted_runtime.hang())
        async with make_engine() as engine:
            doc = await engine.ingest(b"big scan")
            await engine.delete(doc.id)
            await engine.wait_idle()
            assert scripted_runtime.running == 0
            assert (await engine.get_document(doc.id)).status == "deleted"


class TestConcurrentOperations:
    @pytest.mark.asyncio
    async def test_gc_during_ingest_keeps_new_specimen(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            first = await engine.ingest(b"reissued scan")
            await engine.wait_idle()
            await engine.delete(first.id)

            _, second = await asyncio.gather(
                engine.collect_garbage(), engine.ingest(b"reissued scan")
            )
            await engine.wait_idle()

            stored = await engine.get_document(second.id)
            assert second.id != first.id
            assert stored.status == "processed"
            assert await engine.blob_store.exists(stored.specimen_hash)
            assert await engine.read_artifact(second.id, "specimen") == b"reissued scan"

    @pytest.mark.asyncio
    async def test_concurrent_reingests_then_delete_stop_every_run(
        self, make_engine, scripted_runtime
    ):
        entered = asyncio.Event()

        async def slow(inputs):
            entered.set()
            await asyncio.Event().wait()
            return 0, {}, ""

        scripted_runtime.on("test/juicer-text", slow)
        async with make_engine() as engine:
            doc = await engine.ingest(b"slow scan")
            await asyncio.wait_for(entered.wait(), 2)

            await asyncio.gather(engine.reingest(doc.id), engine.reingest(doc.id))
            assert engine.orchestrator.active_documents == [doc.id]
            await engine.delete(doc.id)
            await engine.wait_idle()

            assert scripted_runtime.running == 0
            assert engine.orchestrator.active_documents == []
            assert (await engine.get_document(doc.id)).status == "deleted"

    @pytest.mark.asyncio
    async def test_delete_during_index_sync_leaves_no_hit(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"cancelled lease")
            await engine.wait_idle()
            snapshot = await engine.get_document(doc.id)

            await asyncio.gather(engine.synchronizer.sync(snapshot), engine.delete(doc.id))
            await engine.wait_idle()

            assert (await engine.get_document(doc.id)).status == "deleted"
            assert await engine.search("lease") == []


class TestInbox:
    @pytest.mark.asyncio
    async def test_inbox_lists_finished_documents_oldest_first(
        self, make_engine, scripted_runtime
    ):
        async with make_engine() as engine:
            older = await engine.ingest(b"first letter")
            newer = await engine.ingest(b"second letter")
            await engine.wait_idle()

            assert [d.id for d in await engine.inbox()] == [older.id, newer.id]

            archived = await engine.archive(older.id)
            assert archived.is_archived
            assert [d.id for d in await engine.inbox()] == [newer.id]

            again = await engine.archive(older.id)
            assert again.archived_at == archived.archived_at
            await engine.wait_idle()
            stored = await engine.get_document(older.id)
            assert stored.needs_index_sync is False
            assert stored.archived_at == archived.archived_at

    @pytest.mark.asyncio
    async def test_inbox_skips_unfinished_and_deleted(self, make_engine, scripted_runtime):
        scripted_runtime.on("test/juicer-text", scripted_runtime.hang())
        async with make_engine() as engine:
            busy = await engine.ingest(b"still processing")
            assert await engine.inbox() == []
            await engine.delete(busy.id)
            assert await engine.inbox() == []

            with pytest.raises(DocumentDeleted):
                await engine.archive(busy.id)
            with pytest.raises(DocumentNotFound):
                await engine.archive("unknown")

    @pytest.mark.asyncio
    async def test_reingest_keeps_archived_at(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"receipt")
            await engine.wait_idle()
            archived = await engine.archive(doc.id)

            await engine.reingest(doc.id)
            await engine.wait_idle()

            stored = await engine.get_document(doc.id)
            assert stored.status == "processed"
            assert stored.archived_at == archived.archived_at
            assert await engine.inbox() == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_stats(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            await engine.ingest(b"a")
            await engine.ingest(b"b")
            await engine.wait_idle()
            stats = await engine.stats()
            assert stats.documents_by_status == {"processed": 2}
            assert stats.executor.completed == 4
            assert stats.active_documents == []

    @pytest.mark.asyncio
    async def test_export_and_import_into_fresh_archive(
        self, make_engine, scripted_runtime, tmp_path
    ):
        async with make_engine() as engine:
            doc = await engine.ingest(b"passport scan", tags=["id"])
            await engine.wait_idle()
            bundle = await engine.export([doc.id], tmp_path / "backup.tar.gz", include_logs=True)

        fresh = make_engine(
            settings=_other_settings(tmp_path, "restore"), search_index=MemorySearchIndex()
        )
        async with fresh:
            report = await fresh.import_bundle(bundle)
            await fresh.wait_idle()

            assert report.documents == [doc.id]
            assert report.blobs_imported == 4
            assert await fresh.read_artifact(doc.id, "text") == b"text of passport scan"
            assert await fresh.read_log(doc.id, "thumbnail") == "ok"
            assert [h.document_id for h in await fresh.search("passport")] == [doc.id]

            again = await fresh.import_bundle(bundle)
            assert again.documents == []
            assert again.blobs_present == 4

    @pytest.mark.asyncio
    async def test_restart_rebuilds_index(self, make_engine, scripted_runtime):
        async with make_engine() as engine:
            doc = await engine.ingest(b"tax return 2023")
            await engine.wait_idle()

        rebuilt = MemorySearchIndex()
        async with make_engine(search_index=rebuilt) as engine:
            assert [h.document_id for h in await engine.search("tax")] == [doc.id]

    @pytest.mark.asyncio
    async def test_start_resumes_interrupted_documents(
        self, make_engine, scripted_runtime, registry, blob_store
    ):
        engine = make_engine(registry=registry, blob_store=blob_store)
        specimen = await blob_store.put(b"left behind")
        doc = await registry.create(specimen)

        async with engine:
            await engine.wait_idle()
            assert (await engine.get_document(doc.id)).status == "processed"
