import asyncio
import uuid

import pytest

from knowledge_engine.knowledge.models import DetectionMethod, KnowledgeCategory, KnowledgeEntry

from tests.conftest import PROJECT_ID, build_engine

pytestmark = pytest.mark.integration

NEAR_DUPLICATE_SOURCE = "Sakura Foods plans to open three new plants in Vietnam by 2026."


def axis(index, dimension=64):
    vector = [0.0] * dimension
    vector[index] = 1.0
    return vector


class TestDocumentFlow:

    @pytest.mark.asyncio
    async def test_ingest_search_and_reingest(self, engine, store, data_generator):
        text = data_generator.generate_document(sentence_count=12, category='strategy')

        first = await engine.ingest_document(PROJECT_ID, "plan-2024", text, category="strategy",
                                             document_name="Medium-term plan")

        assert first.chunks_total > 1
        assert first.chunks_stored == first.chunks_total
        entries = store.get_entries(first.entry_ids)
        for entry in entries.values():
            assert entry.category == KnowledgeCategory.STRATEGY
            assert entry.content == text[entry.metadata["start_index"]:entry.metadata["end_index"]]

        target = entries[first.entry_ids[0]]
        results = await engine.search(PROJECT_ID, target.content, threshold=0.99)
        assert target.id in [entry.id for entry, _ in results]
        assert results[0][1] == pytest.approx(1.0)

        second = await engine.ingest_document(PROJECT_ID, "plan-2024-copy", text, category="strategy")

        assert second.duplicate_groups
        for entry_id in second.entry_ids:
            assert store.get_entry(entry_id).duplicate_group_id is not None

    @pytest.mark.asyncio
    async def test_japanese_document(self, engine, store, data_generator):
        text = data_generator.generate_japanese_document(sentence_count=12)

        result = await engine.ingest_document(PROJECT_ID, "jp-1", text)

        assert result.chunks_total > 1
        assert result.chunks_stored == result.chunks_total
        for entry in store.get_entries(result.entry_ids).values():
            assert entry.content in text
            assert entry.content.endswith(("。", "！", "？"))

    @pytest.mark.asyncio
    async def test_cancelled_ingestion(self, engine, fake_provider):
        cancel = asyncio.Event()
        cancel.set()

        result = await engine.ingest_document(PROJECT_ID, "doc-1", "A sentence. Another one.",
                                              cancel_event=cancel)

        assert result.cancelled
        assert result.entry_ids == []
        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_search_is_scoped_to_project_and_category(self, engine):
        text = "Scope one emissions fell twelve percent."
        await engine.ingest_document(PROJECT_ID, "esg-1", text, category="esg")
        await engine.ingest_document("other-project", "esg-2", text, category="esg")

        esg = await engine.search(PROJECT_ID, text, category="esg", threshold=0.99)
        financial = await engine.search(PROJECT_ID, text, category="financial", threshold=0.0)

        assert len(esg) == 1
        assert esg[0][0].project_id == PROJECT_ID
        assert financial == []


class TestDuplicateFlow:

    @pytest.mark.asyncio
    async def test_fuzzy_near_duplicates(self, engine, store, data_generator):
        copy = data_generator.near_duplicate(NEAR_DUPLICATE_SOURCE, edits=8)
        original = KnowledgeEntry(project_id=PROJECT_ID, content=NEAR_DUPLICATE_SOURCE, embedding=axis(0))
        variant = KnowledgeEntry(project_id=PROJECT_ID, content=copy, embedding=axis(1))
        await engine.add_entries([original, variant])

        groups = await engine.detect_duplicates(PROJECT_ID)

        assert len(groups) == 1
        assert groups[0].detection_method == DetectionMethod.FUZZY
        assert groups[0].member_ids == {original.id, variant.id}

    @pytest.mark.asyncio
    async def test_add_entries_embeds_missing_vectors(self, engine, store, fake_provider):
        entry = KnowledgeEntry(project_id=PROJECT_ID, content="Dividend raised to 40 yen.")

        await engine.add_entries([entry])

        assert store.get_entry(entry.id).has_embedding
        assert fake_provider.calls[0]["input_type"] == "document"

    @pytest.mark.asyncio
    async def test_merge_then_detect_again(self, engine, store):
        text = "Kobe Logistics operates forty warehouses."
        for document_id in ("doc-1", "doc-2", "doc-3"):
            await engine.ingest_document(PROJECT_ID, document_id, text)
        group = store.list_groups(PROJECT_ID)[0]

        merged = engine.merge_duplicate_group(group.id)

        assert merged.id == group.representative_knowledge_id
        assert sorted(merged.metadata["merged_from"]) == sorted(group.duplicate_knowledge_ids)
        assert [e.id for e in store.list_entries(PROJECT_ID)] == [merged.id]
        assert await engine.detect_duplicates(PROJECT_ID) == []
        stats = engine.get_stats()
        assert stats["merges"]["total_merges"] == 1
        assert stats["deduplication"]["total_runs"] >= 2

    @pytest.mark.asyncio
    async def test_chroma_backed_engine(self):
        chromadb = pytest.importorskip("chromadb")
        from knowledge_engine.knowledge.stores.chroma import ChromaKnowledgeStore

        suffix = uuid.uuid4().hex[:8]
        store = ChromaKnowledgeStore(client=chromadb.EphemeralClient(),
                                     knowledge_collection=f"entries_{suffix}",
                                     group_collection=f"groups_{suffix}")
        engine = build_engine(store=store)
        text = "Nagoya Precision supplies bearings to rail operators."

        await engine.ingest_document(PROJECT_ID, "doc-1", text)
        second = await engine.ingest_document(PROJECT_ID, "doc-2", text)
        results = await engine.search(PROJECT_ID, text, threshold=0.99)

        assert len(second.duplicate_groups) == 1
        assert len(results) == 2
        assert len(store.list_groups(PROJECT_ID)) == 1
        await engine.aclose()
