import math
from datetime import timedelta
from unittest.mock import Mock

import pytest

from knowledge_engine.knowledge.exceptions import InvalidInputError
from knowledge_engine.knowledge.index import KnowledgeIndex
from knowledge_engine.knowledge.models import KnowledgeCategory, utc_now

from tests.conftest import PROJECT_ID
from tests.fixtures.fake_provider import hashed_embedding


@pytest.fixture
def index(store, embedding_client):
    return KnowledgeIndex(store, embedding_client, {"default_limit": 10, "default_threshold": 0.5})


class TestQuery:

    def test_results_ranked_by_similarity(self, store, index, make_entry):
        best, middle, worst = make_entry("best", [1.0, 0.0]), make_entry("middle", [1.0, 0.5]), \
            make_entry("worst", [0.0, 1.0])
        store.add_entries([worst, middle, best])

        results = index.query(PROJECT_ID, [1.0, 0.0])

        assert [entry.id for entry, _ in results] == [best.id, middle.id]
        assert results[0][1] == pytest.approx(1.0)

    def test_threshold_is_inclusive(self, store, index, make_entry):
        entry = make_entry("diagonal", [1.0, 1.0])
        store.add_entries([entry])

        score = index.query(PROJECT_ID, [1.0, 0.0], threshold=0.0)[0][1]

        assert [e.id for e, _ in index.query(PROJECT_ID, [1.0, 0.0], threshold=score)] == [entry.id]
        assert index.query(PROJECT_ID, [1.0, 0.0], threshold=score + 1e-6) == []

    def test_limit(self, store, index, make_entry):
        store.add_entries([make_entry(f"entry {i}", [1.0, i / 100]) for i in range(5)])

        assert len(index.query(PROJECT_ID, [1.0, 0.0], limit=2)) == 2

    def test_ties_prefer_most_recently_updated(self, store, index, make_entry):
        now = utc_now()
        older = make_entry("older", [1.0, 0.0], updated_at=now - timedelta(hours=1))
        newer = make_entry("newer", [1.0, 0.0], updated_at=now)
        store.add_entries([older, newer])

        results = index.query(PROJECT_ID, [1.0, 0.0])

        assert [entry.id for entry, _ in results] == [newer.id, older.id]

    def test_category_filter(self, store, index, make_entry):
        financial = make_entry("numbers", [1.0, 0.0], category=KnowledgeCategory.FINANCIAL)
        esg = make_entry("emissions", [1.0, 0.0], category=KnowledgeCategory.ESG)
        store.add_entries([financial, esg])

        results = index.query(PROJECT_ID, [1.0, 0.0], category="esg")

        assert [entry.id for entry, _ in results] == [esg.id]

    def test_other_projects_are_invisible(self, store, index, make_entry):
        store.add_entries([make_entry("foreign", [1.0, 0.0], project_id="elsewhere")])

        assert index.query(PROJECT_ID, [1.0, 0.0]) == []

    def test_dimension_mismatch_raises(self, store, index, make_entry):
        store.add_entries([make_entry("2d", [1.0, 0.0])])

        with pytest.raises(InvalidInputError):
            index.query(PROJECT_ID, [1.0, 0.0, 0.0])

    def test_non_finite_entries_are_ignored(self, store, index, make_entry):
        good = make_entry("good", [1.0, 0.0])
        bad = make_entry("bad", [math.nan, 1.0])
        store.add_entries([good, bad])

        assert [e.id for e, _ in index.query(PROJECT_ID, [1.0, 0.0])] == [good.id]
        assert [e.id for e, _ in index.query(PROJECT_ID, [1.0, 0.0], threshold=0.0)] == [good.id]

    def test_ties_beyond_first_fetch_prefer_most_recently_updated(self, make_entry):
        # A vector store returning ties in arbitrary order, oldest first here
        ties = [make_entry(f"tie {i}", [1.0, 0.0], age_seconds=100 - i) for i in range(30)]
        store = Mock()
        store.nearest.side_effect = lambda project_id, embedding, k, category: [(e, 1.0) for e in ties[:k]]
        index = KnowledgeIndex(store)

        results = index.query(PROJECT_ID, [1.0, 0.0], limit=1)

        assert [entry.id for entry, _ in results] == [ties[-1].id]
        assert [c.args[2] for c in store.nearest.call_args_list] == [11, 22, 44]

    def test_fetch_stops_once_scores_drop_below_the_cut(self, make_entry):
        ranked = [(make_entry(f"e{i}", [1.0, 0.0]), 1.0 - i / 100) for i in range(50)]
        store = Mock()
        store.nearest.side_effect = lambda project_id, embedding, k, category: ranked[:k]
        index = KnowledgeIndex(store)

        results = index.query(PROJECT_ID, [1.0, 0.0], limit=3, threshold=0.0)

        assert [entry.id for entry, _ in results] == [e.id for e, _ in ranked[:3]]
        store.nearest.assert_called_once_with(PROJECT_ID, [1.0, 0.0], 13, None)

    @pytest.mark.parametrize("kwargs", [
        {"project_id": "", "query_embedding": [1.0]},
        {"project_id": PROJECT_ID, "query_embedding": []},
        {"project_id": PROJECT_ID, "query_embedding": [math.nan, 1.0]},
        {"project_id": PROJECT_ID, "query_embedding": [1.0], "limit": 0},
        {"project_id": PROJECT_ID, "query_embedding": [1.0], "category": "unknown"},
    ])
    def test_invalid_arguments(self, index, kwargs):
        with pytest.raises(InvalidInputError):
            index.query(**kwargs)

    def test_empty_project(self, index):
        assert index.query(PROJECT_ID, [1.0, 0.0]) == []


class TestSearchText:

    @pytest.mark.asyncio
    async def test_search_embeds_query_and_records_usage(self, store, index, fake_provider, make_entry):
        text = "Our headquarters moved to Kyoto."
        entry = make_entry(text, hashed_embedding(text))
        store.add_entries([entry, make_entry("Unrelated ESG remark.", hashed_embedding("Unrelated ESG remark."))])

        results = await index.search_text(PROJECT_ID, text, threshold=0.99, record_usage=True)

        assert [e.id for e, _ in results] == [entry.id]
        assert fake_provider.calls[-1]["input_type"] == "query"
        stored = store.get_entry(entry.id)
        assert stored.usage_count == 1
        assert stored.last_used is not None

    @pytest.mark.asyncio
    async def test_search_without_usage_recording(self, store, index, make_entry):
        text = "Dividend policy unchanged."
        entry = make_entry(text, hashed_embedding(text))
        store.add_entries([entry])

        await index.search_text(PROJECT_ID, text)

        assert store.get_entry(entry.id).usage_count == 0

    @pytest.mark.asyncio
    async def test_blank_query_is_rejected(self, index):
        with pytest.raises(InvalidInputError):
            await index.search_text(PROJECT_ID, "   ")

    def test_record_usage_skips_unknown_ids(self, store, index, make_entry):
        entry = make_entry("used", [1.0])
        store.add_entries([entry])

        assert index.record_usage([entry.id, "missing"]) == 1
        assert store.get_entry(entry.id).usage_count == 1
