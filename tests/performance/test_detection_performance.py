import time

import pytest

from knowledge_engine.chunking import TextChunker
from knowledge_engine.deduplication import DuplicateDetector
from knowledge_engine.knowledge.models import DetectionMethod, KnowledgeCategory, KnowledgeEntry
from knowledge_engine.knowledge.stores import InMemoryKnowledgeStore

from tests.conftest import PROJECT_ID
from tests.fixtures.test_data_generator import DataGenerator

CATEGORIES = list(KnowledgeCategory)


def build_corpus(generator, size, planted_pairs):
    """Unrelated entries plus planted semantic and exact duplicate pairs."""
    entries = []
    for i in range(size):
        entries.append(KnowledgeEntry(
            project_id=PROJECT_ID,
            content=generator.random_text(generator.random.randint(40, 120)),
            category=CATEGORIES[i % len(CATEGORIES)],
            embedding=generator.unit_vector(64)
        ))

    semantic, exact = [], []
    for i in range(planted_pairs):
        source = entries[i]
        twin = KnowledgeEntry(project_id=PROJECT_ID, content=generator.random_text(80),
                              category=source.category,
                              embedding=generator.perturbed(source.embedding, noise=0.01))
        semantic.append((source.id, twin.id))
        entries.append(twin)

        source = entries[planted_pairs + i]
        copy = KnowledgeEntry(project_id=PROJECT_ID, content=source.content.upper(),
                              category=source.category, embedding=generator.unit_vector(64))
        exact.append((source.id, copy.id))
        entries.append(copy)
    return entries, semantic, exact


@pytest.mark.performance
def test_project_wide_detection_performance():
    """Detect planted duplicates among a thousand unrelated entries."""
    generator = DataGenerator(seed=99)
    entries, semantic, exact = build_corpus(generator, size=1000, planted_pairs=20)
    store = InMemoryKnowledgeStore()
    store.add_entries(entries)
    detector = DuplicateDetector(store)

    start_time = time.time()
    groups = detector.detect_duplicates(PROJECT_ID, [e.id for e in entries])
    duration = time.time() - start_time

    print(f"\n--- Duplicate Detection Performance ---")
    print(f"Entries: {len(entries)}")
    print(f"Groups: {len(groups)}")
    print(f"Pairs by method: {detector.stats['pairs_by_method']}")
    print(f"Duration: {duration:.2f} seconds")

    groups_by_member = {member: group for group in groups for member in group.member_ids}
    for pairs, method in ((semantic, DetectionMethod.SEMANTIC), (exact, DetectionMethod.EXACT)):
        for first, second in pairs:
            assert first in groups_by_member, f"{method.value} pair member {first} was not grouped"
            group = groups_by_member[first]
            assert second in group.member_ids
            assert group.detection_method == method

    assert len(groups) == len(semantic) + len(exact)
    assert duration < 60, f"Detection took {duration:.2f}s"


@pytest.mark.performance
def test_incremental_detection_performance():
    """Checking a small batch against a large project stays fast."""
    generator = DataGenerator(seed=7)
    entries, _, _ = build_corpus(generator, size=2000, planted_pairs=0)
    store = InMemoryKnowledgeStore()
    store.add_entries(entries)
    detector = DuplicateDetector(store)
    batch = [e.id for e in entries[-20:]]

    start_time = time.time()
    groups = detector.detect_duplicates(PROJECT_ID, batch)
    duration = time.time() - start_time

    print(f"\n--- Incremental Detection Performance ---")
    print(f"Entries: {len(entries)}, candidates: {len(batch)}")
    print(f"Duration: {duration:.2f} seconds")

    assert groups == []
    assert duration < 20, f"Incremental detection took {duration:.2f}s"


@pytest.mark.performance
def test_chunking_performance(data_generator):
    text = data_generator.generate_document(sentence_count=2000)
    chunker = TextChunker(max_chunk_tokens=500, overlap_tokens=50, min_chunk_tokens=50)

    start_time = time.time()
    chunks = chunker.chunk(text)
    duration = time.time() - start_time

    print(f"\n--- Chunking Performance ---")
    print(f"Characters: {len(text)}, chunks: {len(chunks)}")
    print(f"Duration: {duration:.2f} seconds")

    assert chunks
    assert chunks[-1].end_index == len(text)
    assert duration < 10
