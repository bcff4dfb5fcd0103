"""Tests for ContextRetriever: vector-first retrieval, text fallback and degradation."""

import pytest
from conftest import FakeEmbedder, make_entry

from petalwise.src.core.embedding_client import EmbeddingClient
from petalwise.src.core.retriever import ContextRetriever, retrieval_query_text
from petalwise.src.models.knowledge import Source
from petalwise.src.models.prediction import BatchQuery

HIT = [1.0, 0.0, 0.0, 0.0]
MISS = [0.0, 0.0, 0.0, 1.0]

ROSE = BatchQuery(flower_type="Rose", variety="Red Naomi")


def _vector_retriever(store, embedder=None, **kwargs):
    client = EmbeddingClient(embedder or FakeEmbedder(fixed=HIT), timeout_s=1.0)
    return ContextRetriever(store, client, threshold=0.5, limit=5, **kwargs)


def test_query_text_mentions_flower_and_variety():
    assert retrieval_query_text(ROSE) == "Rose Red Naomi care requirements optimal conditions vase life tips"
    assert retrieval_query_text(BatchQuery(flower_type="Tulip")) == "Tulip care requirements optimal conditions vase life tips"


@pytest.mark.asyncio
async def test_vector_hit_returns_attributed_context(store):
    store.insert(make_entry(embedding=HIT))

    result = await _vector_retriever(store).retrieve(ROSE)

    assert result.strategy == "vector"
    assert len(result.contexts) == 1
    assert result.contexts[0].relevance_score == pytest.approx(1.0)
    assert result.sources == [Source(name="American Rose Society", url="https://www.rose.org/care")]
    assert "SPECIFIC CARE INFORMATION FOR ROSE (Red Naomi):" in result.prompt_block
    assert store.text_calls == 0


@pytest.mark.asyncio
async def test_vector_miss_falls_back_to_text_search(store):
    store.insert(make_entry(embedding=MISS))

    result = await _vector_retriever(store).retrieve(ROSE)

    assert result.strategy == "text"
    assert store.vector_calls == 1
    assert [c.relevance_score for c in result.contexts] == [pytest.approx(0.8)]


@pytest.mark.asyncio
async def test_filtered_out_vector_hits_fall_back_to_text_search(store):
    store.insert(make_entry(flower_type="Tulip", variety="Standard", embedding=HIT))
    store.insert(make_entry())

    result = await _vector_retriever(store).retrieve(ROSE)

    assert result.strategy == "text"
    assert store.vector_calls == 1
    assert store.text_calls == 1
    assert [(c.flower_type, c.variety) for c in result.contexts] == [("Rose", "Red Naomi")]
    assert result.contexts[0].relevance_score == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_embedding_failure_falls_back_to_text_search(store):
    store.insert(make_entry(embedding=HIT))

    result = await _vector_retriever(store, FakeEmbedder(error=RuntimeError("quota"))).retrieve(ROSE)

    assert result.strategy == "text"
    assert store.vector_calls == 0
    assert len(result.contexts) == 1


@pytest.mark.asyncio
async def test_retrieval_without_embeddings_is_repeatable(store):
    store.insert(make_entry())
    store.insert(make_entry(flower_type="Spray Rose", variety="Mini"))
    retriever = ContextRetriever(store, None, limit=5)

    first = await retriever.retrieve(ROSE)
    second = await retriever.retrieve(ROSE)

    assert first.strategy == "text"
    assert first.model_dump() == second.model_dump()
    assert [c.flower_type for c in first.contexts] == ["Rose", "Spray Rose"]


@pytest.mark.asyncio
async def test_sources_are_deduplicated_across_contexts(store):
    store.insert(make_entry(flower_type="Rose", embedding=HIT))
    store.insert(make_entry(flower_type="Garden Rose", variety="David Austin", embedding=HIT))

    result = await _vector_retriever(store).retrieve(ROSE)

    assert len(result.contexts) == 2
    assert result.sources == [Source(name="American Rose Society", url="https://www.rose.org/care")]


@pytest.mark.asyncio
async def test_unattributed_and_unrelated_entries_are_dropped(store):
    attributed = make_entry(embedding=HIT)
    store.insert(attributed)
    store.insert(make_entry(flower_type="Rose", variety="Avalanche", source_name="  ", embedding=HIT))
    store.insert(make_entry(flower_type="Tulip", variety="Standard", embedding=HIT))

    result = await _vector_retriever(store).retrieve(ROSE)

    assert [c.variety for c in result.contexts] == ["Red Naomi"]
    assert all(c.sources for c in result.contexts)


@pytest.mark.asyncio
async def test_variety_match_relates_generic_flower_type(store):
    store.insert(make_entry(embedding=HIT))

    result = await _vector_retriever(store).retrieve(BatchQuery(flower_type="Cut Flower", variety="red naomi"))

    assert len(result.contexts) == 1


@pytest.mark.asyncio
async def test_store_failure_degrades_to_empty_result(store):
    store.text_error = RuntimeError("table missing")

    result = await ContextRetriever(store, None).retrieve(ROSE)

    assert result.strategy == "none"
    assert result.contexts == []
    assert result.sources == []
    assert result.prompt_block == ""


@pytest.mark.asyncio
async def test_empty_store_gives_no_context(store):
    result = await _vector_retriever(store).retrieve(ROSE)

    assert result.contexts == []
    assert result.best_context() is None
