"""Shared fixtures and in-memory fakes for the Petalwise test suite.

Required settings are injected into the environment before any
``petalwise`` import, because ``settings`` is instantiated at import
time.
"""

import hashlib
import math
import os

os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")

import pytest  # noqa: E402

from petalwise.src.core.embedding_client import EmbeddingClient  # noqa: E402
from petalwise.src.core.errors import KnowledgeNotFoundError  # noqa: E402
from petalwise.src.core.knowledge_manager import KnowledgeManager  # noqa: E402
from petalwise.src.models.knowledge import KnowledgeEntry  # noqa: E402
from petalwise.src.models.prediction import CachedPrediction  # noqa: E402

DIM = 4


# ── Embedder ──────────────────────────────────────────────────────────

class FakeEmbedder:
    """Deterministic hash-based embedder; optionally fails or returns a fixed vector."""

    def __init__(self, dim=DIM, fixed=None, error=None):
        self.dim = dim
        self.fixed = fixed
        self.error = error
        self.calls = []

    def embed_query(self, text):
        if self.fixed is not None:
            return list(self.fixed)
        digest = hashlib.md5(text.encode("utf-8")).digest()
        return [digest[i] / 255.0 + 0.01 for i in range(self.dim)]

    def embed_documents(self, texts):
        return [self.embed_query(t) for t in texts]

    async def aembed_query(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.embed_query(text)


# ── Knowledge store ───────────────────────────────────────────────────

def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryKnowledgeStore:
    """Dict-backed ``KnowledgeStore`` with the same search semantics as the LanceDB adapter."""

    def __init__(self):
        self.rows = {}
        self.vector_calls = 0
        self.text_calls = 0
        self.text_error = None

    def insert(self, entry):
        self.rows[entry.id] = entry.model_copy(deep=True)
        return entry

    def get(self, entry_id):
        entry = self.rows.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    def update(self, entry_id, fields):
        if entry_id not in self.rows:
            raise KnowledgeNotFoundError(entry_id)
        merged = self.rows[entry_id].model_copy(update=dict(fields))
        self.rows[entry_id] = merged
        return merged.model_copy(deep=True)

    def delete(self, entry_id):
        return self.rows.pop(entry_id, None) is not None

    def list_all(self):
        return sorted((e.model_copy(deep=True) for e in self.rows.values()), key=lambda e: e.flower_type.casefold())

    def find_by_flower_type(self, substring):
        return [e for e in self.list_all() if substring.strip().casefold() in e.flower_type.casefold()]

    def count(self):
        return len(self.rows)

    def vector_search(self, query_vector, threshold, limit):
        self.vector_calls += 1
        scored = [(e, _cosine(e.embedding, query_vector)) for e in self.rows.values() if e.embedding and len(e.embedding) == len(query_vector)]
        scored = [(e.model_copy(deep=True), s) for e, s in scored if s > threshold]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    def text_search(self, flower_type, variety=None, limit=5):
        self.text_calls += 1
        if self.text_error is not None:
            raise self.text_error
        rows = list(self.rows.values())
        ft = flower_type.strip().casefold()
        strategies = [
            [e for e in rows if e.flower_type.casefold() == ft],
            [e for e in rows if ft in e.flower_type.casefold()],
        ]
        if variety:
            v = variety.strip().casefold()
            combined = f"{ft} {v}"
            strategies.append([e for e in rows if e.variety and v in e.variety.casefold()])
            strategies.append([e for e in rows if combined in e.flower_type.casefold() or (e.variety and combined in e.variety.casefold())])
        seen, out = set(), []
        for matches in strategies:
            for e in matches[:limit]:
                if e.id not in seen:
                    seen.add(e.id)
                    out.append(e.model_copy(deep=True))
        return out[:limit]


# ── Completion client ─────────────────────────────────────────────────

class FakeCompletionClient:
    """Returns a canned reply, or raises the configured exception."""

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, system_instructions, user_prompt, temperature, max_tokens):
        self.calls.append({"system": system_instructions, "prompt": user_prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return self.reply


# ── Batch store ───────────────────────────────────────────────────────

class FakeBatchStore:
    """In-memory ``BatchStore``; cached predictions are kept as ``CachedPrediction``."""

    def __init__(self, records=None, save_error=None):
        self.records = dict(records or {})
        self.cached = {}
        self.saved = []
        self.save_error = save_error

    async def get_batch(self, batch_id):
        return self.records.get(batch_id)

    async def save_prediction(self, batch_id, result):
        if self.save_error is not None:
            raise self.save_error
        self.saved.append((batch_id, result))
        self.cached[batch_id] = CachedPrediction(result=result, last_updated=result.generated_at)

    async def load_cached_prediction(self, batch_id):
        return self.cached.get(batch_id)


# ── Fixtures ──────────────────────────────────────────────────────────

def make_entry(flower_type="Rose", variety="Red Naomi", source_name="American Rose Society", source_url="https://www.rose.org/care", embedding=None, **overrides):
    fields = {
        "care_requirements": f"{flower_type} need clean water and regular stem recutting.",
        "optimal_temperature": "33-35°F (1-2°C)",
        "optimal_humidity": "85-90%",
        "water_requirements": "Clean water with floral food.",
        "ethylene_sensitivity": "High",
        "common_issues": "Bent neck, petal bruising",
        "vase_life_tips": "Recut stems at a 45-degree angle",
    }
    fields.update(overrides)
    return KnowledgeEntry(flower_type=flower_type, variety=variety, source_name=source_name, source_url=source_url, embedding=embedding, **fields)


def make_payload(flower_type="Rose", variety="Red Naomi", **overrides):
    payload = make_entry(flower_type=flower_type, variety=variety).model_dump(exclude={"id", "embedding", "created_at"})
    payload.update(overrides)
    return payload


@pytest.fixture
def store():
    return InMemoryKnowledgeStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def embedding_client(embedder):
    return EmbeddingClient(embedder, timeout_s=1.0, cache_size=16)


@pytest.fixture
def manager(store, embedding_client):
    return KnowledgeManager(store, embedding_client)
