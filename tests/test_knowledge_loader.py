"""Tests for KnowledgeLoader seeding and its file-hash cache."""

import json

import pytest
from conftest import make_entry, make_payload

from petalwise.config.settings import settings
from petalwise.src.core.knowledge_loader import KnowledgeLoader


def _write_seed(directory, name, payloads):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps(payloads), encoding="utf-8")
    return path


@pytest.fixture
def seed_dir(tmp_path):
    directory = tmp_path / "seed"
    _write_seed(directory, "roses.json", [make_payload(flower_type="Rose"), make_payload(flower_type="Spray Rose", variety="Mini")])
    _write_seed(directory, "tulips.json", [make_payload(flower_type="Tulip", variety="Standard")])
    return directory


def _loader(manager, seed_dir, tmp_path):
    return KnowledgeLoader(manager, source_dir=seed_dir, hash_cache_path=tmp_path / "processed" / "hashes.json", delay=0)


@pytest.mark.asyncio
async def test_first_run_loads_every_file(manager, store, seed_dir, tmp_path):
    summary = await _loader(manager, seed_dir, tmp_path).run()

    assert summary["total_files"] == 2
    assert summary["files_processed"] == 2
    assert summary["entries_added"] == 3
    assert summary["entries_failed"] == 0
    assert store.count() == 3
    assert (tmp_path / "processed" / "hashes.json").exists()


@pytest.mark.asyncio
async def test_unchanged_files_are_skipped_on_second_run(manager, store, seed_dir, tmp_path):
    await _loader(manager, seed_dir, tmp_path).run()

    summary = await _loader(manager, seed_dir, tmp_path).run()

    assert summary["files_skipped"] == 2
    assert summary["entries_added"] == 0
    assert store.count() == 3


@pytest.mark.asyncio
async def test_changed_file_is_reloaded(manager, store, seed_dir, tmp_path):
    await _loader(manager, seed_dir, tmp_path).run()
    _write_seed(seed_dir, "tulips.json", [make_payload(flower_type="Tulip", variety="Parrot")])

    summary = await _loader(manager, seed_dir, tmp_path).run()

    assert summary["files_processed"] == 1
    assert summary["files_skipped"] == 1
    assert store.count() == 4


@pytest.mark.asyncio
async def test_force_ignores_hash_cache(manager, store, seed_dir, tmp_path):
    await _loader(manager, seed_dir, tmp_path).run()

    summary = await _loader(manager, seed_dir, tmp_path).run(force=True)

    assert summary["files_processed"] == 2
    assert store.count() == 6


@pytest.mark.asyncio
async def test_only_if_empty_leaves_populated_store_alone(manager, store, seed_dir, tmp_path):
    store.insert(make_entry(flower_type="Orchid", variety=None))

    summary = await _loader(manager, seed_dir, tmp_path).run(only_if_empty=True)

    assert summary["entries_added"] == 0
    assert store.count() == 1


@pytest.mark.asyncio
async def test_invalid_file_is_skipped_and_entry_failures_counted(manager, store, tmp_path):
    seed = tmp_path / "seed"
    _write_seed(seed, "a_broken.json", {"flower_type": "Rose"})
    _write_seed(seed, "b_partial.json", [make_payload(flower_type="Lily"), make_payload(flower_type="", variety=None)])

    summary = await _loader(manager, seed, tmp_path).run()

    assert summary["total_files"] == 2
    assert summary["files_processed"] == 1
    assert summary["entries_added"] == 1
    assert summary["entries_failed"] == 1
    assert [e.flower_type for e in store.list_all()] == ["Lily"]


@pytest.mark.asyncio
async def test_missing_directory_is_a_no_op(manager, tmp_path):
    summary = await _loader(manager, tmp_path / "nowhere", tmp_path).run()
    assert summary["total_files"] == 0


@pytest.mark.asyncio
async def test_bundled_seed_files_load_cleanly(manager, store, tmp_path):
    loader = KnowledgeLoader(manager, source_dir=settings.KNOWLEDGE_SEED_DIR, hash_cache_path=tmp_path / "hashes.json", delay=0)

    summary = await loader.run()

    assert summary["entries_failed"] == 0
    assert store.count() == 10
    assert all(e.has_attribution for e in store.list_all())


@pytest.mark.asyncio
async def test_clear_hash_cache_allows_reload(manager, store, seed_dir, tmp_path):
    loader = _loader(manager, seed_dir, tmp_path)
    await loader.run()
    loader.clear_hash_cache()

    summary = await loader.run()

    assert summary["files_processed"] == 2
