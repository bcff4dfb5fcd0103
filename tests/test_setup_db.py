"""End-to-end tests for the setup_db CLI against a temporary LanceDB."""

import pytest
from conftest import FakeEmbedder

from petalwise.config.settings import settings
from petalwise.scripts import setup_db
from petalwise.src.database.knowledge_store import LanceKnowledgeStore


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LANCEDB_PATH", tmp_path / "lancedb")
    monkeypatch.setattr(settings, "DATA_PROCESSED_DIR", tmp_path / "processed")
    monkeypatch.setattr(settings, "EMBEDDING_DIMENSIONS", 4)
    monkeypatch.setattr(settings, "BULK_INSERT_DELAY_S", 0.0)
    monkeypatch.setattr("petalwise.src.core.embedding_client.build_default_embedder", lambda: FakeEmbedder(dim=4))
    return tmp_path


def _row_count():
    return LanceKnowledgeStore().count()


def test_seed_then_skip_unchanged_files(cli_env, capsys):
    setup_db.main([])
    first = capsys.readouterr().out

    assert "Entries written      : 10" in first
    assert _row_count() == 10

    setup_db.main([])
    second = capsys.readouterr().out

    assert "Files skipped (cache): 2" in second
    assert _row_count() == 10


def test_stats_flag_prints_counts(cli_env, capsys):
    setup_db.main([])
    capsys.readouterr()

    setup_db.main(["--stats"])

    out = capsys.readouterr().out
    assert "Total entries : 10" in out
    assert "Rose" in out


def test_drop_reseeds_from_scratch(cli_env, capsys):
    setup_db.main([])
    capsys.readouterr()
    setup_db.main(["--drop"])

    assert _row_count() == 10
    assert "Entries written      : 10" in capsys.readouterr().out


def test_drop_only_leaves_empty_table(cli_env):
    setup_db.main([])
    setup_db.main(["--drop-only"])

    assert _row_count() == 0
