"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from chatsync.cli import _load_config, _setup_logging, app
from chatsync.embedding.encoder import Embedder
from chatsync.factory import Runtime, build_source
from chatsync.index.search import Retriever
from chatsync.index.storage import SQLiteVectorStore
from chatsync.index.synchronizer import SmartSynchronizer

from conftest import HashingBackend

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in ("CHATSYNC_DB", "CHATSYNC_NDJSON", "CHATSYNC_MODEL", "SANITY_PROJECT_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_runtime():
    """Patch build_runtime so commands run against the hashing backend."""
    backend = HashingBackend()

    def _build(config, *, base_dir=None, source=None):
        db_path = config.resolve_db_path(base_dir)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        store = SQLiteVectorStore(db_path, dimension=backend.dimension)
        embedder = Embedder(backend, initial_wait=0, max_wait=0)
        source = source if source is not None else build_source(config)
        return Runtime(
            config,
            store,
            embedder,
            SmartSynchronizer(embedder, store, source=source),
            Retriever(embedder, store, threshold=0.0),
            source,
        )

    with patch("chatsync.cli.build_runtime", side_effect=_build) as mock_build:
        yield mock_build


@pytest.fixture
def export_file(tmp_path: Path) -> Path:
    documents = [
        {
            "_id": "project-casa-bonita",
            "_type": "project",
            "title": "Casa Bonita",
            "description": "Reservation system for a landmark restaurant.",
        },
        {
            "_id": "drafts.project-casa-bonita",
            "_type": "project",
            "title": "Casa Bonita (draft)",
        },
        {
            "_id": "project-lighthouse",
            "_type": "project",
            "title": "Lighthouse",
            "description": "Vessel traffic dashboard.",
        },
        {"_id": "site", "_type": "siteSettings", "title": "Site"},
    ]
    path = tmp_path / "export.ndjson"
    path.write_text("\n".join(json.dumps(doc) for doc in documents), encoding="utf-8")
    return path


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("chatsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("chatsync.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestLoadConfig:
    """Command line options override the environment."""

    def test_options_override_env(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("CHATSYNC_DB", "from-env.db")
        config = _load_config(tmp_path / "cli.db", "custom-model")
        assert config.db_path == tmp_path / "cli.db"
        assert config.model_name == "custom-model"

    def test_env_used_without_options(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSYNC_DB", "from-env.db")
        assert _load_config(None, None).db_path == Path("from-env.db")


class TestSyncCommand:
    """Tests for sync, status, search and delete."""

    def test_sync_without_source_fails(self, fake_runtime, tmp_path: Path) -> None:
        result = runner.invoke(app, ["sync", "--db", str(tmp_path / "test.db")])
        assert result.exit_code == 1
        assert "No content source configured" in result.stdout

    def test_sync_from_export(self, fake_runtime, export_file: Path, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"

        result = runner.invoke(app, ["sync", "--ndjson", str(export_file), "--db", str(db_path)])

        assert result.exit_code == 0, result.stdout
        assert "Added: 2" in result.stdout

        result = runner.invoke(app, ["sync", "--ndjson", str(export_file), "--db", str(db_path)])
        assert "unchanged: 2" in result.stdout

    def test_status_and_search(self, fake_runtime, export_file: Path, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        runner.invoke(app, ["sync", "--ndjson", str(export_file), "--db", str(db_path)])

        status = runner.invoke(app, ["status", "--db", str(db_path)])
        assert status.exit_code == 0
        assert "totalDocuments" in status.stdout

        search = runner.invoke(
            app, ["search", "Casa Bonita restaurant", "--db", str(db_path), "--limit", "1"]
        )
        assert search.exit_code == 0
        assert "Casa" in search.stdout

    def test_search_missing_database(self, fake_runtime, tmp_path: Path) -> None:
        result = runner.invoke(app, ["search", "anything", "--db", str(tmp_path / "none.db")])
        assert result.exit_code != 0
        fake_runtime.assert_not_called()

    def test_status_missing_database(self, fake_runtime, tmp_path: Path) -> None:
        result = runner.invoke(app, ["status", "--db", str(tmp_path / "none.db")])
        assert result.exit_code == 0
        assert "nothing synced yet" in result.stdout

    def test_delete(self, fake_runtime, export_file: Path, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        runner.invoke(app, ["sync", "--ndjson", str(export_file), "--db", str(db_path)])

        result = runner.invoke(app, ["delete", "project-lighthouse", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "deleted: 1" in result.stdout

        result = runner.invoke(app, ["delete", "project-lighthouse", "--db", str(db_path)])
        assert "nothing to delete" in result.stdout

    def test_sync_one(self, fake_runtime, export_file: Path, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"

        result = runner.invoke(
            app,
            ["sync-one", "project-lighthouse", "--ndjson", str(export_file), "--db", str(db_path)],
        )

        assert result.exit_code == 0, result.stdout
        assert "Added: 1" in result.stdout
