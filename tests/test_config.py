"""Tests for configuration module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from chatsync.config import SUPPORTED_TYPES, AppConfig
from chatsync.embedding.encoder import DEFAULT_MODEL
from chatsync.factory import build_runtime

from conftest import HashingBackend


class TestAppConfig:
    """Test AppConfig defaults and env overrides."""

    def test_defaults(self) -> None:
        config = AppConfig()
        assert config.db_path == Path("data") / "chatsync.db"
        assert config.model_name == DEFAULT_MODEL
        assert (config.chunk_chars, config.overlap) == (500, 50)
        assert config.similarity_threshold == 0.3
        assert config.result_limit == 5
        assert config.supported_types == SUPPORTED_TYPES
        assert (config.embed_backend, config.device) == ("torch", None)
        assert config.webhook_secret is None

    def test_resolve_db_path_relative(self, tmp_path: Path) -> None:
        config = AppConfig(db_path=Path("data/test.db"))
        assert config.resolve_db_path(tmp_path) == tmp_path / "data" / "test.db"

    def test_resolve_db_path_absolute(self, tmp_path: Path) -> None:
        config = AppConfig(db_path=tmp_path / "abs.db")
        assert config.resolve_db_path(Path("/elsewhere")) == tmp_path / "abs.db"

    def test_secrets_hidden_from_repr(self) -> None:
        config = AppConfig(webhook_secret="s3cret", admin_token="t0ken", sanity_token="tok")
        text = repr(config)
        assert "s3cret" not in text
        assert "t0ken" not in text

    def test_from_env(self) -> None:
        config = AppConfig.from_env(
            {
                "CHATSYNC_DB": "/tmp/kb.db",
                "CHATSYNC_EMBED_BACKEND": "openvino",
                "CHATSYNC_DEVICE": "cpu",
                "CHATSYNC_CHUNK_CHARS": "800",
                "CHATSYNC_OVERLAP": "80",
                "CHATSYNC_THRESHOLD": "0.5",
                "CHATSYNC_LIMIT": "8",
                "CHATSYNC_TYPES": "project, profile",
                "CHATSYNC_SUBJECT_NAME": "Ada",
                "CHATSYNC_QUERY_ALIASES": '{"casa bonita": ["restaurant"]}',
                "SANITY_WEBHOOK_SECRET": "hook",
                "ADMIN_API_TOKEN": "admin",
                "SANITY_PROJECT_ID": "abc123",
                "SANITY_DATASET": "staging",
            }
        )

        assert config.db_path == Path("/tmp/kb.db")
        assert (config.embed_backend, config.device) == ("openvino", "cpu")
        assert (config.chunk_chars, config.overlap) == (800, 80)
        assert config.similarity_threshold == 0.5
        assert config.result_limit == 8
        assert config.supported_types == ("project", "profile")
        assert config.subject_name == "Ada"
        assert config.query_aliases == {"casa bonita": ["restaurant"]}
        assert config.webhook_secret == "hook"
        assert config.admin_token == "admin"
        assert config.sanity_project_id == "abc123"
        assert config.sanity_dataset == "staging"

    def test_from_env_empty_secret_is_unset(self) -> None:
        config = AppConfig.from_env({"SANITY_WEBHOOK_SECRET": ""})
        assert config.webhook_secret is None


class TestBuildRuntime:
    """Wiring of AppConfig into the runtime."""

    @patch("chatsync.factory.EmbeddingModel")
    def test_embedding_backend_and_device_forwarded(
        self, mock_model: MagicMock, tmp_path: Path
    ) -> None:
        mock_model.return_value = HashingBackend(dimension=16)
        config = AppConfig.from_env(
            {
                "CHATSYNC_DB": str(tmp_path / "kb.db"),
                "CHATSYNC_EMBED_BACKEND": "onnx",
                "CHATSYNC_DEVICE": "cuda",
            }
        )

        runtime = build_runtime(config)
        try:
            embedding_config = mock_model.call_args[0][0]
            assert embedding_config.backend == "onnx"
            assert embedding_config.device == "cuda"
            assert runtime.embedder.dimension == 16
        finally:
            runtime.close()
