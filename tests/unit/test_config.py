"""
Unit tests for configuration loading and logging setup.
"""

import json
import logging
from pathlib import Path

import pytest

from devtrail.config import DevtrailConfig, HistoryConfig, devtrail_home
from devtrail.logging_config import configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DEVTRAIL_SESSION_DIR", "DEVTRAIL_DB_PATH", "DEVTRAIL_LOG_LEVEL", "DEVTRAIL_HOME"):
        monkeypatch.delenv(name, raising=False)


class TestDevtrailConfig:
    """Tests for DevtrailConfig load/save."""

    def test_defaults_when_file_missing(self, tmp_path: Path):
        config = DevtrailConfig.load(tmp_path / "missing.json")
        assert config.capture.max_activities == 1000
        assert config.serializer.circuit_breaker_threshold == 5
        assert config.knowledge.rebuild_interval == 100
        assert config.history.project_keywords["crypto"] == "crypto-main"

    def test_file_values_override_defaults(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "capture": {"max_activities": 50, "unknown_field": True},
                    "history": {"days": 7, "default_project": "misc"},
                    "knowledge": {"result_limit": 5},
                }
            )
        )
        config = DevtrailConfig.load(path)
        assert config.capture.max_activities == 50
        assert config.history.days == 7
        assert config.history.default_project == "misc"
        assert config.knowledge.result_limit == 5
        assert config.verifier.circuit_breaker_threshold == 5

    def test_unreadable_file_falls_back(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        config = DevtrailConfig.load(path)
        assert config.capture.max_activities == 1000

    def test_env_overrides(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("DEVTRAIL_SESSION_DIR", str(tmp_path / "sessions"))
        monkeypatch.setenv("DEVTRAIL_DB_PATH", str(tmp_path / "k.db"))
        monkeypatch.setenv("DEVTRAIL_LOG_LEVEL", "debug")

        config = DevtrailConfig.load(tmp_path / "missing.json")
        assert config.capture.session_dir == str(tmp_path / "sessions")
        assert config.verifier.session_dir == str(tmp_path / "sessions")
        assert config.knowledge.db_path == str(tmp_path / "k.db")
        assert config.logging.level == "DEBUG"

    def test_home_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("DEVTRAIL_HOME", str(tmp_path))
        assert devtrail_home() == tmp_path
        assert HistoryConfig().archive_dir == str(tmp_path / "history")

    def test_save_and_reload(self, tmp_path: Path):
        path = tmp_path / "nested" / "config.json"
        config = DevtrailConfig()
        config.capture.max_activities = 42
        config.history.project_keywords = {"shop": "storefront"}
        config.save(path)

        reloaded = DevtrailConfig.load(path)
        assert reloaded.capture.max_activities == 42
        assert reloaded.history.project_keywords == {"shop": "storefront"}


class TestConfigureLogging:
    """Tests for logger setup."""

    def test_level_and_file_handlers(self, tmp_path: Path):
        logger = configure_logging("debug", tmp_path / "logs")
        try:
            assert logger.level == logging.DEBUG
            logging.getLogger("devtrail.test").error("boom")
            for handler in logger.handlers:
                handler.flush()

            assert "boom" in (tmp_path / "logs" / "combined.log").read_text()
            assert "boom" in (tmp_path / "logs" / "error.log").read_text()
        finally:
            configure_logging("WARNING")

    def test_reconfigure_replaces_handlers(self):
        configure_logging("INFO")
        count = len(logging.getLogger("devtrail").handlers)
        configure_logging("INFO")
        assert len(logging.getLogger("devtrail").handlers) == count

    def test_unknown_level_defaults_to_info(self):
        assert configure_logging("chatty").level == logging.INFO
