"""
Configuration management for devtrail.

Dataclass settings per component, persisted as one JSON document at
``~/.claude/devtrail-config.json`` with ``DEVTRAIL_*`` environment overrides.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".claude" / "devtrail-config.json"

DEFAULT_PROJECT_KEYWORDS: dict[str, str] = {
    "pachacuti": "pachacuti",
    "crypto": "crypto-main",
    "voter": "voter-app",
    "visual": "visual-verification",
}


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def devtrail_home() -> Path:
    """Base directory for data files: DEVTRAIL_HOME or ~/.claude/devtrail."""
    env_value = os.getenv("DEVTRAIL_HOME")
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / ".claude" / "devtrail"


def _home_path(*parts: str) -> str:
    return str(devtrail_home().joinpath(*parts))


def _load_env_file() -> None:
    """Load ``.env`` from the working directory, if present."""
    env_file = Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(env_file)


@dataclass
class CaptureConfig:
    """Configuration for the activity recorder."""

    session_dir: str = field(default_factory=lambda: _home_path("sessions"))
    max_content_length: int = 10 * 1024
    max_activities: int = 1000
    backup_activity_count: int = 5


@dataclass
class SerializerConfig:
    """Bounds and circuit breaker settings for BoundedSerializer."""

    max_string_length: int = 100 * 1024 * 1024
    max_content_length: int = 10 * 1024
    max_array_items: int = 1000
    max_depth: int = 10
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 60.0


@dataclass
class VerifierConfig:
    """Configuration for the integrity verifier."""

    session_dir: str = field(default_factory=lambda: _home_path("sessions"))
    reports_dir: str = field(default_factory=lambda: _home_path("reports"))
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 60.0


@dataclass
class HistoryConfig:
    """
    Configuration for history mining.

    ``project_keywords`` maps a keyword to a project name; iteration order is
    the tie-break order for attribution.
    """

    repo_path: str = "."
    days: int = 30
    watch_interval: float = 30.0
    git_timeout: float = 30.0
    session_log_dirs: list[str] = field(
        default_factory=lambda: ["session-logs", "logs", ".claude-flow/sessions", "daily-briefing/data"]
    )
    doc_paths: list[str] = field(
        default_factory=lambda: ["docs", "documentation", "README.md", "CONTRIBUTING.md", "ARCHITECTURE.md"]
    )
    shell_history_path: str = "~/.bash_history"
    project_keywords: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PROJECT_KEYWORDS))
    default_project: str = "pachacuti"
    archive_dir: str = field(default_factory=lambda: _home_path("history"))


@dataclass
class KnowledgeConfig:
    """Configuration for the knowledge index."""

    db_path: str = field(default_factory=lambda: _home_path("knowledge.db"))
    rebuild_interval: int = 100
    result_limit: int = 20
    export_dir: str = field(default_factory=lambda: _home_path("exports"))


@dataclass
class LoggingConfig:
    """Log level and optional directory for combined.log / error.log."""

    level: str = "INFO"
    log_dir: str | None = None


@dataclass
class DevtrailConfig:
    """Complete devtrail configuration."""

    capture: CaptureConfig = field(default_factory=CaptureConfig)
    serializer: SerializerConfig = field(default_factory=SerializerConfig)
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    knowledge: KnowledgeConfig = field(default_factory=KnowledgeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "DevtrailConfig":
        """
        Load configuration from file, then apply environment overrides.

        Args:
            path: Optional config file path. Defaults to ~/.claude/devtrail-config.json

        Returns:
            DevtrailConfig with user settings merged over defaults
        """
        _load_env_file()

        if path is None:
            path = CONFIG_PATH

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Unreadable config at {path}, using defaults: {e}")
                data = {}

        config = cls(
            capture=CaptureConfig(**_filter_dataclass_fields(data.get("capture", {}), CaptureConfig)),
            serializer=SerializerConfig(**_filter_dataclass_fields(data.get("serializer", {}), SerializerConfig)),
            verifier=VerifierConfig(**_filter_dataclass_fields(data.get("verifier", {}), VerifierConfig)),
            history=HistoryConfig(**_filter_dataclass_fields(data.get("history", {}), HistoryConfig)),
            knowledge=KnowledgeConfig(**_filter_dataclass_fields(data.get("knowledge", {}), KnowledgeConfig)),
            logging=LoggingConfig(**_filter_dataclass_fields(data.get("logging", {}), LoggingConfig)),
        )
        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Apply DEVTRAIL_SESSION_DIR, DEVTRAIL_DB_PATH and DEVTRAIL_LOG_LEVEL."""
        session_dir = os.getenv("DEVTRAIL_SESSION_DIR")
        if session_dir:
            self.capture.session_dir = session_dir
            self.verifier.session_dir = session_dir

        db_path = os.getenv("DEVTRAIL_DB_PATH")
        if db_path:
            self.knowledge.db_path = db_path

        log_level = os.getenv("DEVTRAIL_LOG_LEVEL")
        if log_level:
            self.logging.level = log_level.upper()

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(
                {
                    "capture": asdict(self.capture),
                    "serializer": asdict(self.serializer),
                    "verifier": asdict(self.verifier),
                    "history": asdict(self.history),
                    "knowledge": asdict(self.knowledge),
                    "logging": asdict(self.logging),
                },
                f,
                indent=2,
            )


__all__ = [
    "CONFIG_PATH",
    "CaptureConfig",
    "SerializerConfig",
    "VerifierConfig",
    "HistoryConfig",
    "KnowledgeConfig",
    "LoggingConfig",
    "DevtrailConfig",
    "devtrail_home",
]
