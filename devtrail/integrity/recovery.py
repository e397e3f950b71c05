"""
Session recovery strategies.

Each strategy inspects the session directory and returns ``Recovered`` or
``NotApplicable``. ``recover_session`` tries them in order; the first
``Recovered`` wins. No strategy writes to or deletes any input file.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Union

from ..errors import RecoveryExhaustedError
from ..session_schema import now_iso
from .quality import validate_session_structure

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r'"sessionId":\s*"([^"]+)"')
START_PATTERN = re.compile(r'"start":\s*"([^"]+)"')


@dataclass(frozen=True)
class Recovered:
    status: str
    data: dict[str, Any]
    source: str


@dataclass(frozen=True)
class NotApplicable:
    reason: str


RecoveryOutcome = Union[Recovered, NotApplicable]


class RecoveryStrategy(Protocol):
    name: str

    def attempt(self, session_dir: Path, session_id: str) -> RecoveryOutcome: ...


@dataclass(frozen=True)
class BackupStrategy:
    """Load ``<id>.backup.json`` if it parses and is structurally valid."""

    name: str = "backup"

    def attempt(self, session_dir: Path, session_id: str) -> RecoveryOutcome:
        backup_path = session_dir / f"{session_id}.backup.json"
        if not backup_path.exists():
            return NotApplicable("no backup file")

        try:
            data = json.loads(backup_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Backup for {session_id} is unreadable: {e}")
            return NotApplicable(f"backup unreadable: {e}")

        validation = validate_session_structure(data)
        if not validation["isValid"]:
            logger.warning(f"Backup file for {session_id} is also corrupted")
            return NotApplicable("backup failed structural validation")

        logger.info(f"Successfully recovered session {session_id} from backup")
        return Recovered(status="recovered_from_backup", data=data, source="backup")


@dataclass(frozen=True)
class PartialExtractionStrategy:
    """
    Rebuild a minimal record from corrupted text.

    Reads ``<id>.json.corrupted``, or the primary file when it does not
    parse, and regex-extracts ``sessionId`` and ``start``.
    """

    name: str = "partial_extraction"

    def _corrupted_text(self, session_dir: Path, session_id: str) -> tuple[str, str] | None:
        corrupted_path = session_dir / f"{session_id}.json.corrupted"
        if corrupted_path.exists():
            return corrupted_path.read_text(encoding="utf-8", errors="replace"), "corrupted_file"

        primary_path = session_dir / f"{session_id}.json"
        if primary_path.exists():
            text = primary_path.read_text(encoding="utf-8", errors="replace")
            try:
                json.loads(text)
            except json.JSONDecodeError:
                return text, "primary_file"
        return None

    def attempt(self, session_dir: Path, session_id: str) -> RecoveryOutcome:
        try:
            found = self._corrupted_text(session_dir, session_id)
        except OSError as e:
            return NotApplicable(f"corrupted text unreadable: {e}")
        if found is None:
            return NotApplicable("no corrupted text to extract from")

        text, source = found
        session_match = SESSION_ID_PATTERN.search(text)
        start_match = START_PATTERN.search(text)
        if not session_match and not start_match:
            return NotApplicable("no sessionId or start in corrupted text")

        logger.info(f"Partial recovery possible for {session_id}")
        now = now_iso()
        data = {
            "sessionId": session_match.group(1) if session_match else session_id,
            "start": start_match.group(1) if start_match else now,
            "lastUpdate": now,
            "activities": [],
            "fileChanges": [],
            "gitCommits": [],
            "commands": [],
            "decisions": [],
            "problems": [],
            "solutions": [],
            "metadata": {
                "activitiesCount": 0,
                "recovered": True,
                "partialRecovery": True,
                "originalCorrupted": True,
            },
        }
        return Recovered(status="partial_recovery", data=data, source=source)


DEFAULT_STRATEGIES: tuple[RecoveryStrategy, ...] = (BackupStrategy(), PartialExtractionStrategy())


@dataclass
class RecoveryResult:
    recoverable: bool
    status: str
    data: dict[str, Any] | None = None
    source: str | None = None
    attempts: list[str] = field(default_factory=list)
    recovered_path: str | None = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recoverable": self.recoverable,
            "status": self.status,
            "data": self.data,
            "source": self.source,
            "attempts": self.attempts,
            "recoveredPath": self.recovered_path,
            "error": self.error,
        }


def recover_session(
    session_dir: Path,
    session_id: str,
    strategies: tuple[RecoveryStrategy, ...] = DEFAULT_STRATEGIES,
) -> RecoveryResult:
    """Run ``strategies`` in order until one recovers the session."""
    attempts: list[str] = []
    for strategy in strategies:
        attempts.append(strategy.name)
        outcome = strategy.attempt(session_dir, session_id)
        if isinstance(outcome, Recovered):
            return RecoveryResult(
                recoverable=True,
                status=outcome.status,
                data=outcome.data,
                source=outcome.source,
                attempts=attempts,
            )
        logger.debug(f"Recovery strategy {strategy.name} not applicable for {session_id}: {outcome.reason}")

    logger.error(f"Complete session loss detected for {session_id}")
    error = RecoveryExhaustedError(
        f"No backup or recoverable text for session {session_id}",
        sessionId=session_id,
        attempts=list(attempts),
    )
    return RecoveryResult(recoverable=False, status=error.type, attempts=attempts, error=error.to_dict())


__all__ = [
    "Recovered",
    "NotApplicable",
    "RecoveryStrategy",
    "BackupStrategy",
    "PartialExtractionStrategy",
    "DEFAULT_STRATEGIES",
    "RecoveryResult",
    "recover_session",
]
