"""
ActivityRecorder - durable per-session capture of development activity.

Every recorded event is appended to the in-memory SessionRecord and the
whole record is rewritten to ``<session_dir>/<session_id>.json``. When the
full write fails a minimal ``<session_id>.backup.json`` is written instead.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import CaptureConfig
from ..serialization import BoundedSerializer
from ..session_schema import (
    ActivityEntry,
    ActivityType,
    CamelModel,
    CommandRecord,
    CommitRecord,
    Content,
    DecisionRecord,
    FileChangeRecord,
    FileTouch,
    GitActivityRecord,
    ProblemRecord,
    SessionRecord,
    SessionSnapshot,
    SessionStatistics,
    SessionSummary,
    SolutionRecord,
    SystemInfoRecord,
    content_text,
)
from ..storage import atomic_write_text
from .sanitize import sanitize_payload
from .session_id import generate_session_id

logger = logging.getLogger(__name__)

PROBLEM_PATTERN = re.compile(r"fix|bug|issue|error", re.IGNORECASE)
DECISION_PATTERN = re.compile(r"feat|add|implement|create", re.IGNORECASE)
FEATURE_PATTERN = re.compile(r"feat|add|implement", re.IGNORECASE)
FIX_PATTERN = re.compile(r"fix|bug|issue", re.IGNORECASE)

RECENT_ACTIVITY_COUNT = 10
TOP_FILES_COUNT = 10


def format_duration(ms: int) -> str:
    """Render milliseconds as ``1h 5m``, ``3m 2s`` or ``42s``."""
    seconds = int(ms) // 1000
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


class ActivityRecorder:
    """
    Records one development session.

    Event methods accept loosely typed mappings with camelCase or snake_case
    keys and return the stored record, or None when the event was unusable.
    They never raise to the caller.

    Example:
        recorder = ActivityRecorder(session_dir=Path("sessions"))
        recorder.record_file_change({"path": "app.py", "action": "change"})
        summary = recorder.generate_summary()
    """

    def __init__(
        self,
        session_dir: Path | str | None = None,
        session_id: str | None = None,
        config: CaptureConfig | None = None,
        serializer: BoundedSerializer | None = None,
        title: str | None = None,
    ):
        """
        Initialize the recorder and write the initial session file.

        Args:
            session_dir: Directory for session files (default: config.session_dir)
            session_id: Explicit id (default: generated, time-derived)
            config: Capture settings
            serializer: Serializer used for the full write
            title: Optional human-readable session title
        """
        self.config = config or CaptureConfig()
        self.title = title
        self.session_dir = Path(session_dir or self.config.session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.max_content_length = self.config.max_content_length
        self.max_activities = self.config.max_activities
        self.serializer = serializer or BoundedSerializer(max_content_length=self.max_content_length)

        self._start_time = datetime.now(timezone.utc)
        start = self._start_time.isoformat()
        self.session = SessionRecord(
            session_id=session_id or generate_session_id(),
            start=start,
            last_update=start,
        )
        self.session.metadata.max_content_length = self.max_content_length
        self._problem_seq = 0
        self._total_dropped = 0

        logger.info(f"Session started: {self.session_id}")
        self.persist()

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def session_path(self) -> Path:
        """Primary session file."""
        return self.session_dir / f"{self.session_id}.json"

    @property
    def backup_path(self) -> Path:
        """Minimal backup written when the full write fails."""
        return self.session_dir / f"{self.session_id}.backup.json"

    # ------------------------------------------------------------------
    # Event recording
    # ------------------------------------------------------------------

    def record_file_change(self, event: Mapping[str, Any]) -> FileChangeRecord | None:
        """Record a file add/change/delete. ``path`` is accepted for ``file``."""
        try:
            data = self._prepare(event)
            data.setdefault("file", data.pop("path", None))
            if not data.get("file"):
                logger.warning("File change event without a path, ignoring")
                return None
            record = FileChangeRecord.model_validate(data)
            self.session.file_changes.append(record)
            self._add_activity(ActivityType.FILE_CHANGE, record)
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record file change: {e}")
            return None

    def record_git_activity(self, event: Mapping[str, Any]) -> GitActivityRecord | None:
        """Record a git command (status, checkout, push, ...)."""
        try:
            record = GitActivityRecord.model_validate(self._prepare(event))
            self._add_activity(ActivityType.GIT_ACTIVITY, record)
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record git activity: {e}")
            return None

    def record_commit(self, event: Mapping[str, Any]) -> CommitRecord | None:
        """
        Record a commit and extract insights from its message.

        A message matching fix/bug/issue/error also yields a Problem, and one
        matching feat/add/implement/create yields a Decision. The session is
        persisted once for the whole call.
        """
        try:
            data = self._prepare(event)
            if not data.get("hash"):
                logger.warning("Commit event without a hash, ignoring")
                return None
            data["files"] = _file_names(data.get("files") or [])
            if "stats" not in data and ("additions" in data or "deletions" in data):
                data["stats"] = {
                    "additions": data.get("additions", 0),
                    "deletions": data.get("deletions", 0),
                }
            record = CommitRecord.model_validate(data)
            self.session.git_commits.append(record)
            self._add_activity(ActivityType.GIT_COMMIT, record)
            self._extract_insights(record.message)
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record commit: {e}")
            return None

    def record_command(self, event: Mapping[str, Any]) -> CommandRecord | None:
        """Record a shell command with output, exit code and duration."""
        try:
            data = self._prepare(event)
            if not data.get("command"):
                logger.warning("Command event without a command, ignoring")
                return None
            record = CommandRecord.model_validate(data)
            self.session.commands.append(record)
            self._add_activity(ActivityType.COMMAND, record)
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record command: {e}")
            return None

    def record_decision(self, event: Mapping[str, Any]) -> DecisionRecord | None:
        try:
            record = self._store_decision(self._prepare(event))
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record decision: {e}")
            return None

    def record_problem(self, event: Mapping[str, Any]) -> ProblemRecord | None:
        try:
            record = self._store_problem(self._prepare(event))
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record problem: {e}")
            return None

    def record_solution(self, event: Mapping[str, Any]) -> SolutionRecord | None:
        """Record a solution; ``problemId`` need not match a recorded problem."""
        try:
            record = SolutionRecord.model_validate(self._prepare(event))
            self.session.solutions.append(record)
            self._add_activity(ActivityType.SOLUTION, record)
            self.persist()
            return record
        except Exception as e:
            logger.error(f"Failed to record solution: {e}")
            return None

    def _prepare(self, event: Mapping[str, Any]) -> dict[str, Any]:
        """Copy and sanitize an incoming event."""
        return sanitize_payload(dict(event), self.max_content_length)

    def _store_decision(self, data: dict[str, Any]) -> DecisionRecord:
        record = DecisionRecord.model_validate(data)
        self.session.decisions.append(record)
        self._add_activity(ActivityType.DECISION, record)
        return record

    def _store_problem(self, data: dict[str, Any]) -> ProblemRecord:
        if not data.get("id"):
            self._problem_seq += 1
            data["id"] = f"prob-{self._problem_seq}"
        record = ProblemRecord.model_validate(data)
        self.session.problems.append(record)
        self._add_activity(ActivityType.PROBLEM, record)
        return record

    def _extract_insights(self, message: Content) -> None:
        """Derive a Problem and/or Decision from a commit message."""
        text = content_text(message)
        if PROBLEM_PATTERN.search(text):
            self._store_problem(
                {
                    "description": message,
                    "category": "bug",
                    "severity": "medium",
                    "context": "Extracted from commit message",
                }
            )
        if DECISION_PATTERN.search(text):
            self._store_decision(
                {
                    "category": "feature",
                    "description": message,
                    "reasoning": "New functionality added",
                    "impact": "medium",
                }
            )

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def _add_activity(self, kind: ActivityType, record: CamelModel) -> None:
        details = record.to_json_dict()
        self.session.activities.append(
            ActivityEntry(type=kind, timestamp=details.get("timestamp"), details=details)
        )
        self._enforce_activity_bound()

    def _enforce_activity_bound(self) -> None:
        """Drop the oldest activities past max_activities, marking the head."""
        activities = self.session.activities
        if len(activities) <= self.max_activities:
            return

        if activities and activities[0].type == ActivityType.SYSTEM_INFO:
            activities.pop(0)

        dropped = len(activities) - (self.max_activities - 1)
        if dropped > 0:
            del activities[:dropped]
            self._total_dropped += dropped

        marker = SystemInfoRecord(
            message=f"Dropped {dropped} oldest activities ({self._total_dropped} total)",
            dropped=dropped,
            total_dropped=self._total_dropped,
        )
        activities.insert(
            0,
            ActivityEntry(
                type=ActivityType.SYSTEM_INFO,
                timestamp=datetime.now(timezone.utc).isoformat(),
                details=marker.to_json_dict(),
            ),
        )
        logger.warning(f"Activity log over {self.max_activities} entries, dropped {dropped} oldest")

    # ------------------------------------------------------------------
    # Snapshots and summaries
    # ------------------------------------------------------------------

    def _duration_ms(self) -> int:
        return int((datetime.now(timezone.utc) - self._start_time).total_seconds() * 1000)

    def create_snapshot(self) -> SessionSnapshot:
        """Counts plus the last 10 activities."""
        return SessionSnapshot(
            session_id=self.session_id,
            duration=self._duration_ms(),
            activities=len(self.session.activities),
            file_changes=len(self.session.file_changes),
            commits=len(self.session.git_commits),
            commands=len(self.session.commands),
            recent_activity=list(self.session.activities[-RECENT_ACTIVITY_COUNT:]),
        )

    def top_files(self, limit: int = TOP_FILES_COUNT) -> list[FileTouch]:
        counts = Counter(change.file for change in self.session.file_changes)
        return [FileTouch(file=file, changes=changes) for file, changes in counts.most_common(limit)]

    def key_achievements(self) -> list[str]:
        achievements = []
        features = [c for c in self.session.git_commits if FEATURE_PATTERN.search(content_text(c.message))]
        if features:
            achievements.append(f"Added {len(features)} new features")
        fixes = [c for c in self.session.git_commits if FIX_PATTERN.search(content_text(c.message))]
        if fixes:
            achievements.append(f"Fixed {len(fixes)} bugs")
        if self.session.file_changes:
            achievements.append(f"Modified {len(self.session.file_changes)} files")
        return achievements

    def generate_summary(self) -> SessionSummary:
        """End-of-session digest for the knowledge index."""
        duration = self._duration_ms()
        session = self.session
        return SessionSummary(
            session_id=session.session_id,
            title=self.title,
            start=session.start,
            end=datetime.now(timezone.utc).isoformat(),
            duration=duration,
            duration_formatted=format_duration(duration),
            statistics=SessionStatistics(
                total_activities=len(session.activities),
                file_changes=len(session.file_changes),
                git_commits=len(session.git_commits),
                commands=len(session.commands),
                decisions=len(session.decisions),
                problems_solved=len(session.solutions),
            ),
            file_changes=list(session.file_changes),
            commits=list(session.git_commits),
            decisions=list(session.decisions),
            problems=list(session.problems),
            solutions=list(session.solutions),
            top_files=self.top_files(),
            key_achievements=self.key_achievements(),
            activities=list(session.activities),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _refresh_metadata(self) -> None:
        session = self.session
        meta = session.metadata
        meta.activities_count = len(session.activities)
        meta.file_changes_count = len(session.file_changes)
        meta.git_commits_count = len(session.git_commits)
        meta.commands_count = len(session.commands)
        meta.decisions_count = len(session.decisions)
        meta.problems_count = len(session.problems)
        meta.solutions_count = len(session.solutions)
        meta.dropped_activities = self._total_dropped

    def persist(self) -> Path | None:
        """
        Rewrite the full session file.

        Returns:
            The session path, or None when only the backup could be attempted
        """
        self.session.last_update = datetime.now(timezone.utc).isoformat()
        self._refresh_metadata()

        encoded = self.serializer.safe_stringify(self.session.to_json_dict(), indent=2)
        if self.serializer.last_error is None:
            try:
                atomic_write_text(self.session_path, encoded)
                return self.session_path
            except OSError as e:
                logger.error(f"Failed to write session {self.session_id}: {e}")
        else:
            logger.error(
                f"Session {self.session_id} serialization failed ({self.serializer.last_error}), "
                "writing minimal backup"
            )

        self.session.metadata.serialization_safe = False
        self._write_backup()
        return None

    def _write_backup(self) -> None:
        session = self.session
        keep = self.config.backup_activity_count
        metadata = session.metadata.to_json_dict()
        metadata["backup"] = True
        backup = {
            "sessionId": session.session_id,
            "start": session.start,
            "lastUpdate": session.last_update,
            "activitiesCount": len(session.activities),
            "fileChangesCount": len(session.file_changes),
            "commitsCount": len(session.git_commits),
            "metadata": metadata,
            "activities": [a.to_json_dict() for a in session.activities[-keep:]] if keep else [],
        }
        try:
            atomic_write_text(self.backup_path, json.dumps(backup, indent=2, default=str))
            logger.info(f"Minimal backup written: {self.backup_path}")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Backup write failed for {session.session_id}: {e}")


def _file_names(files: list[Any]) -> list[str]:
    """Accept plain paths or ``{"file": ...}`` entries."""
    names = []
    for entry in files:
        if isinstance(entry, Mapping):
            name = entry.get("file") or entry.get("path")
            if name:
                names.append(str(name))
        else:
            names.append(str(entry))
    return names


__all__ = ["ActivityRecorder", "format_duration"]
