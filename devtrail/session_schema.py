"""
Session schema models for devtrail.

Pydantic models for the per-session JSON record. On disk every field uses
its camelCase alias (``sessionId``, ``lastUpdate``, ``fileChanges``); in
Python the attributes are snake_case. Models accept either spelling.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# A string field, or the truncation descriptor that replaced it.
Content = Union[str, dict[str, Any], None]


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ActivityType(str, Enum):
    """Kind of a recorded activity."""

    FILE_CHANGE = "file_change"
    GIT_ACTIVITY = "git_activity"
    GIT_COMMIT = "git_commit"
    COMMAND = "command"
    DECISION = "decision"
    PROBLEM = "problem"
    SOLUTION = "solution"
    SYSTEM_INFO = "system_info"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
        "extra": "ignore",
    }

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with on-disk (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


class FileChangeRecord(CamelModel):
    """A file added, changed or deleted."""

    file: str
    action: str = "change"
    timestamp: str = Field(default_factory=now_iso)
    content: Content = None
    diff: Content = None
    lines: int | None = None
    size: int | None = None


class GitActivityRecord(CamelModel):
    """A git command seen in the session."""

    command: Content = ""
    output: Content = None
    branch: str | None = None
    files: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=now_iso)


class CommitStats(CamelModel):
    additions: int = 0
    deletions: int = 0


class CommitRecord(CamelModel):
    """A git commit. ``hash`` is globally unique."""

    hash: str
    message: Content = ""
    author: str = ""
    email: str | None = None
    date: str | None = None
    files: list[str] = Field(default_factory=list)
    stats: CommitStats = Field(default_factory=CommitStats)
    timestamp: str = Field(default_factory=now_iso)


class CommandRecord(CamelModel):
    """A shell command and its outcome."""

    command: Content
    output: Content = None
    exit_code: int | None = None
    duration: float | None = None
    timestamp: str = Field(default_factory=now_iso)


class DecisionRecord(CamelModel):
    """A design or implementation decision."""

    description: Content
    category: str = "general"
    reasoning: Content = None
    alternatives: list[Any] = Field(default_factory=list)
    impact: str = "medium"
    timestamp: str = Field(default_factory=now_iso)


class ProblemRecord(CamelModel):
    """A problem encountered. ``id`` is ``prob-<n>`` within the session."""

    id: str
    description: Content
    category: str = "general"
    severity: str = "medium"
    context: Content = None
    stack_trace: Content = None
    timestamp: str = Field(default_factory=now_iso)


class SolutionRecord(CamelModel):
    """A solution; ``problem_id`` is a weak reference to a ProblemRecord."""

    description: Content
    problem_id: str | None = None
    implementation: Content = None
    effectiveness: str = "unknown"
    reusable: bool = False
    timestamp: str = Field(default_factory=now_iso)


class SystemInfoRecord(CamelModel):
    """Synthetic marker recording activities dropped by the memory bound."""

    message: str
    dropped: int = 0
    total_dropped: int = 0


class ActivityEntry(CamelModel):
    """One entry of the session's activity log."""

    type: ActivityType
    timestamp: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class SessionMetadata(CamelModel):
    """Counts and flags stored alongside the session lists."""

    activities_count: int = 0
    file_changes_count: int = 0
    git_commits_count: int = 0
    commands_count: int = 0
    decisions_count: int = 0
    problems_count: int = 0
    solutions_count: int = 0
    dropped_activities: int = 0
    serialization_safe: bool = True
    max_content_length: int = 10 * 1024


class SessionRecord(CamelModel):
    """
    The persisted session document ``<sessionDir>/<sessionId>.json``.

    Owned by one ActivityRecorder; read-only once summarized.
    """

    session_id: str
    start: str
    last_update: str
    activities: list[ActivityEntry] = Field(default_factory=list)
    file_changes: list[FileChangeRecord] = Field(default_factory=list)
    git_commits: list[CommitRecord] = Field(default_factory=list)
    commands: list[CommandRecord] = Field(default_factory=list)
    decisions: list[DecisionRecord] = Field(default_factory=list)
    problems: list[ProblemRecord] = Field(default_factory=list)
    solutions: list[SolutionRecord] = Field(default_factory=list)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)


class FileTouch(CamelModel):
    file: str
    changes: int


class SessionStatistics(CamelModel):
    total_activities: int = 0
    file_changes: int = 0
    git_commits: int = 0
    commands: int = 0
    decisions: int = 0
    problems_solved: int = 0


class SessionSummary(CamelModel):
    """End-of-session digest, the unit ingested by the knowledge index."""

    session_id: str
    title: str | None = None
    start: str
    end: str
    duration: int
    duration_formatted: str
    statistics: SessionStatistics = Field(default_factory=SessionStatistics)
    file_changes: list[FileChangeRecord] = Field(default_factory=list)
    commits: list[CommitRecord] = Field(default_factory=list)
    decisions: list[DecisionRecord] = Field(default_factory=list)
    problems: list[ProblemRecord] = Field(default_factory=list)
    solutions: list[SolutionRecord] = Field(default_factory=list)
    top_files: list[FileTouch] = Field(default_factory=list)
    key_achievements: list[str] = Field(default_factory=list)
    activities: list[ActivityEntry] = Field(default_factory=list)


class SessionSnapshot(CamelModel):
    """Point-in-time view of a running session."""

    session_id: str
    timestamp: str = Field(default_factory=now_iso)
    duration: int = 0
    activities: int = 0
    file_changes: int = 0
    commits: int = 0
    commands: int = 0
    recent_activity: list[ActivityEntry] = Field(default_factory=list)


class KnowledgeEntry(BaseModel):
    """A searchable document in the knowledge index."""

    doc_id: str
    doc_type: str
    title: str
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=now_iso)


def content_text(value: Any) -> str:
    """Flatten a content field (string or truncation descriptor) to text."""
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("preview", ""))
    return str(value)


def describe_activity(entry: ActivityEntry) -> str:
    """
    One-line human description of an activity.

    Raises:
        ValueError: If the entry's type has no description rule
    """
    kind = ActivityType(entry.type)
    details = entry.details

    if kind is ActivityType.FILE_CHANGE:
        return f"{details.get('action', 'change')} {details.get('file', '?')}"
    if kind is ActivityType.GIT_ACTIVITY:
        return f"git {content_text(details.get('command'))}".strip()
    if kind is ActivityType.GIT_COMMIT:
        return f"commit {str(details.get('hash', ''))[:8]}: {content_text(details.get('message'))}"
    if kind is ActivityType.COMMAND:
        return f"$ {content_text(details.get('command'))}"
    if kind is ActivityType.DECISION:
        return f"decision ({details.get('category', 'general')}): {content_text(details.get('description'))}"
    if kind is ActivityType.PROBLEM:
        return f"problem [{details.get('severity', 'medium')}]: {content_text(details.get('description'))}"
    if kind is ActivityType.SOLUTION:
        return f"solution: {content_text(details.get('description'))}"
    if kind is ActivityType.SYSTEM_INFO:
        return str(details.get("message", "system info"))
    raise ValueError(f"Unhandled activity type: {kind}")


__all__ = [
    "Content",
    "now_iso",
    "ActivityType",
    "CamelModel",
    "FileChangeRecord",
    "GitActivityRecord",
    "CommitStats",
    "CommitRecord",
    "CommandRecord",
    "DecisionRecord",
    "ProblemRecord",
    "SolutionRecord",
    "SystemInfoRecord",
    "ActivityEntry",
    "SessionMetadata",
    "SessionRecord",
    "FileTouch",
    "SessionStatistics",
    "SessionSummary",
    "SessionSnapshot",
    "KnowledgeEntry",
    "content_text",
    "describe_activity",
]
