"""
HistoryAggregator - reconstructs development history from several sources.

Sources (each best-effort; a failing source is logged and skipped):

    git            commits, authors, projects, milestones, file touches
    files          session logs (*.json / *.md) in the configured dirs
    documentation  README and docs/ markdown
    logs           shell history lines about git/claude/npm/python/pip

Partial results are merged additively and summarized into insights.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import HistoryConfig
from ..serialization import BoundedSerializer
from ..session_schema import SessionSummary
from ..storage import atomic_write_text
from .attribution import CONFIDENCE, ProjectAttributor
from .git_log import GitLogMiner, collect_file_touches, rank_files

logger = logging.getLogger(__name__)

TECHNOLOGIES: dict[str, str] = {
    "node": "Node.js",
    "npm": "NPM",
    "javascript": "JavaScript",
    "python": "Python",
    "react": "React",
    "vue": "Vue.js",
    "angular": "Angular",
    "docker": "Docker",
    "kubernetes": "Kubernetes",
    "aws": "AWS",
    "azure": "Azure",
    "gcp": "Google Cloud",
    "postgres": "PostgreSQL",
    "mysql": "MySQL",
    "mongodb": "MongoDB",
    "redis": "Redis",
    "elasticsearch": "Elasticsearch",
    "github": "GitHub",
    "claude": "Claude AI",
}

_TECH_PATTERNS = {name: re.compile(rf"\b{re.escape(key)}\b", re.IGNORECASE) for key, name in TECHNOLOGIES.items()}

SHELL_KEYWORDS = ("git", "claude", "npm", "python", "pip")


def extract_technologies(text: str) -> set[str]:
    """Technology names mentioned in ``text``."""
    return {name for name, pattern in _TECH_PATTERNS.items() if pattern.search(text)}


def categorize_command(command: str) -> str:
    if "git" in command:
        return "git"
    if "npm" in command or "node" in command:
        return "node"
    if "python" in command or "pip" in command:
        return "python"
    if "claude" in command:
        return "claude"
    if "docker" in command:
        return "docker"
    if "test" in command:
        return "testing"
    return "other"


def categorize_documentation(file: str, content: str) -> str:
    if "README" in file:
        return "readme"
    if "guide" in file or "GUIDE" in file:
        return "guide"
    if "api" in file or "API" in file:
        return "api"
    if "ADR" in content or "Decision" in content:
        return "decision"
    return "general"


def extract_title(content: str) -> str:
    match = re.search(r"^#\s+(.+)$", content, re.MULTILINE)
    return match.group(1).strip() if match else "Untitled"


def extract_sections(content: str) -> list[str]:
    return [m.strip() for m in re.findall(r"^##\s+(.+)$", content, re.MULTILINE)]


def parse_session_content(content: str) -> Any:
    """JSON session logs are parsed; markdown is reduced to lines and headings."""
    if content.lstrip().startswith("{"):
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            return {"raw": content[:1000]}
    return {"lines": len(content.split("\n")), "headings": re.findall(r"^#+\s+.+$", content, re.MULTILINE)}


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


def merge_session_file_touches(
    summaries: Iterable[SessionSummary | dict[str, Any]],
    touches: dict[str, dict[str, Any]] | None = None,
) -> dict[str, dict[str, Any]]:
    """
    Fold session file activity into a file-touch table.

    Uses each summary's ``top_files`` when present, otherwise counts its
    file changes. Returns the (possibly new) touch table.
    """
    touches = touches if touches is not None else {}
    for summary in summaries:
        if isinstance(summary, SessionSummary):
            summary = summary.to_json_dict()

        counts: Counter[str] = Counter()
        top_files = summary.get("topFiles") or summary.get("top_files") or []
        if top_files:
            for entry in top_files:
                if isinstance(entry, dict) and entry.get("file"):
                    counts[entry["file"]] += int(entry.get("changes", 0))
        else:
            for change in summary.get("fileChanges") or summary.get("file_changes") or []:
                if isinstance(change, dict) and change.get("file"):
                    counts[change["file"]] += 1

        session_id = summary.get("sessionId") or summary.get("session_id")
        for file, changes in counts.items():
            entry = touches.setdefault(file, {"changes": 0, "additions": 0, "deletions": 0, "commits": []})
            entry["changes"] += changes
            entry.setdefault("sessions", [])
            if session_id:
                entry["sessions"].append(session_id)
    return touches


def _combine_project(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Shallow-combine two records of one project."""
    for key, value in source.items():
        if key not in target:
            target[key] = value
        elif key == "created":
            target[key] = min(filter(None, (target[key], value)), default=None)
        elif key == "lastUpdated":
            target[key] = max(filter(None, (target[key], value)), default=None)
        elif isinstance(value, bool):
            continue
        elif isinstance(value, (int, float)):
            target[key] += value
        elif isinstance(value, list):
            target[key] = target[key] + value
        elif isinstance(value, dict):
            merged = dict(target[key])
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, list) and isinstance(merged.get(sub_key), list):
                    merged[sub_key] = merged[sub_key] + sub_value
                else:
                    merged.setdefault(sub_key, sub_value)
            target[key] = merged


def empty_history() -> dict[str, Any]:
    return {
        "projects": {},
        "timeline": {},
        "developers": {},
        "technologies": Counter(),
        "commits": [],
        "fileTouches": {},
        "sessionLogs": [],
        "documentation": [],
        "commands": [],
        "sources": {},
        "insights": {},
    }


def merge_history(target: dict[str, Any], source: dict[str, Any]) -> None:
    """
    Additively merge a partial history into ``target``.

    Timelines are date-keyed list unions, technology tallies are counters,
    developers add commit counts and project records are shallow-combined.
    """
    for name, project in source.get("projects", {}).items():
        if name in target["projects"]:
            _combine_project(target["projects"][name], project)
        else:
            target["projects"][name] = dict(project)

    for day, events in source.get("timeline", {}).items():
        target["timeline"].setdefault(day, []).extend(events if isinstance(events, list) else [events])

    for email, developer in source.get("developers", {}).items():
        existing = target["developers"].get(email)
        if existing is None:
            target["developers"][email] = dict(developer)
        else:
            existing["commits"] = existing.get("commits", 0) + developer.get("commits", 0)
            existing["projects"] = sorted(set(existing.get("projects", [])) | set(developer.get("projects", [])))

    target["technologies"].update(source.get("technologies", {}))

    for file, stats in source.get("fileTouches", {}).items():
        entry = target["fileTouches"].setdefault(file, {"changes": 0, "additions": 0, "deletions": 0, "commits": []})
        entry["changes"] += stats.get("changes", 0)
        entry["additions"] += stats.get("additions", 0)
        entry["deletions"] += stats.get("deletions", 0)
        entry["commits"] = entry["commits"] + stats.get("commits", [])

    for key in ("commits", "sessionLogs", "documentation", "commands"):
        target[key].extend(source.get(key, []))


def calculate_velocity(timeline: dict[str, list[Any]]) -> str:
    dates = sorted(timeline)
    if len(dates) < 2:
        return "insufficient data"

    recent = dates[-30:]
    total = sum(len(timeline[d]) if isinstance(timeline[d], list) else 1 for d in recent)
    average = total / len(recent)

    if average > 10:
        return "high"
    if average > 5:
        return "medium"
    if average > 1:
        return "low"
    return "minimal"


def calculate_collaboration(projects: dict[str, dict[str, Any]]) -> str:
    counts = [len(p["contributors"]) for p in projects.values() if p.get("contributors") is not None]
    if not counts:
        return "none"

    average = sum(counts) / len(counts)
    if average > 5:
        return "high"
    if average > 2:
        return "medium"
    return "low"


def generate_insights(history: dict[str, Any]) -> dict[str, Any]:
    projects = history["projects"]
    developers = history["developers"]
    technologies: Counter[str] = Counter(history["technologies"])

    most_active_project = max(projects.items(), key=lambda item: item[1].get("commits", 0), default=(None, {}))
    most_active_developer = max(developers.values(), key=lambda d: d.get("commits", 0), default=None)

    return {
        "summary": {
            "totalProjects": len(projects),
            "totalDevelopers": len(developers),
            "totalCommits": sum(p.get("commits", 0) for p in projects.values()),
            "technologies": len(technologies),
        },
        "trends": {
            "mostActiveProject": most_active_project[0] if most_active_project[1].get("commits") else None,
            "mostActiveDeveloper": (
                (most_active_developer.get("name") or most_active_developer.get("email"))
                if most_active_developer and most_active_developer.get("commits")
                else None
            ),
            "popularTechnologies": [name for name, _ in technologies.most_common(5)],
        },
        "patterns": {
            "developmentVelocity": calculate_velocity(history["timeline"]),
            "collaborationLevel": calculate_collaboration(projects),
        },
        "attributionConfidence": CONFIDENCE,
    }


class HistoryAggregator:
    """
    Runs every history source and merges the results.

    Example:
        aggregator = HistoryAggregator(HistoryConfig(repo_path="."))
        history = aggregator.recover_history(save=True)
        print(history["insights"]["trends"])
    """

    def __init__(
        self,
        config: HistoryConfig | None = None,
        miner: GitLogMiner | None = None,
        serializer: BoundedSerializer | None = None,
        base_dir: Path | str | None = None,
    ):
        self.config = config or HistoryConfig()
        self.base_dir = Path(base_dir or self.config.repo_path).expanduser()
        self.attributor = ProjectAttributor(self.config.project_keywords, self.config.default_project)
        self.miner = miner or GitLogMiner(
            self.config.repo_path, attributor=self.attributor, timeout=self.config.git_timeout
        )
        self.serializer = serializer or BoundedSerializer()

    def sources(self) -> list[tuple[str, Any]]:
        return [
            ("git", self.recover_from_git),
            ("files", self.recover_from_session_logs),
            ("documentation", self.recover_from_documentation),
            ("logs", self.recover_from_shell_history),
        ]

    def recover_history(self, days: int | None = None, save: bool = False) -> dict[str, Any]:
        """
        Run all sources, merge, and compute insights.

        Args:
            days: Git window in days (default: config.days)
            save: Write ``history-YYYY-MM-DD.json`` to the archive dir

        Returns:
            JSON-compatible history dict
        """
        logger.info("Starting comprehensive history recovery...")
        history = empty_history()

        for name, source in self.sources():
            try:
                partial = source(days) if name == "git" else source()
            except Exception as e:
                logger.warning(f"History source '{name}' failed, skipping: {e}")
                history["sources"][name] = {"status": "failed", "error": str(e)}
                continue
            merge_history(history, partial)
            history["sources"][name] = {"status": "ok"}

        history["timeline"] = dict(sorted(history["timeline"].items()))
        history["insights"] = generate_insights(history)
        history["topFiles"] = rank_files(history["fileTouches"])
        history["technologies"] = dict(history["technologies"].most_common())

        if save:
            history["savedTo"] = str(self.save_history(history)) if self.config.archive_dir else None

        logger.info("History recovery complete")
        return history

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def recover_from_git(self, days: int | None = None) -> dict[str, Any]:
        logger.info("Recovering from Git history...")
        analysis = self.miner.analyze_history(days or self.config.days)
        project_history = self.miner.recover_project_history()

        partial = empty_history()
        for name, project in project_history.items():
            timeline: dict[str, list[dict[str, Any]]] = {}
            for commit in project["commits"]:
                day, _, time_part = commit["date"].partition("T")
                timeline.setdefault(day, []).append(
                    {"time": time_part, "message": commit["message"], "hash": commit["hash"]}
                )
                partial["technologies"].update(extract_technologies(commit["message"]))

            partial["projects"][name] = {
                "name": name,
                "created": project["firstCommit"],
                "lastUpdated": project["lastCommit"],
                "commits": len(project["commits"]),
                "contributors": project["contributors"],
                "milestones": project["milestones"],
                "timeline": timeline,
            }

        for commit in analysis.commits:
            partial["timeline"].setdefault(commit.day, []).append(
                {"source": "git", "hash": commit.hash, "message": commit.message, "category": commit.category}
            )
            event = commit.to_event()
            event["project"] = self.attributor.attribute(commit.message).project
            partial["commits"].append(event)

        for author in analysis.authors:
            partial["developers"][author["email"]] = {
                "name": author["name"],
                "email": author["email"],
                "commits": author["commits"],
                "projects": sorted(
                    name for name, project in project_history.items() if author["email"] in project["contributors"]
                ),
            }

        partial["fileTouches"] = collect_file_touches(analysis.commits)
        return partial

    def recover_from_session_logs(self) -> dict[str, Any]:
        logger.info("Recovering from existing files...")
        partial = empty_history()
        for relative in self.config.session_log_dirs:
            directory = self.base_dir / relative
            if not directory.is_dir():
                continue
            for path in sorted(directory.iterdir()):
                if not path.is_file() or path.suffix not in (".json", ".md"):
                    continue
                timestamp = _mtime_iso(path)
                partial["sessionLogs"].append(
                    {
                        "file": path.name,
                        "path": relative,
                        "content": parse_session_content(path.read_text(encoding="utf-8", errors="replace")),
                        "timestamp": timestamp,
                    }
                )
                partial["timeline"].setdefault(timestamp[:10], []).append(
                    {"source": "session_log", "file": f"{relative}/{path.name}"}
                )

        # Recorded session files also count toward file touches.
        recorded = [
            log["content"]
            for log in partial["sessionLogs"]
            if isinstance(log["content"], dict) and "sessionId" in log["content"]
        ]
        merge_session_file_touches(recorded, partial["fileTouches"])
        return partial

    def _documentation_files(self) -> list[Path]:
        files: list[Path] = []
        for relative in self.config.doc_paths:
            target = self.base_dir / relative
            if target.is_dir():
                files.extend(
                    sorted(
                        p
                        for p in target.rglob("*.md")
                        if p.is_file() and not any(part.startswith(".") for part in p.relative_to(target).parts)
                    )
                )
            elif target.is_file():
                files.append(target)
        return files

    def recover_from_documentation(self) -> dict[str, Any]:
        logger.info("Recovering from documentation...")
        partial = empty_history()
        for path in self._documentation_files():
            content = path.read_text(encoding="utf-8", errors="replace")
            relative = str(path.relative_to(self.base_dir)) if path.is_relative_to(self.base_dir) else str(path)
            timestamp = _mtime_iso(path)
            partial["documentation"].append(
                {
                    "file": relative,
                    "category": categorize_documentation(relative, content),
                    "title": extract_title(content),
                    "sections": extract_sections(content),
                    "timestamp": timestamp,
                }
            )
            partial["technologies"].update(extract_technologies(content))
            partial["timeline"].setdefault(timestamp[:10], []).append({"source": "documentation", "file": relative})
        return partial

    def recover_from_shell_history(self) -> dict[str, Any]:
        logger.info("Recovering from shell history...")
        partial = empty_history()
        history_path = Path(self.config.shell_history_path).expanduser()
        lines = history_path.read_text(encoding="utf-8", errors="replace").split("\n")
        for line in lines:
            command = line.strip()
            if command and any(keyword in command for keyword in SHELL_KEYWORDS):
                partial["commands"].append({"command": command, "category": categorize_command(command)})
        return partial

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_history(self, history: dict[str, Any]) -> Path | None:
        """Write ``history-YYYY-MM-DD.json`` through the bounded serializer."""
        archive_dir = Path(self.config.archive_dir).expanduser()
        target = archive_dir / f"history-{datetime.now().strftime('%Y-%m-%d')}.json"
        encoded = self.serializer.safe_stringify(history, indent=2)
        if self.serializer.last_error is not None:
            logger.error(f"History not saved, serialization failed: {self.serializer.last_error}")
            return None
        try:
            atomic_write_text(target, encoded)
        except OSError as e:
            logger.error(f"Failed to save history to {target}: {e}")
            return None
        logger.info(f"History saved to {target}")
        return target


__all__ = [
    "HistoryAggregator",
    "TECHNOLOGIES",
    "extract_technologies",
    "categorize_command",
    "categorize_documentation",
    "extract_title",
    "extract_sections",
    "parse_session_content",
    "merge_session_file_touches",
    "merge_history",
    "empty_history",
    "calculate_velocity",
    "calculate_collaboration",
    "generate_insights",
]
