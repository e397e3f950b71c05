"""
Git log mining.

Runs ``git log --numstat`` with a delimited pretty format and derives author,
category, file, timeline and streak statistics from the parsed commits.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from ..errors import DevtrailError
from .attribution import ProjectAttributor

logger = logging.getLogger(__name__)

RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
PRETTY_FORMAT = f"--pretty=format:{RECORD_SEP}%H{FIELD_SEP}%an{FIELD_SEP}%ae{FIELD_SEP}%aI{FIELD_SEP}%s"

MILESTONE_PATTERN = re.compile(r"release|v\d+\.\d+|milestone|launch", re.IGNORECASE)
FEATURE_INSIGHT_PATTERN = re.compile(r"feat", re.IGNORECASE)
CRITICAL_PATTERN = re.compile(r"critical|urgent|hotfix", re.IGNORECASE)

# Checked in order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("feature", ("feat", "add")),
    ("bugfix", ("fix", "bug")),
    ("refactor", ("refactor",)),
    ("docs", ("doc", "readme")),
    ("test", ("test",)),
)

CATEGORY_COUNT_KEYS = {
    "feature": "features",
    "bugfix": "bugFixes",
    "refactor": "refactoring",
    "docs": "documentation",
    "test": "tests",
    "other": "other",
}

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

GitRunner = Callable[[list[str]], str]

# Seconds before a git invocation is abandoned.
GIT_TIMEOUT = 30.0


class GitCommandError(DevtrailError):
    """A git invocation failed or git is unavailable."""

    type = "git"
    severity = "medium"


def subprocess_runner(repo_path: Path | str, timeout: float = GIT_TIMEOUT) -> GitRunner:
    """Runner that shells out to ``git -C <repo_path>``, bounded by ``timeout`` seconds."""

    def run(args: list[str]) -> str:
        try:
            completed = subprocess.run(
                ["git", "-C", str(repo_path), *args],
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise GitCommandError("git executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(f"git {' '.join(args[:2])} timed out after {timeout}s", timeout=timeout) from e
        except subprocess.CalledProcessError as e:
            raise GitCommandError(
                f"git {' '.join(args[:2])} failed: {e.stderr.strip()}", returncode=e.returncode
            ) from e
        return completed.stdout

    return run


def classify_commit(message: str) -> str:
    """Exactly one of feature, bugfix, refactor, docs, test, other."""
    lowered = message.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "other"


@dataclass
class FileStat:
    name: str
    additions: int = 0
    deletions: int = 0


@dataclass
class MinedCommit:
    """A commit parsed from ``git log``."""

    hash: str
    author: str
    email: str
    date: str
    message: str
    files: list[FileStat] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    @property
    def day(self) -> str:
        return self.date[:10]

    @property
    def category(self) -> str:
        return classify_commit(self.message)

    def to_event(self) -> dict[str, Any]:
        """Git-hook style event accepted by ActivityRecorder.record_commit."""
        return {
            "hash": self.hash,
            "message": self.message,
            "author": self.author,
            "email": self.email,
            "date": self.date,
            "files": [f.name for f in self.files],
            "stats": {"additions": self.additions, "deletions": self.deletions},
        }


def _parse_count(value: str) -> int:
    # Binary files report "-".
    return int(value) if value.isdigit() else 0


def parse_git_log(output: str) -> list[MinedCommit]:
    """Parse output produced with PRETTY_FORMAT and ``--numstat``."""
    commits = []
    for record in output.split(RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        header, *stat_lines = record.split("\n")
        parts = header.split(FIELD_SEP)
        if len(parts) < 5:
            logger.debug(f"Skipping malformed git log record: {header[:80]!r}")
            continue
        commit_hash, author, email, when, message = parts[:5]
        commit = MinedCommit(hash=commit_hash, author=author, email=email, date=when, message=message)
        for line in stat_lines:
            columns = line.split("\t")
            if len(columns) == 3:
                commit.files.append(
                    FileStat(name=columns[2], additions=_parse_count(columns[0]), deletions=_parse_count(columns[1]))
                )
        commits.append(commit)
    return commits


# ----------------------------------------------------------------------
# Aggregations
# ----------------------------------------------------------------------


def analyze_authors(commits: Iterable[MinedCommit]) -> list[dict[str, Any]]:
    authors: dict[str, dict[str, Any]] = {}
    for commit in commits:
        entry = authors.setdefault(
            commit.email,
            {"name": commit.author, "email": commit.email, "commits": 0, "lines": {"added": 0, "deleted": 0}},
        )
        entry["commits"] += 1
        entry["lines"]["added"] += commit.additions
        entry["lines"]["deleted"] += commit.deletions
    return sorted(authors.values(), key=lambda a: (-a["commits"], a["email"]))


def analyze_patterns(commits: Iterable[MinedCommit]) -> dict[str, int]:
    counts = {key: 0 for key in CATEGORY_COUNT_KEYS.values()}
    for commit in commits:
        counts[CATEGORY_COUNT_KEYS[commit.category]] += 1
    return counts


def collect_file_touches(commits: Iterable[MinedCommit]) -> dict[str, dict[str, Any]]:
    """Per-file touch counts with line totals and commit hashes."""
    touches: dict[str, dict[str, Any]] = {}
    for commit in commits:
        for stat in commit.files:
            entry = touches.setdefault(stat.name, {"changes": 0, "additions": 0, "deletions": 0, "commits": []})
            entry["changes"] += 1
            entry["additions"] += stat.additions
            entry["deletions"] += stat.deletions
            entry["commits"].append(commit.hash)
    return touches


def rank_files(touches: dict[str, dict[str, Any]], limit: int = 20) -> list[dict[str, Any]]:
    """Most-touched files first; ties broken by name."""
    ranked = sorted(touches.items(), key=lambda item: (-item[1].get("changes", 0), item[0]))
    return [{"name": name, **stats} for name, stats in ranked[:limit]]


def create_timeline(commits: Iterable[MinedCommit]) -> dict[str, dict[str, Any]]:
    timeline: dict[str, dict[str, Any]] = {}
    for commit in commits:
        day = timeline.setdefault(commit.day, {"commits": 0, "features": [], "fixes": [], "other": []})
        day["commits"] += 1
        category = commit.category
        if category == "feature":
            day["features"].append(commit.message)
        elif category == "bugfix":
            day["fixes"].append(commit.message)
        else:
            day["other"].append(commit.message)
    return dict(sorted(timeline.items()))


def _to_date(value: str | date) -> date:
    return value if isinstance(value, date) else date.fromisoformat(value[:10])


def current_streak(dates: Iterable[str | date], today: date | None = None) -> int:
    """
    Consecutive commit days ending today, or yesterday when today is empty.
    """
    days = {_to_date(d) for d in dates}
    if not days:
        return 0

    cursor = today or date.today()
    if cursor not in days:
        cursor -= timedelta(days=1)
        if cursor not in days:
            return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(dates: Iterable[str | date]) -> int:
    """Longest run of consecutive calendar days."""
    days = sorted({_to_date(d) for d in dates})
    if not days:
        return 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        if (current - previous).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1
    return longest


def extract_insights(commits: list[MinedCommit], today: date | None = None) -> dict[str, Any]:
    day_activity: Counter[str] = Counter()
    hour_activity: Counter[int] = Counter()

    for commit in commits:
        try:
            when = datetime.fromisoformat(commit.date)
        except ValueError:
            continue
        day_activity[WEEKDAYS[when.weekday()]] += 1
        hour_activity[when.hour] += 1

    dates = [c.day for c in commits]
    active_days = len(set(dates))

    return {
        "mostProductiveDay": day_activity.most_common(1)[0][0] if day_activity else None,
        "mostProductiveHour": hour_activity.most_common(1)[0][0] if hour_activity else None,
        "dayHistogram": {day: day_activity[day] for day in WEEKDAYS if day_activity[day]},
        "hourHistogram": {str(hour): hour_activity[hour] for hour in sorted(hour_activity)},
        "averageCommitsPerDay": round(len(commits) / active_days, 2) if active_days else 0,
        "currentStreak": current_streak(dates, today=today),
        "longestStreak": longest_streak(dates),
        "topFeatures": [c.message for c in commits if FEATURE_INSIGHT_PATTERN.search(c.message)][:5],
        "criticalFixes": [c.message for c in commits if CRITICAL_PATTERN.search(c.message)][:5],
    }


@dataclass
class HistoryAnalysis:
    """Result of GitLogMiner.analyze_history."""

    total_commits: int
    time_range: dict[str, str]
    authors: list[dict[str, Any]]
    patterns: dict[str, int]
    files: list[dict[str, Any]]
    timeline: dict[str, dict[str, Any]]
    insights: dict[str, Any]
    commits: list[MinedCommit] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCommits": self.total_commits,
            "timeRange": self.time_range,
            "authors": self.authors,
            "patterns": self.patterns,
            "files": self.files,
            "timeline": self.timeline,
            "insights": self.insights,
        }


class GitLogMiner:
    """
    Mines one repository's history through an injectable git runner.

    Args:
        repo_path: Repository to mine
        runner: Callable taking git arguments and returning stdout
            (default: subprocess git)
        attributor: Project attribution for recover_project_history
        timeout: Seconds allowed per git invocation by the default runner
    """

    def __init__(
        self,
        repo_path: Path | str = ".",
        runner: GitRunner | None = None,
        attributor: ProjectAttributor | None = None,
        timeout: float = GIT_TIMEOUT,
    ):
        self.repo_path = Path(repo_path)
        self.runner = runner or subprocess_runner(self.repo_path, timeout=timeout)
        self.attributor = attributor or ProjectAttributor()

    def log_commits(
        self,
        since: datetime | None = None,
        max_count: int | None = None,
        revision: str | None = None,
    ) -> list[MinedCommit]:
        args = ["log", PRETTY_FORMAT, "--numstat"]
        if since is not None:
            args.append(f"--since={since.replace(microsecond=0).isoformat()}")
        if max_count is not None:
            args.append(f"--max-count={max_count}")
        if revision:
            args.append(revision)
        return parse_git_log(self.runner(args))

    def latest_commit(self) -> MinedCommit | None:
        commits = self.log_commits(max_count=1)
        return commits[0] if commits else None

    def analyze_history(
        self,
        days: int = 30,
        now: datetime | None = None,
        file_limit: int = 20,
    ) -> HistoryAnalysis:
        """
        Analyze the last ``days`` days of history.

        Raises:
            GitCommandError: If git fails
        """
        logger.info(f"Analyzing git history for last {days} days...")
        end = now or datetime.now().astimezone()
        start = end - timedelta(days=days)
        commits = self.log_commits(since=start)

        return HistoryAnalysis(
            total_commits=len(commits),
            time_range={"start": start.isoformat(), "end": end.isoformat()},
            authors=analyze_authors(commits),
            patterns=analyze_patterns(commits),
            files=rank_files(collect_file_touches(commits), limit=file_limit),
            timeline=create_timeline(commits),
            insights=extract_insights(commits, today=end.date()),
            commits=commits,
        )

    def recover_project_history(self) -> dict[str, dict[str, Any]]:
        """Group the full log by attributed project, oldest commit first."""
        logger.info("Recovering complete project history...")
        commits = sorted(self.log_commits(), key=lambda c: c.date)
        projects: dict[str, dict[str, Any]] = {}

        for commit in commits:
            attribution = self.attributor.attribute(commit.message)
            project = projects.setdefault(
                attribution.project,
                {
                    "name": attribution.project,
                    "firstCommit": commit.date,
                    "lastCommit": commit.date,
                    "commits": [],
                    "milestones": [],
                    "contributors": [],
                    "attributionConfidence": attribution.confidence,
                },
            )
            project["commits"].append(
                {"hash": commit.hash, "message": commit.message, "date": commit.date, "author": commit.author}
            )
            project["lastCommit"] = commit.date
            if commit.email not in project["contributors"]:
                project["contributors"].append(commit.email)
            if MILESTONE_PATTERN.search(commit.message):
                project["milestones"].append(
                    {"date": commit.date, "description": commit.message, "commit": commit.hash}
                )

        return projects


__all__ = [
    "GitCommandError",
    "GitLogMiner",
    "GitRunner",
    "HistoryAnalysis",
    "MinedCommit",
    "FileStat",
    "PRETTY_FORMAT",
    "GIT_TIMEOUT",
    "subprocess_runner",
    "classify_commit",
    "parse_git_log",
    "analyze_authors",
    "analyze_patterns",
    "collect_file_touches",
    "rank_files",
    "create_timeline",
    "current_streak",
    "longest_streak",
    "extract_insights",
]
