"""History mining: git log analysis, commit watching and aggregation."""

from .aggregator import HistoryAggregator, merge_session_file_touches
from .attribution import CONFIDENCE, Attribution, ProjectAttributor
from .git_log import (
    GitCommandError,
    GitLogMiner,
    HistoryAnalysis,
    MinedCommit,
    classify_commit,
    current_streak,
    longest_streak,
    parse_git_log,
    rank_files,
)
from .git_watcher import COMMIT_DETECTED, GitWatcher

__all__ = [
    "HistoryAggregator",
    "merge_session_file_touches",
    "CONFIDENCE",
    "Attribution",
    "ProjectAttributor",
    "GitCommandError",
    "GitLogMiner",
    "HistoryAnalysis",
    "MinedCommit",
    "classify_commit",
    "current_streak",
    "longest_streak",
    "parse_git_log",
    "rank_files",
    "COMMIT_DETECTED",
    "GitWatcher",
]
