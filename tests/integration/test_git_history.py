"""
Integration tests: mine and watch a real temporary git repository.

Skipped when git is not installed.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from devtrail.config import HistoryConfig
from devtrail.history import GitLogMiner, GitWatcher, HistoryAggregator
from devtrail.knowledge import KnowledgeIndex

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git not installed"),
]

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Ada",
    "GIT_AUTHOR_EMAIL": "ada@example.com",
    "GIT_COMMITTER_NAME": "Ada",
    "GIT_COMMITTER_EMAIL": "ada@example.com",
}


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        check=True,
        env={**os.environ, **GIT_ENV},
    )
    return result.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD").strip()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    git(root, "init", "-q")
    commit_file(root, "README.md", "# Demo\n", "docs: add readme")
    commit_file(root, "src/app.py", "print(1)\n", "feat: crypto wallet")
    commit_file(root, "src/app.py", "print(1)\nprint(2)\n", "fix rounding bug")
    return root


class TestRealRepository:
    """GitLogMiner and GitWatcher against real git output."""

    def test_analyze_history(self, repo: Path):
        analysis = GitLogMiner(repo).analyze_history(days=1)

        assert analysis.total_commits == 3
        assert analysis.authors[0]["email"] == "ada@example.com"
        assert analysis.files[0]["name"] == "src/app.py"
        assert analysis.files[0]["changes"] == 2
        assert analysis.patterns["bugFixes"] == 1
        assert analysis.insights["currentStreak"] == 1

    def test_project_attribution(self, repo: Path):
        projects = GitLogMiner(repo).recover_project_history()
        assert set(projects) == {"pachacuti", "crypto-main"}
        assert len(projects["pachacuti"]["commits"]) == 2

    def test_watcher_reports_new_commits_oldest_first(self, repo: Path):
        watcher = GitWatcher(GitLogMiner(repo))
        watcher.prime()

        first = commit_file(repo, "src/b.py", "b = 1\n", "add b")
        second = commit_file(repo, "src/c.py", "c = 1\n", "add c")

        emitted = watcher.check_for_new_commits()
        assert [e["hash"] for e in emitted] == [first, second]
        assert emitted[0]["files"] == ["src/b.py"]
        assert emitted[0]["stats"] == {"additions": 1, "deletions": 0}
        assert watcher.check_for_new_commits() == []

    def test_not_a_repository(self, tmp_path: Path):
        watcher = GitWatcher(GitLogMiner(tmp_path))
        assert watcher.prime() is None
        assert watcher.check_for_new_commits() == []


def test_history_into_knowledge_index(repo: Path, tmp_path: Path):
    """Recovered commits become searchable in the knowledge index."""
    config = HistoryConfig(
        repo_path=str(repo),
        shell_history_path=str(tmp_path / "absent"),
        archive_dir=str(tmp_path / "archive"),
    )
    history = HistoryAggregator(config).recover_history(days=1)
    assert history["sources"]["git"] == {"status": "ok"}

    index = KnowledgeIndex(tmp_path / "knowledge.db", rebuild_interval=1)
    assert index.index_history(history) == 3

    hits = index.search_fulltext("wallet")
    assert [hit["type"] for hit in hits] == ["commit"]
    assert index.get_project_timeline("crypto-main")
