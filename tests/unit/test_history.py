"""
Unit tests for history mining: git log parsing, attribution, the commit
watcher and the multi-source aggregator.
"""

import asyncio
import json
import subprocess
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from devtrail.config import HistoryConfig
from devtrail.history import (
    COMMIT_DETECTED,
    GitCommandError,
    GitLogMiner,
    GitWatcher,
    HistoryAggregator,
    ProjectAttributor,
    classify_commit,
    current_streak,
    longest_streak,
    merge_session_file_touches,
    parse_git_log,
    rank_files,
)
from devtrail.history.aggregator import (
    calculate_velocity,
    categorize_command,
    extract_technologies,
    extract_title,
)

NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def history_commits(commit):
    """Three commits, newest first, as git log prints them."""
    return [
        commit(
            "c3",
            "fix crypto wallet rounding bug",
            "2026-10-19T15:00:00+00:00",
            author="Bo",
            email="bo@example.com",
            files=[("4", "1", "src/wallet.py")],
        ),
        commit(
            "c2",
            "feat: voter registration release v1.2",
            "2026-10-18T10:00:00+00:00",
            files=[("20", "0", "src/app.py"), ("-", "-", "logo.png")],
        ),
        commit(
            "c1",
            "add README docs",
            "2026-10-17T09:30:00+00:00",
            files=[("10", "2", "src/app.py"), ("5", "0", "README.md")],
        ),
    ]


class TestGitLogParsing:
    """Tests for parse_git_log and commit classification."""

    def test_parse(self, fake_git, history_commits):
        output = fake_git(history_commits)(["log"])
        commits = parse_git_log(output)

        assert [c.hash for c in commits] == ["c3", "c2", "c1"]
        second = commits[1]
        assert second.author == "Ada"
        assert [f.name for f in second.files] == ["src/app.py", "logo.png"]
        assert second.additions == 20
        assert second.deletions == 0
        assert second.day == "2026-10-18"

    def test_malformed_records_are_skipped(self):
        assert parse_git_log("\x1eonly-a-hash\n") == []
        assert parse_git_log("") == []

    @pytest.mark.parametrize(
        "message,category",
        [
            ("feat: checkout", "feature"),
            ("add docs for api", "feature"),
            ("Fix crash", "bugfix"),
            ("refactor router", "refactor"),
            ("update README", "docs"),
            ("more tests", "test"),
            ("bump version", "other"),
        ],
    )
    def test_classify_commit(self, message, category):
        assert classify_commit(message) == category


class TestStreaksAndRanking:
    """Tests for streak counting and file ranking."""

    def test_current_streak_counts_back_from_today(self):
        days = ["2026-10-17", "2026-10-18", "2026-10-19", "2026-10-15"]
        assert current_streak(days, today=date(2026, 10, 19)) == 3

    def test_current_streak_allows_empty_today(self):
        assert current_streak(["2026-10-18", "2026-10-17"], today=date(2026, 10, 19)) == 2

    def test_current_streak_broken(self):
        assert current_streak(["2026-10-16"], today=date(2026, 10, 19)) == 0
        assert current_streak([], today=date(2026, 10, 19)) == 0

    def test_longest_streak(self):
        days = ["2026-10-01", "2026-10-02", "2026-10-03", "2026-10-10", "2026-10-11", "2026-10-02"]
        assert longest_streak(days) == 3
        assert longest_streak([]) == 0

    def test_rank_files_ties_broken_by_name(self):
        touches = {"b.py": {"changes": 2}, "a.py": {"changes": 2}, "c.py": {"changes": 5}}
        assert [f["name"] for f in rank_files(touches)] == ["c.py", "a.py", "b.py"]
        assert len(rank_files(touches, limit=1)) == 1


class TestProjectAttributor:
    """Tests for keyword attribution."""

    def test_first_configured_keyword_wins(self):
        attribution = ProjectAttributor().attribute("voter app uses crypto signatures")
        assert attribution.project == "crypto-main"
        assert attribution.matched_keyword == "crypto"
        assert attribution.confidence == "low"

    def test_case_insensitive(self):
        assert ProjectAttributor().attribute("VISUAL diff tool").project == "visual-verification"

    def test_default_project(self):
        attribution = ProjectAttributor(default_project="misc").attribute("nothing relevant")
        assert attribution.project == "misc"
        assert attribution.matched_keyword is None

    def test_custom_keywords(self):
        attributor = ProjectAttributor({"shop": "storefront"}, default_project="core")
        assert attributor.attribute("shop checkout").project == "storefront"
        assert attributor.attribute("crypto").project == "core"


class TestGitLogMiner:
    """Tests for GitLogMiner over a fake runner."""

    def test_analyze_history(self, fake_git, history_commits):
        runner = fake_git(history_commits)
        analysis = GitLogMiner(runner=runner).analyze_history(days=7, now=NOW)

        assert analysis.total_commits == 3
        assert any(arg.startswith("--since=") for arg in runner.calls[0])
        assert analysis.authors[0]["email"] == "ada@example.com"
        assert analysis.authors[0]["commits"] == 2
        assert analysis.patterns["features"] == 2
        assert analysis.patterns["bugFixes"] == 1
        assert analysis.files[0]["name"] == "src/app.py"
        assert analysis.files[0]["changes"] == 2
        assert analysis.insights["currentStreak"] == 3
        assert analysis.insights["longestStreak"] == 3
        assert list(analysis.timeline) == ["2026-10-17", "2026-10-18", "2026-10-19"]
        assert analysis.to_dict()["totalCommits"] == 3

    def test_recover_project_history(self, fake_git, history_commits):
        projects = GitLogMiner(runner=fake_git(history_commits)).recover_project_history()

        assert set(projects) == {"crypto-main", "voter-app", "pachacuti"}
        voter = projects["voter-app"]
        assert voter["milestones"][0]["commit"] == "c2"
        assert voter["attributionConfidence"] == "low"
        assert projects["crypto-main"]["contributors"] == ["bo@example.com"]

    def test_latest_commit(self, fake_git, history_commits):
        runner = fake_git(history_commits)
        latest = GitLogMiner(runner=runner).latest_commit()
        assert latest.hash == "c3"
        assert "--max-count=1" in runner.calls[0]

    def test_latest_commit_empty_repo(self, fake_git):
        assert GitLogMiner(runner=fake_git([])).latest_commit() is None

    def test_to_event_matches_recorder_input(self, fake_git, history_commits):
        event = GitLogMiner(runner=fake_git(history_commits)).latest_commit().to_event()
        assert event["files"] == ["src/wallet.py"]
        assert event["stats"] == {"additions": 4, "deletions": 1}

    def test_hung_git_raises_command_error(self, monkeypatch, tmp_path: Path):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen.update(kwargs)
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)
        miner = GitLogMiner(tmp_path, timeout=2.5)

        with pytest.raises(GitCommandError, match="timed out after 2.5s") as excinfo:
            miner.latest_commit()
        assert seen["timeout"] == 2.5
        assert excinfo.value.to_dict()["timeout"] == 2.5

    def test_aggregator_passes_configured_timeout(self, monkeypatch, tmp_path: Path):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen.update(kwargs)
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)
        config = HistoryConfig(
            repo_path=str(tmp_path),
            git_timeout=1.0,
            shell_history_path=str(tmp_path / "absent"),
            archive_dir=str(tmp_path / "archive"),
        )
        history = HistoryAggregator(config).recover_history(days=1)
        assert seen["timeout"] == 1.0
        assert history["sources"]["git"]["status"] == "failed"
        assert "timed out" in history["sources"]["git"]["error"]


class TestGitWatcher:
    """Tests for commit detection."""

    def test_prime_does_not_emit(self, fake_git, history_commits):
        watcher = GitWatcher(GitLogMiner(runner=fake_git(history_commits)))
        seen = []
        watcher.on_commit_detected(seen.append)
        assert watcher.prime() == "c3"
        assert watcher.check_for_new_commits() == []
        assert seen == []

    def test_new_commits_reported_oldest_first_once(self, fake_git, commit, history_commits):
        runner = fake_git(history_commits)
        watcher = GitWatcher(GitLogMiner(runner=runner))
        seen = []
        watcher.on_commit_detected(seen.append)
        watcher.prime()

        runner.push(commit("c4", "second to last", "2026-10-19T16:00:00+00:00"))
        runner.push(commit("c5", "newest", "2026-10-19T17:00:00+00:00"))

        emitted = watcher.check_for_new_commits()
        assert [e["hash"] for e in emitted] == ["c4", "c5"]
        assert [e["hash"] for e in seen] == ["c4", "c5"]
        assert watcher.check_for_new_commits() == []
        assert watcher.last_hash == "c5"

    def test_first_poll_without_prime_reports_head(self, fake_git, history_commits):
        watcher = GitWatcher(GitLogMiner(runner=fake_git(history_commits)))
        assert [e["hash"] for e in watcher.check_for_new_commits()] == ["c3"]

    def test_rewritten_history_reports_head(self, fake_git, commit):
        runner = fake_git([commit("a1", "one", "2026-10-19T10:00:00+00:00")])
        watcher = GitWatcher(GitLogMiner(runner=runner))
        watcher.prime()
        runner.commits = [commit("b1", "rewritten", "2026-10-19T11:00:00+00:00")]
        assert [e["hash"] for e in watcher.check_for_new_commits()] == ["b1"]

    def test_listener_failure_is_contained(self, fake_git, commit):
        runner = fake_git([commit("a1", "one", "2026-10-19T10:00:00+00:00")])
        watcher = GitWatcher(GitLogMiner(runner=runner))
        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        watcher.on_commit_detected(broken)
        watcher.on_commit_detected(received.append)
        watcher.check_for_new_commits()
        assert [e["hash"] for e in received] == ["a1"]

    def test_git_failure_is_contained(self, fake_git):
        runner = fake_git([])
        runner.fail = True
        watcher = GitWatcher(GitLogMiner(runner=runner))
        assert watcher.prime() is None
        assert watcher.check_for_new_commits() == []

    @pytest.mark.asyncio
    async def test_polling_loop(self, fake_git, commit):
        runner = fake_git([commit("a1", "one", "2026-10-19T10:00:00+00:00")])
        watcher = GitWatcher(GitLogMiner(runner=runner), interval=0.01)
        seen = []
        watcher.on_commit_detected(seen.append)

        watcher.start()
        runner.push(commit("a2", "two", "2026-10-19T11:00:00+00:00"))
        for _ in range(100):
            if seen:
                break
            await asyncio.sleep(0.01)
        await watcher.stop()

        assert [e["hash"] for e in seen] == ["a2"]
        assert COMMIT_DETECTED == "commit_detected"


class TestAggregatorHelpers:
    """Tests for the aggregator's pure helpers."""

    def test_extract_technologies(self):
        assert extract_technologies("Deploy the python API with Docker and postgres") == {
            "Python",
            "Docker",
            "PostgreSQL",
        }

    def test_categorize_command(self):
        assert categorize_command("git status") == "git"
        assert categorize_command("pip install x") == "python"
        assert categorize_command("ls") == "other"

    def test_extract_title(self):
        assert extract_title("intro\n# Payments Guide\n## Setup") == "Payments Guide"
        assert extract_title("no heading") == "Untitled"

    def test_velocity(self):
        assert calculate_velocity({"2026-10-19": [1]}) == "insufficient data"
        assert calculate_velocity({"2026-10-18": [1] * 12, "2026-10-19": [1] * 12}) == "high"

    def test_session_touches_rank_above_less_touched(self):
        """Two sessions touching src/app.js 5 and 3 times rank it first."""
        summaries = [
            {"sessionId": "s1", "topFiles": [{"file": "src/app.js", "changes": 5}, {"file": "a.css", "changes": 4}]},
            {"sessionId": "s2", "fileChanges": [{"file": "src/app.js"}] * 3 + [{"file": "b.md"}]},
        ]
        touches = merge_session_file_touches(summaries)
        ranked = rank_files(touches)

        assert ranked[0]["name"] == "src/app.js"
        assert ranked[0]["changes"] == 8
        assert ranked[0]["sessions"] == ["s1", "s2"]
        assert [f["name"] for f in ranked[1:]] == ["a.css", "b.md"]


class TestHistoryAggregator:
    """Tests for multi-source history recovery."""

    @pytest.fixture
    def workspace(self, tmp_path: Path) -> Path:
        logs = tmp_path / "session-logs"
        logs.mkdir()
        (logs / "s1.json").write_text(
            json.dumps({"sessionId": "s1", "fileChanges": [{"file": "src/app.js"}] * 5})
        )
        (logs / "s2.json").write_text(
            json.dumps({"sessionId": "s2", "fileChanges": [{"file": "src/app.js"}] * 3})
        )
        (logs / "notes.md").write_text("# Notes\n## Day one\n")

        docs = tmp_path / "docs"
        docs.mkdir()
        (docs / "guide.md").write_text("# Setup Guide\nRuns on python and redis.\n## Install\n")
        (tmp_path / "README.md").write_text("# Project\nBuilt with react.\n")

        (tmp_path / "history").write_text("git status\nls -la\npython manage.py test\n\n")
        return tmp_path

    def make_aggregator(self, workspace: Path, runner) -> HistoryAggregator:
        config = HistoryConfig(
            repo_path=str(workspace),
            session_log_dirs=["session-logs", "missing-dir"],
            doc_paths=["docs", "README.md"],
            shell_history_path=str(workspace / "history"),
            archive_dir=str(workspace / "archive"),
        )
        return HistoryAggregator(config, miner=GitLogMiner(runner=runner))

    def test_recover_all_sources(self, workspace: Path, fake_git, history_commits):
        aggregator = self.make_aggregator(workspace, fake_git(history_commits))
        history = aggregator.recover_history(days=7)

        assert history["sources"] == {
            "git": {"status": "ok"},
            "files": {"status": "ok"},
            "documentation": {"status": "ok"},
            "logs": {"status": "ok"},
        }
        assert len(history["commits"]) == 3
        assert {c["project"] for c in history["commits"]} == {"crypto-main", "voter-app", "pachacuti"}
        assert len(history["sessionLogs"]) == 3
        assert [d["title"] for d in history["documentation"]] == ["Setup Guide", "Project"]
        assert [c["command"] for c in history["commands"]] == ["git status", "python manage.py test"]
        assert {"Python", "Redis", "React"} <= set(history["technologies"])
        assert history["developers"]["ada@example.com"]["commits"] == 2
        assert history["insights"]["summary"]["totalCommits"] == 3
        assert history["insights"]["attributionConfidence"] == "low"

    def test_top_files_combine_sessions_and_git(self, workspace: Path, fake_git, history_commits):
        history = self.make_aggregator(workspace, fake_git(history_commits)).recover_history()
        top = history["topFiles"]
        assert top[0]["name"] == "src/app.js"
        assert top[0]["changes"] == 8
        assert top[1]["name"] == "src/app.py"

    def test_failing_source_is_skipped(self, workspace: Path, fake_git):
        runner = fake_git([])
        runner.fail = True
        history = self.make_aggregator(workspace, runner).recover_history()

        assert history["sources"]["git"]["status"] == "failed"
        assert "not a git repository" in history["sources"]["git"]["error"]
        assert history["sources"]["documentation"] == {"status": "ok"}
        assert len(history["documentation"]) == 2

    def test_save_history(self, workspace: Path, fake_git, history_commits):
        history = self.make_aggregator(workspace, fake_git(history_commits)).recover_history(save=True)
        saved = Path(history["savedTo"])
        assert saved.parent == workspace / "archive"
        assert saved.name.startswith("history-")
        assert json.loads(saved.read_text())["insights"]["summary"]["totalCommits"] == 3
