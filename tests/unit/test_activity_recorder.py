"""
Unit tests for ActivityRecorder.

Covers event recording, payload sanitization, commit insight extraction,
the activity bound, summaries and the minimal-backup fallback.
"""

import json
from pathlib import Path

import pytest

from devtrail.capture import ActivityRecorder, format_duration, generate_session_id, sanitize_payload
from devtrail.config import CaptureConfig
from devtrail.integrity import validate_session_structure
from devtrail.serialization import BoundedSerializer, CircuitBreaker
from devtrail.session_schema import ActivityType, SessionRecord


@pytest.fixture
def recorder(tmp_path: Path) -> ActivityRecorder:
    return ActivityRecorder(session_dir=tmp_path, session_id="session-2026-10-19-test")


def load_session(recorder: ActivityRecorder) -> dict:
    return json.loads(recorder.session_path.read_text())


class TestSessionId:
    """Tests for time-derived session ids."""

    def test_format(self):
        session_id = generate_session_id()
        assert session_id.startswith("session-")
        prefix, suffix = session_id.rsplit("-", 1)
        assert len(prefix) == len("session-YYYY-MM-DD")
        assert suffix.isalnum()

    def test_ids_never_repeat(self):
        ids = {generate_session_id() for _ in range(500)}
        assert len(ids) == 500


class TestSanitize:
    """Tests for recursive payload sanitization."""

    def test_nested_strings_are_bounded(self):
        payload = {"outer": {"diff": "d" * 30}, "items": ["x" * 30, "ok"], "n": 3}
        result = sanitize_payload(payload, max_length=10)
        assert result["outer"]["diff"]["truncated"] is True
        assert result["outer"]["diff"]["context"] == "diff"
        assert result["items"][0]["originalLength"] == 30
        assert result["items"][1] == "ok"
        assert result["n"] == 3


class TestRecorderLifecycle:
    """Tests for initialization and persistence."""

    def test_initial_file_is_written(self, recorder: ActivityRecorder):
        data = load_session(recorder)
        assert data["sessionId"] == "session-2026-10-19-test"
        assert data["activities"] == []
        assert data["metadata"]["serializationSafe"] is True
        assert data["metadata"]["maxContentLength"] == 10240

    def test_generated_id_when_none_given(self, tmp_path: Path):
        recorder = ActivityRecorder(session_dir=tmp_path)
        assert recorder.session_id.startswith("session-")
        assert recorder.session_path.exists()

    def test_persisted_session_validates(self, recorder: ActivityRecorder):
        """Every persisted session passes structure validation and parses as a SessionRecord."""
        recorder.record_file_change({"path": "app.py", "action": "change", "content": "print(1)"})
        recorder.record_command({"command": "pytest", "exitCode": 0})
        data = load_session(recorder)

        validation = validate_session_structure(data)
        assert validation["isValid"] is True
        assert validation["errors"] == []
        record = SessionRecord.model_validate(data)
        assert record.metadata.activities_count == 2
        assert record.commands[0].exit_code == 0

    def test_no_temp_files_left_behind(self, recorder: ActivityRecorder):
        recorder.record_command({"command": "ls"})
        leftovers = [p for p in recorder.session_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []


class TestEventRecording:
    """Tests for the record_* operations."""

    def test_file_change_accepts_path_key(self, recorder: ActivityRecorder):
        record = recorder.record_file_change({"path": "src/app.py", "action": "add"})
        assert record is not None
        assert record.file == "src/app.py"
        assert recorder.session.activities[-1].type == ActivityType.FILE_CHANGE.value

    def test_file_change_without_path_is_ignored(self, recorder: ActivityRecorder):
        assert recorder.record_file_change({"action": "add"}) is None
        assert recorder.session.file_changes == []

    def test_large_diff_is_truncated(self, recorder: ActivityRecorder):
        """A 50,000 character diff is stored as a descriptor with a 1000 character prefix preview."""
        diff = "".join(chr(ord("a") + i % 26) for i in range(50_000))
        recorder.record_file_change({"file": "big.py", "action": "change", "diff": diff})

        stored = load_session(recorder)["fileChanges"][0]["diff"]
        assert stored["truncated"] is True
        assert stored["originalLength"] == 50_000
        assert stored["preview"] == diff[:1000]
        assert recorder.session.metadata.serialization_safe is True

    def test_oversized_text_fields_are_kept_as_descriptors(self, recorder: ActivityRecorder):
        """A 20,000 character field on any event kind is truncated, not rejected."""
        long_text = "fix: " + "x" * 20_000
        results = {
            "decision": recorder.record_decision({"description": long_text, "reasoning": long_text}),
            "problem": recorder.record_problem({"description": long_text}),
            "solution": recorder.record_solution({"description": long_text}),
            "commit": recorder.record_commit({"hash": "abc", "message": long_text}),
            "command": recorder.record_command({"command": long_text}),
        }
        assert all(record is not None for record in results.values())

        data = load_session(recorder)
        assert data["decisions"][0]["description"]["truncated"] is True
        assert data["decisions"][0]["reasoning"]["originalLength"] == len(long_text)
        assert data["problems"][0]["description"]["truncated"] is True
        assert data["solutions"][0]["description"]["preview"] == long_text[:1000]
        assert data["gitCommits"][0]["message"]["truncated"] is True
        assert data["commands"][0]["command"]["truncated"] is True

        # the truncated commit message still yields a bug problem from its preview
        assert [p.category for p in recorder.session.problems] == ["general", "bug"]
        assert recorder.session.problems[1].description["truncated"] is True
        assert data["metadata"]["activitiesCount"] == 6

    def test_commit_requires_hash(self, recorder: ActivityRecorder):
        assert recorder.record_commit({"message": "no hash"}) is None
        assert recorder.session.git_commits == []

    def test_commit_extracts_problem_and_decision(self, recorder: ActivityRecorder):
        record = recorder.record_commit(
            {
                "hash": "abc123",
                "message": "fix: add retry for payment error",
                "author": "dev",
                "files": [{"file": "pay.py"}, "api.py"],
                "additions": 10,
                "deletions": 2,
            }
        )
        assert record.files == ["pay.py", "api.py"]
        assert record.stats.additions == 10
        assert record.stats.deletions == 2

        assert len(recorder.session.problems) == 1
        problem = recorder.session.problems[0]
        assert problem.id == "prob-1"
        assert problem.category == "bug"
        assert problem.context == "Extracted from commit message"

        assert len(recorder.session.decisions) == 1
        assert recorder.session.decisions[0].category == "feature"
        assert recorder.session.decisions[0].reasoning == "New functionality added"

    def test_plain_commit_extracts_nothing(self, recorder: ActivityRecorder):
        recorder.record_commit({"hash": "def456", "message": "chore: bump version"})
        assert recorder.session.problems == []
        assert recorder.session.decisions == []

    def test_problem_ids_are_sequential(self, recorder: ActivityRecorder):
        first = recorder.record_problem({"description": "timeout"})
        second = recorder.record_problem({"description": "leak", "severity": "high"})
        assert (first.id, second.id) == ("prob-1", "prob-2")
        assert second.severity == "high"

    def test_solution_with_unknown_problem_is_kept(self, recorder: ActivityRecorder):
        record = recorder.record_solution({"description": "raise timeout", "problemId": "prob-99"})
        assert record.problem_id == "prob-99"
        assert len(recorder.session.solutions) == 1

    def test_git_activity_is_logged(self, recorder: ActivityRecorder):
        recorder.record_git_activity({"command": "status"})
        assert recorder.session.activities[-1].type == ActivityType.GIT_ACTIVITY.value

    def test_invalid_event_never_raises(self, recorder: ActivityRecorder):
        assert recorder.record_decision({"category": "missing description"}) is None
        assert recorder.record_command({"command": "ls", "exitCode": "not a number"}) is None


class TestActivityBound:
    """Tests for the max_activities memory bound."""

    def test_oldest_dropped_with_marker(self, tmp_path: Path):
        config = CaptureConfig(session_dir=str(tmp_path), max_activities=5)
        recorder = ActivityRecorder(config=config)
        for i in range(8):
            recorder.record_command({"command": f"cmd {i}"})

        activities = recorder.session.activities
        assert len(activities) == 5
        assert activities[0].type == ActivityType.SYSTEM_INFO.value
        assert activities[0].details["totalDropped"] == 4
        assert [a.details["command"] for a in activities[1:]] == ["cmd 4", "cmd 5", "cmd 6", "cmd 7"]
        assert recorder.session.metadata.dropped_activities == 4
        assert len(recorder.session.commands) == 8


class TestSummary:
    """Tests for snapshots, top files and summaries."""

    def test_top_files_ranked_by_count(self, recorder: ActivityRecorder):
        for name, times in (("a.py", 1), ("b.py", 3), ("c.py", 2)):
            for _ in range(times):
                recorder.record_file_change({"file": name, "action": "change"})

        top = recorder.top_files()
        assert [(t.file, t.changes) for t in top] == [("b.py", 3), ("c.py", 2), ("a.py", 1)]

    def test_zero_activity_summary(self, recorder: ActivityRecorder):
        summary = recorder.generate_summary()
        assert summary.statistics.total_activities == 0
        assert summary.top_files == []
        assert summary.key_achievements == []

    def test_summary_contents(self, tmp_path: Path):
        recorder = ActivityRecorder(session_dir=tmp_path, title="payment flow")
        recorder.record_file_change({"file": "pay.py", "action": "change"})
        recorder.record_commit({"hash": "h1", "message": "feat: payment flow"})
        recorder.record_commit({"hash": "h2", "message": "fix payment rounding bug"})
        recorder.record_solution({"description": "round half even"})

        summary = recorder.generate_summary()
        assert summary.title == "payment flow"
        assert summary.statistics.git_commits == 2
        assert summary.statistics.problems_solved == 1
        assert summary.key_achievements == ["Added 1 new features", "Fixed 1 bugs", "Modified 1 files"]
        assert len(summary.activities) == len(recorder.session.activities)

    def test_snapshot_keeps_recent_activity(self, recorder: ActivityRecorder):
        for i in range(15):
            recorder.record_command({"command": f"c{i}"})
        snapshot = recorder.create_snapshot()
        assert snapshot.commands == 15
        assert len(snapshot.recent_activity) == 10
        assert snapshot.recent_activity[-1].details["command"] == "c14"

    @pytest.mark.parametrize(
        "ms,expected",
        [(42_000, "42s"), (182_000, "3m 2s"), (3_900_000, "1h 5m"), (0, "0s")],
    )
    def test_format_duration(self, ms, expected):
        assert format_duration(ms) == expected


class TestBackupFallback:
    """Tests for the minimal backup written when the full write fails."""

    def test_open_breaker_writes_backup(self, tmp_path: Path):
        breaker = CircuitBreaker(threshold=1)
        breaker.record_failure()
        recorder = ActivityRecorder(
            session_dir=tmp_path,
            session_id="session-backup",
            serializer=BoundedSerializer(breaker=breaker),
            config=CaptureConfig(session_dir=str(tmp_path), backup_activity_count=2),
        )
        for i in range(4):
            recorder.record_command({"command": f"c{i}"})

        assert not recorder.session_path.exists()
        backup = json.loads(recorder.backup_path.read_text())
        assert backup["sessionId"] == "session-backup"
        assert backup["activitiesCount"] == 4
        assert backup["metadata"]["backup"] is True
        assert backup["metadata"]["serializationSafe"] is False
        assert [a["details"]["command"] for a in backup["activities"]] == ["c2", "c3"]
