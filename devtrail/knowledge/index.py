"""
KnowledgeIndex - SQLite store and full-text search over finalized sessions.

Implements:
- Relational tables for sessions, activities, commits, files, decisions,
  problems and solutions
- A ``search_index`` document table mirrored into an FTS5 table
- Hybrid search: FTS (bm25) and SQL LIKE strategies run concurrently

The FTS table is a periodically rebuilt projection of ``search_index``.
Documents become full-text searchable after the next rebuild; the SQL
strategy sees them as soon as they are written. Opening an index whose
projection has unprojected upserts rebuilds it first.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
from collections.abc import Iterable, Mapping
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from ..config import KnowledgeConfig, devtrail_home
from ..session_schema import (
    CommitRecord,
    KnowledgeEntry,
    SessionSnapshot,
    SessionSummary,
    content_text,
    describe_activity,
    now_iso,
)
from ..storage import atomic_write_text

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    title TEXT,
    start_time TEXT,
    end_time TEXT,
    duration INTEGER,
    activities INTEGER,
    commits INTEGER,
    files_changed INTEGER,
    summary TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    type TEXT,
    timestamp TEXT,
    details TEXT
);

CREATE TABLE IF NOT EXISTS commits (
    hash TEXT PRIMARY KEY,
    session_id TEXT,
    message TEXT,
    author TEXT,
    email TEXT,
    date TEXT,
    files_changed INTEGER,
    additions INTEGER,
    deletions INTEGER,
    project TEXT
);

CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    path TEXT,
    action TEXT,
    changes INTEGER DEFAULT 1,
    timestamp TEXT
);

CREATE TABLE IF NOT EXISTS decisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    description TEXT,
    category TEXT,
    reasoning TEXT,
    impact TEXT,
    timestamp TEXT
);

CREATE TABLE IF NOT EXISTS problems (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    problem_key TEXT,
    description TEXT,
    category TEXT,
    severity TEXT,
    solution_id INTEGER,
    timestamp TEXT
);

CREATE TABLE IF NOT EXISTS solutions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    problem_id INTEGER,
    description TEXT,
    implementation TEXT,
    effectiveness TEXT,
    reusable INTEGER,
    timestamp TEXT
);

CREATE TABLE IF NOT EXISTS search_index (
    id TEXT PRIMARY KEY,
    doc_id TEXT,
    doc_type TEXT,
    title TEXT,
    content TEXT,
    tags TEXT,
    timestamp TEXT
);

CREATE VIRTUAL TABLE IF NOT EXISTS search_fts USING fts5(
    doc_id UNINDEXED,
    title,
    tags,
    content
);

CREATE TABLE IF NOT EXISTS search_meta (
    key TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_activities_session ON activities(session_id);
CREATE INDEX IF NOT EXISTS idx_commits_session ON commits(session_id);
CREATE INDEX IF NOT EXISTS idx_commits_author ON commits(author);
CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);
CREATE INDEX IF NOT EXISTS idx_files_session ON files(session_id);
CREATE INDEX IF NOT EXISTS idx_search_type ON search_index(doc_type);
"""

# Column weights for search_fts(doc_id, title, tags, content)
BM25_WEIGHTS = (0.0, 10.0, 5.0, 1.0)

SESSION_CHILD_TABLES = ("activities", "files", "decisions", "problems", "solutions")

# search_meta row counting upserts not yet projected into search_fts
PENDING_KEY = "pending_upserts"

COMMIT_TAG_PATTERNS = {
    "feature": re.compile(r"feat|add|implement", re.IGNORECASE),
    "bugfix": re.compile(r"fix|bug|issue", re.IGNORECASE),
    "refactor": re.compile(r"refactor|clean|improve", re.IGNORECASE),
    "test": re.compile(r"test|spec", re.IGNORECASE),
    "docs": re.compile(r"doc|readme", re.IGNORECASE),
    "performance": re.compile(r"perf|optimize", re.IGNORECASE),
    "security": re.compile(r"security|vulnerability", re.IGNORECASE),
}

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def extract_commit_tags(message: str) -> list[str]:
    return [tag for tag, pattern in COMMIT_TAG_PATTERNS.items() if pattern.search(message or "")]


def extract_session_tags(summary: SessionSummary) -> list[str]:
    """Tags for a session document: commit tags plus touched file extensions."""
    tags: list[str] = []
    for commit in summary.commits:
        tags.extend(extract_commit_tags(content_text(commit.message)))
    for change in summary.file_changes:
        suffix = Path(change.file).suffix
        if suffix:
            tags.append(suffix[1:].lower())
    return list(dict.fromkeys(tags))


def fts_query(query: str) -> str | None:
    """
    Turn free text into an FTS5 MATCH expression of quoted terms.

    Every token is quoted, so operators and punctuation in user input are
    treated as text. Returns None when the query has no searchable token.
    """
    tokens = _TOKEN_RE.findall(query or "")
    if not tokens:
        return None
    return " ".join(f'"{token}"' for token in tokens)


def _like(value: str) -> str:
    """Substring pattern for ``LIKE ? ESCAPE '\\'``; wildcards in ``value`` match literally."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _rows(cursor: sqlite3.Cursor) -> list[dict[str, Any]]:
    return [dict(row) for row in cursor.fetchall()]


def _get(item: Any, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = item.get(key) if isinstance(item, Mapping) else getattr(item, key, None)
        if value is not None:
            return value
    return default


class KnowledgeIndex:
    """
    Searchable store of sessions, commits and mined history.

    Each operation opens its own connection, so concurrent readers (the two
    search strategies) never share a cursor.

    Example:
        index = KnowledgeIndex(tmp_path / "knowledge.db")
        index.index_session(recorder.generate_summary())
        result = await index.search("payment")
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        rebuild_interval: int = 100,
        result_limit: int = 20,
        data_dir: Path | str | None = None,
        export_dir: Path | str | None = None,
    ):
        self.db_path = Path(db_path).expanduser() if db_path else devtrail_home() / "knowledge.db"
        self.data_dir = Path(data_dir).expanduser() if data_dir else self.db_path.parent
        self.export_dir = Path(export_dir).expanduser() if export_dir else self.data_dir / "exports"
        self.rebuild_interval = max(1, rebuild_interval)
        self.result_limit = result_limit
        self._pending_upserts = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
            stale = self._projection_is_stale(conn)
        if stale:
            logger.info("Search projection out of date, rebuilding")
            self.rebuild_search_index()
        logger.info(f"Knowledge index ready at {self.db_path}")

    @staticmethod
    def _projection_is_stale(conn: sqlite3.Connection) -> bool:
        """True when ``search_fts`` misses upserts made by an earlier process."""
        row = conn.execute("SELECT value FROM search_meta WHERE key = ?", (PENDING_KEY,)).fetchone()
        if row is not None and row[0] > 0:
            return True
        documents = conn.execute("SELECT COUNT(*) FROM search_index").fetchone()[0]
        projected = conn.execute("SELECT COUNT(*) FROM search_fts").fetchone()[0]
        return documents != projected

    @classmethod
    def from_config(cls, config: KnowledgeConfig) -> KnowledgeIndex:
        return cls(
            db_path=config.db_path,
            rebuild_interval=config.rebuild_interval,
            result_limit=config.result_limit,
            export_dir=config.export_dir,
        )

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_session(self, summary: SessionSummary | Mapping[str, Any]) -> str:
        """
        Ingest a finalized session summary.

        Re-indexing a session replaces its child rows; commits are upserted
        by hash and keep any existing owner.

        Returns:
            The session id
        """
        if not isinstance(summary, SessionSummary):
            summary = SessionSummary.model_validate(summary)
        session_id = summary.session_id

        with closing(self._connect()) as conn, conn:
            conn.execute(
                """INSERT OR REPLACE INTO sessions
                   (id, title, start_time, end_time, duration, activities, commits, files_changed, summary)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    session_id,
                    summary.title,
                    summary.start,
                    summary.end,
                    summary.duration,
                    summary.statistics.total_activities,
                    summary.statistics.git_commits,
                    summary.statistics.file_changes,
                    json.dumps(summary.key_achievements),
                ),
            )
            for table in SESSION_CHILD_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE session_id = ?", (session_id,))

            conn.executemany(
                "INSERT INTO activities (session_id, type, timestamp, details) VALUES (?, ?, ?, ?)",
                [
                    (session_id, str(entry.type), entry.timestamp, json.dumps(entry.details, default=str))
                    for entry in summary.activities
                ],
            )
            conn.executemany(
                "INSERT INTO files (session_id, path, action, changes, timestamp) VALUES (?, ?, ?, 1, ?)",
                [(session_id, change.file, change.action, change.timestamp) for change in summary.file_changes],
            )
            conn.executemany(
                """INSERT INTO decisions (session_id, description, category, reasoning, impact, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (
                        session_id,
                        content_text(d.description),
                        d.category,
                        content_text(d.reasoning) or None,
                        d.impact,
                        d.timestamp,
                    )
                    for d in summary.decisions
                ],
            )
            self._insert_problems_and_solutions(conn, summary)

            for commit in summary.commits:
                self._upsert_commit(conn, commit, session_id)

            self._upsert_document(
                conn,
                session_id,
                KnowledgeEntry(
                    doc_id=session_id,
                    doc_type="session",
                    title=f"Session {session_id}" + (f": {summary.title}" if summary.title else ""),
                    content=self._session_content(summary),
                    tags=extract_session_tags(summary),
                    timestamp=summary.start,
                ),
            )

        logger.info(f"Indexed session {session_id}")
        self._maybe_rebuild()
        return session_id

    @staticmethod
    def _session_content(summary: SessionSummary) -> str:
        parts: list[str] = []
        if summary.title:
            parts.append(summary.title)
        parts.extend(summary.key_achievements)
        parts.extend(content_text(d.description) for d in summary.decisions)
        parts.extend(content_text(p.description) for p in summary.problems)
        parts.extend(content_text(s.description) for s in summary.solutions)
        parts.extend(content_text(c.message) for c in summary.commits)
        return "\n".join(part for part in parts if part)

    def _insert_problems_and_solutions(self, conn: sqlite3.Connection, summary: SessionSummary) -> None:
        session_id = summary.session_id
        problem_rows: list[tuple[int, str, str]] = []
        for problem in summary.problems:
            description = content_text(problem.description)
            cursor = conn.execute(
                """INSERT INTO problems (session_id, problem_key, description, category, severity, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (session_id, problem.id, description, problem.category, problem.severity, problem.timestamp),
            )
            problem_rows.append((cursor.lastrowid, problem.id, description.lower()))

        for solution in summary.solutions:
            description = content_text(solution.description)
            linked = self._link_solution(solution.problem_id, description, problem_rows)
            cursor = conn.execute(
                """INSERT INTO solutions
                   (session_id, problem_id, description, implementation, effectiveness, reusable, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    session_id,
                    linked,
                    description,
                    content_text(solution.implementation),
                    solution.effectiveness,
                    int(solution.reusable),
                    solution.timestamp,
                ),
            )
            if linked is not None:
                conn.execute("UPDATE problems SET solution_id = ? WHERE id = ?", (cursor.lastrowid, linked))

    @staticmethod
    def _link_solution(
        problem_key: str | None,
        description: str,
        problem_rows: Iterable[tuple[int, str, str]],
    ) -> int | None:
        """Explicit problem id first, else description containment either way."""
        problem_rows = list(problem_rows)
        if problem_key:
            for row_id, key, _ in problem_rows:
                if key == problem_key:
                    return row_id
        text = (description or "").lower()
        if not text:
            return None
        for row_id, _, problem_text in problem_rows:
            if problem_text and (problem_text in text or text in problem_text):
                return row_id
        return None

    def index_commit(
        self,
        commit: CommitRecord | Mapping[str, Any],
        session_id: str | None = None,
    ) -> str | None:
        """
        Upsert one commit and its search document.

        Returns:
            The commit hash, or None when the commit has no hash
        """
        if _get(commit, "hash") is None:
            logger.warning("Skipping commit without hash")
            return None
        with closing(self._connect()) as conn, conn:
            commit_hash = self._upsert_commit(conn, commit, session_id)
        self._maybe_rebuild()
        return commit_hash

    def _upsert_commit(
        self,
        conn: sqlite3.Connection,
        commit: CommitRecord | Mapping[str, Any],
        session_id: str | None,
    ) -> str:
        commit_hash = str(_get(commit, "hash"))
        message = content_text(_get(commit, "message"))
        author = _get(commit, "author", default="")
        date = _get(commit, "date", "timestamp", default=now_iso())
        files = _get(commit, "files", default=[])
        stats = _get(commit, "stats", default={})
        additions = _get(stats, "additions", default=0)
        deletions = _get(stats, "deletions", default=0)

        conn.execute(
            """INSERT INTO commits
               (hash, session_id, message, author, email, date, files_changed, additions, deletions, project)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(hash) DO UPDATE SET
                   session_id = COALESCE(excluded.session_id, commits.session_id),
                   message = excluded.message,
                   author = excluded.author,
                   email = COALESCE(excluded.email, commits.email),
                   date = excluded.date,
                   files_changed = excluded.files_changed,
                   additions = excluded.additions,
                   deletions = excluded.deletions,
                   project = COALESCE(excluded.project, commits.project)""",
            (
                commit_hash,
                session_id,
                message,
                author,
                _get(commit, "email"),
                date,
                len(files),
                additions,
                deletions,
                _get(commit, "project"),
            ),
        )
        self._upsert_document(
            conn,
            f"commit-{commit_hash}",
            KnowledgeEntry(
                doc_id=commit_hash,
                doc_type="commit",
                title=message,
                content=f"{message} by {author} on {date}",
                tags=extract_commit_tags(message),
                timestamp=date,
            ),
        )
        return commit_hash

    def index_snapshot(self, snapshot: SessionSnapshot | Mapping[str, Any]) -> Path:
        """
        Store a snapshot under ``<data_dir>/snapshots/`` and index it.

        Returns:
            Path of the written snapshot file
        """
        if not isinstance(snapshot, SessionSnapshot):
            snapshot = SessionSnapshot.model_validate(snapshot)
        millis = int(datetime.now(timezone.utc).timestamp() * 1000)
        path = self.data_dir / "snapshots" / f"{snapshot.session_id}-{millis}.json"
        atomic_write_text(path, json.dumps(snapshot.to_json_dict(), indent=2, default=str))

        content = "\n".join(describe_activity(entry) for entry in snapshot.recent_activity)
        with closing(self._connect()) as conn, conn:
            self._upsert_document(
                conn,
                f"snapshot-{snapshot.session_id}-{snapshot.timestamp}",
                KnowledgeEntry(
                    doc_id=snapshot.session_id,
                    doc_type="snapshot",
                    title=f"Snapshot for {snapshot.session_id}",
                    content=content,
                    tags=["snapshot", snapshot.session_id],
                    timestamp=snapshot.timestamp,
                ),
            )
        logger.info(f"Snapshot stored: {path}")
        self._maybe_rebuild()
        return path

    def index_history(self, history: Mapping[str, Any]) -> int:
        """
        Index the commits of a recovered history.

        Returns:
            Number of commits indexed
        """
        count = 0
        with closing(self._connect()) as conn, conn:
            for commit in history.get("commits", []):
                if _get(commit, "hash") is None:
                    continue
                self._upsert_commit(conn, commit, None)
                count += 1
        logger.info(f"Indexed {count} commits from history")
        self._maybe_rebuild()
        return count

    def _upsert_document(self, conn: sqlite3.Connection, doc_key: str, entry: KnowledgeEntry) -> None:
        conn.execute(
            """INSERT OR REPLACE INTO search_index (id, doc_id, doc_type, title, content, tags, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                doc_key,
                entry.doc_id,
                entry.doc_type,
                entry.title,
                entry.content,
                json.dumps(entry.tags),
                entry.timestamp,
            ),
        )
        conn.execute(
            """INSERT INTO search_meta (key, value) VALUES (?, 1)
               ON CONFLICT(key) DO UPDATE SET value = value + 1""",
            (PENDING_KEY,),
        )
        self._pending_upserts += 1

    # ------------------------------------------------------------------
    # FTS projection
    # ------------------------------------------------------------------

    def _maybe_rebuild(self) -> None:
        if self._pending_upserts >= self.rebuild_interval:
            self.rebuild_search_index()

    def rebuild_search_index(self) -> int:
        """
        Rebuild ``search_fts`` from ``search_index`` in one transaction.

        Returns:
            Number of documents in the rebuilt table
        """
        with closing(self._connect()) as conn, conn:
            conn.execute("DELETE FROM search_fts")
            conn.execute(
                "INSERT INTO search_fts (doc_id, title, tags, content) "
                "SELECT id, title, tags, content FROM search_index"
            )
            conn.execute("DELETE FROM search_meta WHERE key = ?", (PENDING_KEY,))
            count = conn.execute("SELECT COUNT(*) FROM search_fts").fetchone()[0]
        self._pending_upserts = 0
        logger.info(f"Search index rebuilt with {count} documents")
        return count

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str, limit: int | None = None) -> dict[str, Any]:
        """
        Hybrid search over the full-text projection and the relational tables.

        Both strategies run concurrently, each on its own connection. Hits are
        tagged with ``origin`` and capped per source.

        Returns:
            ``{query, fulltext, sql, results, totalResults}``
        """
        limit = limit or self.result_limit
        fulltext, sql = await asyncio.gather(
            asyncio.to_thread(self.search_fulltext, query, limit),
            asyncio.to_thread(self.search_sql, query, limit),
        )
        results = fulltext + sql
        return {
            "query": query,
            "fulltext": fulltext,
            "sql": sql,
            "results": results,
            "totalResults": len(results),
        }

    def search_fulltext(self, query: str, limit: int | None = None) -> list[dict[str, Any]]:
        limit = limit or self.result_limit
        match = fts_query(query)
        if match is None:
            return []
        weights = ", ".join(str(w) for w in BM25_WEIGHTS)
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"""SELECT si.id, si.doc_id, si.doc_type, si.title, si.content, si.tags, si.timestamp,
                           bm25(search_fts, {weights}) AS score
                    FROM search_fts
                    JOIN search_index si ON si.id = search_fts.doc_id
                    WHERE search_fts MATCH ?
                    ORDER BY score
                    LIMIT ?""",
                (match, limit),
            ).fetchall()

        hits = [
            {
                "id": row["id"],
                "docId": row["doc_id"],
                "type": row["doc_type"],
                "title": row["title"],
                "content": row["content"],
                "tags": json.loads(row["tags"] or "[]"),
                "timestamp": row["timestamp"],
                "score": row["score"],
                "origin": "fulltext",
            }
            for row in rows
        ]
        return _dedupe(hits, limit)

    def search_sql(self, query: str, limit: int | None = None) -> list[dict[str, Any]]:
        limit = limit or self.result_limit
        pattern = _like(query)
        hits: list[dict[str, Any]] = []
        with closing(self._connect()) as conn:
            for row in conn.execute(
                """SELECT * FROM sessions
                   WHERE id LIKE ? ESCAPE '\\' OR title LIKE ? ESCAPE '\\' OR summary LIKE ? ESCAPE '\\'
                   ORDER BY start_time DESC LIMIT ?""",
                (pattern, pattern, pattern, limit),
            ):
                hits.append(
                    {
                        "id": row["id"],
                        "type": "session",
                        "title": row["title"] or f"Session {row['id']}",
                        "content": row["summary"],
                        "timestamp": row["start_time"],
                        "origin": "sql",
                    }
                )
            for row in conn.execute(
                "SELECT * FROM commits WHERE message LIKE ? ESCAPE '\\' ORDER BY date DESC LIMIT ?",
                (pattern, limit),
            ):
                hits.append(
                    {
                        "id": row["hash"],
                        "type": "commit",
                        "title": row["message"],
                        "content": f"{row['message']} by {row['author']} on {row['date']}",
                        "timestamp": row["date"],
                        "origin": "sql",
                    }
                )
            for row in conn.execute(
                """SELECT path, COUNT(*) AS changes, MAX(timestamp) AS last_modified
                   FROM files WHERE path LIKE ? ESCAPE '\\'
                   GROUP BY path ORDER BY changes DESC LIMIT ?""",
                (pattern, limit),
            ):
                hits.append(
                    {
                        "id": f"file:{row['path']}",
                        "type": "file",
                        "title": row["path"],
                        "content": f"{row['changes']} changes",
                        "timestamp": row["last_modified"],
                        "origin": "sql",
                    }
                )
            for row in conn.execute(
                """SELECT p.id, p.description, p.timestamp, s.description AS solution
                   FROM problems p LEFT JOIN solutions s ON s.problem_id = p.id
                   WHERE p.description LIKE ? ESCAPE '\\' OR s.description LIKE ? ESCAPE '\\'
                   ORDER BY p.timestamp DESC LIMIT ?""",
                (pattern, pattern, limit),
            ):
                hits.append(
                    {
                        "id": f"problem:{row['id']}",
                        "type": "problem",
                        "title": row["description"],
                        "content": row["solution"] or "",
                        "timestamp": row["timestamp"],
                        "origin": "sql",
                    }
                )
        return _dedupe(hits, limit)

    # ------------------------------------------------------------------
    # Typed queries
    # ------------------------------------------------------------------

    def get_session_history(self, days: int = 7, now: datetime | None = None) -> list[dict[str, Any]]:
        since = ((now or datetime.now(timezone.utc)) - timedelta(days=days)).isoformat()
        with closing(self._connect()) as conn:
            return _rows(
                conn.execute(
                    "SELECT * FROM sessions WHERE start_time >= ? ORDER BY start_time DESC",
                    (since,),
                )
            )

    def commits_by_author(self, author: str) -> list[dict[str, Any]]:
        pattern = _like(author)
        with closing(self._connect()) as conn:
            return _rows(
                conn.execute(
                    """SELECT * FROM commits
                       WHERE author LIKE ? ESCAPE '\\' OR email LIKE ? ESCAPE '\\'
                       ORDER BY date DESC LIMIT ?""",
                    (pattern, pattern, self.result_limit),
                )
            )

    def files_by_name(self, pattern: str) -> list[dict[str, Any]]:
        with closing(self._connect()) as conn:
            return _rows(
                conn.execute(
                    """SELECT path, COUNT(*) AS changes, COUNT(DISTINCT session_id) AS sessions,
                              MAX(timestamp) AS last_modified
                       FROM files WHERE path LIKE ? ESCAPE '\\'
                       GROUP BY path ORDER BY changes DESC, path LIMIT ?""",
                    (_like(pattern), self.result_limit),
                )
            )

    def problems_and_solutions(self, keyword: str) -> list[dict[str, Any]]:
        pattern = _like(keyword)
        with closing(self._connect()) as conn:
            return _rows(
                conn.execute(
                    """SELECT p.id, p.session_id, p.problem_key, p.description AS problem, p.category,
                              p.severity, s.description AS solution, s.effectiveness
                       FROM problems p LEFT JOIN solutions s ON s.problem_id = p.id
                       WHERE p.description LIKE ? ESCAPE '\\' OR p.category LIKE ? ESCAPE '\\'
                       ORDER BY p.timestamp DESC LIMIT ?""",
                    (pattern, pattern, self.result_limit),
                )
            )

    def get_project_timeline(self, project: str) -> dict[str, list[dict[str, Any]]]:
        """Commits attributed to or mentioning ``project``, grouped by day."""
        with closing(self._connect()) as conn:
            commits = _rows(
                conn.execute(
                    "SELECT * FROM commits WHERE project = ? OR message LIKE ? ESCAPE '\\' ORDER BY date ASC",
                    (project, _like(project)),
                )
            )
        timeline: dict[str, list[dict[str, Any]]] = {}
        for commit in commits:
            day = (commit["date"] or "")[:10]
            timeline.setdefault(day, []).append(commit)
        return timeline

    def get_related_work(self, session_id: str) -> list[dict[str, Any]]:
        """Other sessions that touched any file this session touched."""
        with closing(self._connect()) as conn:
            return _rows(
                conn.execute(
                    """SELECT s.*, COUNT(DISTINCT f2.path) AS shared_files
                       FROM files f1
                       JOIN files f2 ON f2.path = f1.path AND f2.session_id != f1.session_id
                       JOIN sessions s ON s.id = f2.session_id
                       WHERE f1.session_id = ?
                       GROUP BY s.id
                       ORDER BY shared_files DESC, s.start_time DESC""",
                    (session_id,),
                )
            )

    def dump_tables(self) -> dict[str, list[dict[str, Any]]]:
        """Full relational dump used by the exporter."""
        with closing(self._connect()) as conn:
            return {
                table: _rows(conn.execute(f"SELECT * FROM {table}"))
                for table in ("sessions", "commits", "files", "decisions", "problems", "solutions")
            }

    def export_knowledge(self, fmt: str = "json", output: Path | str | None = None) -> Path:
        from .export import export_knowledge

        return export_knowledge(self, fmt, output)


def _dedupe(hits: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique = []
    for hit in hits:
        if hit["id"] in seen:
            continue
        seen.add(hit["id"])
        unique.append(hit)
    return unique[:limit]


__all__ = [
    "KnowledgeIndex",
    "BM25_WEIGHTS",
    "extract_commit_tags",
    "extract_session_tags",
    "fts_query",
]
