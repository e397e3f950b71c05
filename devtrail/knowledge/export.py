"""Knowledge export and single-session Markdown reports."""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import ValidationError
from ..session_schema import SessionSummary, content_text
from ..storage import atomic_write_text

if TYPE_CHECKING:
    from .index import KnowledgeIndex

logger = logging.getLogger(__name__)

EXPORT_SUFFIXES = {"json": "json", "markdown": "md"}
DIGEST_LIMIT = 10


def render_knowledge_markdown(data: dict[str, list[dict[str, Any]]]) -> str:
    """Markdown digest: totals, recent sessions and recent decisions."""
    sessions = sorted(data["sessions"], key=lambda s: s.get("start_time") or "", reverse=True)
    decisions = sorted(data["decisions"], key=lambda d: d.get("timestamp") or "", reverse=True)

    lines = [
        "# Development Knowledge Base",
        "",
        "## Summary",
        f"- Total Sessions: {len(data['sessions'])}",
        f"- Total Commits: {len(data['commits'])}",
        f"- Files Modified: {len(data['files'])}",
        f"- Problems Recorded: {len(data['problems'])}",
        f"- Solutions Documented: {len(data['solutions'])}",
        "",
        "## Recent Sessions",
        "",
    ]
    for session in sessions[:DIGEST_LIMIT]:
        heading = session["id"] + (f" - {session['title']}" if session.get("title") else "")
        lines += [
            f"### {heading}",
            f"- Duration: {session['duration']}ms",
            f"- Activities: {session['activities']}",
            f"- Commits: {session['commits']}",
            f"- Summary: {session['summary']}",
            "",
        ]

    lines += ["## Key Decisions", ""]
    for decision in decisions[:DIGEST_LIMIT]:
        lines += [
            f"### {decision['description']}",
            f"- Category: {decision['category']}",
            f"- Reasoning: {decision['reasoning'] or 'n/a'}",
            f"- Impact: {decision['impact']}",
            "",
        ]
    return "\n".join(lines)


def export_knowledge(
    index: KnowledgeIndex,
    fmt: str = "json",
    output: Path | str | None = None,
) -> Path:
    """
    Write the knowledge base as a JSON dump or a Markdown digest.

    Args:
        index: Source index
        fmt: ``json`` or ``markdown``
        output: Target file (default: ``<export_dir>/knowledge-export-<date>.<ext>``)

    Returns:
        Path of the written export

    Raises:
        ValidationError: If ``fmt`` is not a known format
    """
    if fmt not in EXPORT_SUFFIXES:
        raise ValidationError(f"Unknown export format: {fmt}", format=fmt)

    data = index.dump_tables()
    if output is None:
        output = index.export_dir / f"knowledge-export-{date.today().isoformat()}.{EXPORT_SUFFIXES[fmt]}"
    path = Path(output).expanduser()

    if fmt == "json":
        text = json.dumps(data, indent=2, default=str)
    else:
        text = render_knowledge_markdown(data)
    atomic_write_text(path, text)

    logger.info(f"Knowledge exported to {path}")
    return path


def render_session_report(summary: SessionSummary) -> str:
    """Markdown report for one finalized session."""
    stats = summary.statistics
    title = summary.title or summary.session_id
    lines = [
        f"# Session Report: {title}",
        "",
        f"- Session: {summary.session_id}",
        f"- Started: {summary.start}",
        f"- Ended: {summary.end}",
        f"- Duration: {summary.duration_formatted}",
        "",
        "## Statistics",
        f"- Activities: {stats.total_activities}",
        f"- File changes: {stats.file_changes}",
        f"- Commits: {stats.git_commits}",
        f"- Commands: {stats.commands}",
        f"- Decisions: {stats.decisions}",
        f"- Problems solved: {stats.problems_solved}",
    ]

    if summary.key_achievements:
        lines += ["", "## Key Achievements"]
        lines += [f"- {achievement}" for achievement in summary.key_achievements]

    if summary.top_files:
        lines += ["", "## Most Modified Files"]
        lines += [f"- `{touch.file}` ({touch.changes} changes)" for touch in summary.top_files]

    if summary.commits:
        lines += ["", "## Commits"]
        lines += [f"- `{commit.hash[:8]}` {content_text(commit.message)}" for commit in summary.commits]

    if summary.decisions:
        lines += ["", "## Decisions"]
        for decision in summary.decisions:
            line = f"- **{decision.category}**: {content_text(decision.description)}"
            if decision.reasoning:
                line += f" ({content_text(decision.reasoning)})"
            lines.append(line)

    if summary.problems or summary.solutions:
        lines += ["", "## Problems and Solutions"]
        lines += [f"- [{p.severity}] {p.id}: {content_text(p.description)}" for p in summary.problems]
        for solution in summary.solutions:
            ref = f" -> {solution.problem_id}" if solution.problem_id else ""
            lines.append(f"- Solution{ref}: {content_text(solution.description)}")

    return "\n".join(lines) + "\n"


__all__ = ["export_knowledge", "render_knowledge_markdown", "render_session_report"]
