"""
devtrail-search: query the knowledge index.

Usage:
    devtrail-search payment flow
    devtrail-search sessions --days 7
    devtrail-search commits --author alice
    devtrail-search files --name router
    devtrail-search problems --keyword timeout
    devtrail-search timeline --project pachacuti
    devtrail-search related --session session-2026-10-19-abc123
    devtrail-search export --format markdown --output kb.md
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from ..knowledge import KnowledgeIndex
from .common import EXIT_OK, add_common_arguments, load_config, print_json, run

COMMANDS = ("query", "sessions", "commits", "files", "problems", "timeline", "related", "export")

# Global options that consume the following token
_VALUE_OPTIONS = {"--config", "--log-level", "--db"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devtrail-search",
        description="Search sessions, commits, files and problems in the knowledge index",
    )
    add_common_arguments(parser)
    parser.add_argument("--db", help="Knowledge database path")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")

    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Free-text hybrid search (default)")
    query.add_argument("terms", nargs="+")
    query.add_argument("--limit", type=int, help="Results per strategy")

    sessions = commands.add_parser("sessions", help="Sessions started in the last N days")
    sessions.add_argument("--days", type=int, default=7)

    commits = commands.add_parser("commits", help="Commits by author")
    commits.add_argument("--author", required=True)

    files = commands.add_parser("files", help="Files by name pattern")
    files.add_argument("--name", required=True)

    problems = commands.add_parser("problems", help="Problems and their solutions")
    problems.add_argument("--keyword", required=True)

    timeline = commands.add_parser("timeline", help="Commits of a project grouped by day")
    timeline.add_argument("--project", required=True)

    related = commands.add_parser("related", help="Sessions sharing files with a session")
    related.add_argument("--session", required=True)

    export = commands.add_parser("export", help="Export the knowledge base")
    export.add_argument("--format", choices=("json", "markdown"), default="json")
    export.add_argument("--output", help="Output file")
    return parser


def with_default_command(argv: list[str]) -> list[str]:
    """Insert ``query`` before the first positional token when no command is named."""
    i = 0
    while i < len(argv):
        token = argv[i]
        if token in _VALUE_OPTIONS:
            i += 2
        elif token.startswith("-"):
            i += 1
        else:
            break
    if i < len(argv) and argv[i] in COMMANDS:
        return argv
    return argv[:i] + ["query"] + argv[i:]


def _print_search(result: dict[str, Any]) -> None:
    print(f"Found {result['totalResults']} results for '{result['query']}'")
    for hit in result["results"]:
        print(f"  [{hit['origin']}] {hit['type']}: {hit['title']}")


def _print_rows(rows: list[dict[str, Any]]) -> None:
    if not rows:
        print("No results")
    for row in rows:
        print("  " + ", ".join(f"{key}={value}" for key, value in row.items()))


def handle(args: argparse.Namespace) -> int:
    config = load_config(args)
    if args.db:
        config.knowledge.db_path = args.db
    index = KnowledgeIndex.from_config(config.knowledge)

    if args.command == "query":
        result = asyncio.run(index.search(" ".join(args.terms), args.limit))
        if args.json:
            print_json(result)
        else:
            _print_search(result)
        return EXIT_OK

    if args.command == "export":
        path = index.export_knowledge(args.format, args.output)
        if args.json:
            print_json({"exported": str(path)})
        else:
            print(f"Exported to {path}")
        return EXIT_OK

    if args.command == "timeline":
        timeline = index.get_project_timeline(args.project)
        if args.json:
            print_json(timeline)
        else:
            for day, commits in timeline.items():
                print(f"{day}: {len(commits)} commits")
                for commit in commits:
                    print(f"  {commit['hash'][:8]} {commit['message']}")
        return EXIT_OK

    if args.command == "sessions":
        rows = index.get_session_history(args.days)
    elif args.command == "commits":
        rows = index.commits_by_author(args.author)
    elif args.command == "files":
        rows = index.files_by_name(args.name)
    elif args.command == "problems":
        rows = index.problems_and_solutions(args.keyword)
    else:
        rows = index.get_related_work(args.session)

    if args.json:
        print_json(rows)
    else:
        _print_rows(rows)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(with_default_command(argv))
    return run(handle, args)


__all__ = ["COMMANDS", "build_parser", "with_default_command", "handle", "main"]


if __name__ == "__main__":
    sys.exit(main())
