"""
devtrail-recorder: mine history and record live sessions.

Usage:
    devtrail-recorder history --days 30
    devtrail-recorder watch --repo . --title "payment flow"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from collections.abc import Callable
from typing import Any

from ..capture import ActivityRecorder, SessionMonitor
from ..config import DevtrailConfig
from ..history import GitLogMiner, GitWatcher, HistoryAggregator, ProjectAttributor
from ..knowledge import KnowledgeIndex, render_session_report
from ..serialization import BoundedSerializer
from .common import EXIT_OK, add_common_arguments, load_config, print_json, run

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devtrail-recorder",
        description="Recover development history and record sessions into the knowledge index",
    )
    add_common_arguments(parser)
    parser.add_argument("--repo", help="Repository path (default: config history.repo_path)")

    commands = parser.add_subparsers(dest="command", required=True)

    history = commands.add_parser("history", help="Recover history and index mined commits")
    history.add_argument("--days", type=int, help="Git window in days")
    history.add_argument("--save", action="store_true", help="Archive the recovered history")

    watch = commands.add_parser("watch", help="Record a session until interrupted")
    watch.add_argument("--title", help="Session title")
    watch.add_argument("--duration", type=float, help="Stop after N seconds")
    watch.add_argument("--report", action="store_true", help="Print a Markdown session report")
    return parser


def _synchronized(lock: threading.Lock, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def wrapper(event: Any) -> Any:
        with lock:
            return func(event)

    return wrapper


def recover_history(config: DevtrailConfig, days: int | None = None, save: bool = False) -> dict[str, Any]:
    aggregator = HistoryAggregator(config.history, serializer=BoundedSerializer.from_config(config.serializer))
    history = aggregator.recover_history(days=days, save=save)

    index = KnowledgeIndex.from_config(config.knowledge)
    indexed = index.index_history(history)
    index.rebuild_search_index()

    return {
        "indexedCommits": indexed,
        "sources": history["sources"],
        "insights": history["insights"],
        "savedTo": history.get("savedTo"),
    }


async def watch_session(
    recorder: ActivityRecorder,
    monitor: SessionMonitor,
    watcher: GitWatcher,
    duration: float | None = None,
) -> None:
    """Drive the monitor and the git watcher into ``recorder`` until stopped."""
    lock = threading.Lock()
    monitor.on_file_change(_synchronized(lock, recorder.record_file_change))
    monitor.on_command(_synchronized(lock, recorder.record_command))
    watcher.on_commit_detected(_synchronized(lock, recorder.record_commit))

    watcher.start()
    monitor_task = asyncio.create_task(monitor.run())
    try:
        if duration is None:
            await monitor_task
        else:
            await asyncio.sleep(duration)
    finally:
        monitor.stop()
        await watcher.stop()
        if not monitor_task.done():
            monitor_task.cancel()
        await asyncio.gather(monitor_task, return_exceptions=True)


def handle(args: argparse.Namespace) -> int:
    config = load_config(args)
    if args.repo:
        config.history.repo_path = args.repo

    if args.command == "history":
        print_json(recover_history(config, args.days, args.save))
        return EXIT_OK

    recorder = ActivityRecorder(
        config=config.capture,
        serializer=BoundedSerializer.from_config(config.serializer),
        title=args.title,
    )
    attributor = ProjectAttributor(config.history.project_keywords, config.history.default_project)
    miner = GitLogMiner(config.history.repo_path, attributor=attributor, timeout=config.history.git_timeout)
    watcher = GitWatcher(miner, config.history.watch_interval)
    monitor = SessionMonitor(config.history.repo_path, history_file=config.history.shell_history_path)

    try:
        asyncio.run(watch_session(recorder, monitor, watcher, args.duration))
    except KeyboardInterrupt:
        logger.info("Interrupted, finalizing session")

    summary = recorder.generate_summary()
    KnowledgeIndex.from_config(config.knowledge).index_session(summary)

    if args.report:
        print(render_session_report(summary))
    else:
        print_json(summary.to_json_dict())
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return run(handle, args)


__all__ = ["build_parser", "recover_history", "watch_session", "handle", "main"]


if __name__ == "__main__":
    sys.exit(main())
