"""
SessionMonitor - watchdog-based watcher for project files plus a shell-history tail.

Emits file-change events ``{type, action, path, timestamp, content, lines,
size}`` and command events ``{command, timestamp}`` to registered callbacks.

File events come from a watchdog Observer and are held per path until the
path has been quiet for ``settle`` seconds, so a burst of created/modified
notifications for one write is reported once. Stopping the monitor flushes
whatever is still pending.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..session_schema import now_iso

logger = logging.getLogger(__name__)

IGNORED_PATTERNS = ("node_modules", ".git", "dist", "build", ".cache", "coverage", "*.log")

WATCHED_EXTENSIONS = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx",
        ".py", ".go", ".rs", ".java",
        ".html", ".css", ".scss",
        ".json", ".yaml", ".yml",
        ".md", ".txt",
    }
)

# Seconds a path must stay quiet before its event is emitted.
DEFAULT_SETTLE = 1.0

EventCallback = Callable[[dict[str, Any]], Any]


def _is_ignored(name: str) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in IGNORED_PATTERNS)


def merge_actions(previous: str | None, action: str) -> str | None:
    """
    Fold a new action into the one already pending for a path.

    Returns None when the two cancel out (a file added and deleted before
    it was reported).
    """
    if previous is None or previous == action:
        return action
    if previous == "add":
        return None if action == "delete" else "add"
    if previous == "delete":
        return "change"
    # previous == "change"
    return "delete" if action == "delete" else "change"


class ProjectEventHandler(FileSystemEventHandler):
    """
    Filters watchdog events and buffers them per path until they settle.

    Runs on the observer thread; ``drain`` is called from the monitor.
    """

    def __init__(self, root: Path | str, clock: Callable[[], float] = time.monotonic):
        self.root = Path(root).resolve()
        self.clock = clock
        self._pending: dict[Path, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def is_watched(self, path: Path) -> bool:
        try:
            parts = path.resolve().relative_to(self.root).parts
        except ValueError:
            return False
        if not parts or any(_is_ignored(part) for part in parts):
            return False
        return path.suffix in WATCHED_EXTENSIONS

    def record(self, action: str, path: Path) -> None:
        if not self.is_watched(path):
            return
        with self._lock:
            previous = self._pending.get(path, (None, 0.0))[0]
            merged = merge_actions(previous, action)
            if merged is None:
                self._pending.pop(path, None)
            else:
                self._pending[path] = (merged, self.clock())

    def drain(self, settle: float = 0.0, flush: bool = False) -> list[tuple[str, Path]]:
        """Remove and return ``(action, path)`` pairs quiet for ``settle`` seconds."""
        now = self.clock()
        ready: list[tuple[str, Path]] = []
        with self._lock:
            for path, (action, seen) in sorted(self._pending.items(), key=lambda item: item[1][1]):
                if flush or now - seen >= settle:
                    ready.append((action, path))
            for _, path in ready:
                del self._pending[path]
        return ready

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    # watchdog callbacks

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.record("add", Path(os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.record("change", Path(os.fsdecode(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.record("delete", Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.record("delete", Path(os.fsdecode(event.src_path)))
            self.record("add", Path(os.fsdecode(event.dest_path)))


class SessionMonitor:
    """
    Watch a project tree and tail a shell history file.

    Example:
        monitor = SessionMonitor(".", history_file="~/.bash_history")
        monitor.on_file_change(recorder.record_file_change)
        monitor.on_command(recorder.record_command)
        await monitor.run()
    """

    def __init__(
        self,
        root: Path | str,
        history_file: Path | str | None = None,
        interval: float = 1.0,
        read_content: bool = True,
        settle: float = DEFAULT_SETTLE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.root = Path(root)
        self.history_file = Path(history_file).expanduser() if history_file else None
        self.interval = interval
        self.read_content = read_content
        self.settle = settle
        self.handler = ProjectEventHandler(self.root, clock=clock)

        self._file_callbacks: list[EventCallback] = []
        self._command_callbacks: list[EventCallback] = []
        self._observer: Observer | None = None
        self._history_lines: int | None = None
        self._stop = asyncio.Event()

    def on_file_change(self, callback: EventCallback) -> None:
        self._file_callbacks.append(callback)

    def on_command(self, callback: EventCallback) -> None:
        self._command_callbacks.append(callback)

    # ------------------------------------------------------------------
    # File watching
    # ------------------------------------------------------------------

    @property
    def watching(self) -> bool:
        return self._observer is not None

    def start_watching(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, str(self.handler.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info(f"File watcher started for {self.root}")

    def stop_watching(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info(f"File watcher stopped for {self.root}")

    def _file_event(self, action: str, path: Path) -> dict[str, Any]:
        event: dict[str, Any] = {
            "type": "file",
            "action": action,
            "path": str(path),
            "timestamp": now_iso(),
        }
        if action != "delete" and self.read_content:
            try:
                content = path.read_text(encoding="utf-8")
                event["content"] = content
                event["lines"] = len(content.split("\n"))
                event["size"] = len(content.encode("utf-8"))
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Error reading file {path}: {e}")
        return event

    def collect_file_events(self, flush: bool = False) -> list[dict[str, Any]]:
        """Build events for every settled path, or every pending one when ``flush``."""
        return [self._file_event(action, path) for action, path in self.handler.drain(self.settle, flush)]

    # ------------------------------------------------------------------
    # Shell history
    # ------------------------------------------------------------------

    def scan_history(self) -> list[dict[str, Any]]:
        if self.history_file is None or not self.history_file.exists():
            return []
        try:
            lines = self.history_file.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.error(f"Error reading shell history: {e}")
            return []

        previous = self._history_lines
        self._history_lines = len(lines)
        if previous is None:
            return []
        if len(lines) < previous:
            # History was truncated or rotated; restart from the top.
            previous = 0

        return [
            {"command": line, "timestamp": now_iso()}
            for line in lines[previous:]
            if line.strip()
        ]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def scan_once(self, flush: bool = False) -> list[dict[str, Any]]:
        """Dispatch settled file events and new history lines. Returns the events."""
        file_events = self.collect_file_events(flush)
        command_events = self.scan_history()

        for event in file_events:
            self._emit(self._file_callbacks, event)
            logger.debug(f"File {event['action']}: {event['path']}")
        for event in command_events:
            self._emit(self._command_callbacks, event)

        return file_events + command_events

    def _emit(self, callbacks: list[EventCallback], event: dict[str, Any]) -> None:
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Monitor callback failed: {e}")

    # ------------------------------------------------------------------
    # Async loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Watch and dispatch until stop() is called, then flush pending events."""
        logger.info(f"Session monitoring active on {self.root}")
        self._stop.clear()
        self.start_watching()
        try:
            while not self._stop.is_set():
                await asyncio.to_thread(self.scan_once)
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.stop_watching()
            self.scan_once(flush=True)
            logger.info("Session monitoring stopped")

    def stop(self) -> None:
        self._stop.set()


__all__ = [
    "SessionMonitor",
    "ProjectEventHandler",
    "merge_actions",
    "WATCHED_EXTENSIONS",
    "IGNORED_PATTERNS",
    "DEFAULT_SETTLE",
]
