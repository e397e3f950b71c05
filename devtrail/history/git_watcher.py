"""GitWatcher - polls a repository and reports each new commit once."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .git_log import GitCommandError, GitLogMiner, MinedCommit

logger = logging.getLogger(__name__)

COMMIT_DETECTED = "commit_detected"

CommitListener = Callable[[dict[str, Any]], Any]


class GitWatcher:
    """
    Poll ``HEAD`` and emit ``commit_detected`` for every unseen commit.

    Seen hashes are tracked for the watcher's lifetime, so a hash is reported
    at most once. When several commits land between polls they are reported
    oldest first.
    """

    def __init__(self, miner: GitLogMiner, interval: float = 30.0):
        self.miner = miner
        self.interval = interval
        self.last_hash: str | None = None
        self._seen: set[str] = set()
        self._listeners: list[CommitListener] = []
        self._task: asyncio.Task | None = None

    def on_commit_detected(self, listener: CommitListener) -> None:
        self._listeners.append(listener)

    def prime(self) -> str | None:
        """Record the current HEAD as seen without emitting it."""
        try:
            latest = self.miner.latest_commit()
        except GitCommandError as e:
            logger.warning(f"Could not read initial commit: {e}")
            return None
        if latest is not None:
            self.last_hash = latest.hash
            self._seen.add(latest.hash)
        return self.last_hash

    def _new_commits(self, latest: MinedCommit) -> list[MinedCommit]:
        if self.last_hash is None:
            return [latest]
        try:
            commits = self.miner.log_commits(revision=f"{self.last_hash}..{latest.hash}")
        except GitCommandError:
            # History rewritten under us; report HEAD only.
            return [latest]
        return list(reversed(commits)) or [latest]

    def check_for_new_commits(self) -> list[dict[str, Any]]:
        """
        Poll once and emit one event per unseen commit.

        Returns:
            The emitted ``commit_detected`` payloads
        """
        try:
            latest = self.miner.latest_commit()
        except GitCommandError as e:
            logger.warning(f"Git poll failed: {e}")
            return []

        if latest is None or latest.hash == self.last_hash:
            return []

        emitted = []
        for commit in self._new_commits(latest):
            if commit.hash in self._seen:
                continue
            self._seen.add(commit.hash)
            payload = commit.to_event()
            self._emit(payload)
            emitted.append(payload)

        self.last_hash = latest.hash
        return emitted

    def _emit(self, payload: dict[str, Any]) -> None:
        logger.info(f"New commit detected: {payload['hash'][:8]} {payload['message']}")
        for listener in self._listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"{COMMIT_DETECTED} listener failed: {e}")

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await asyncio.to_thread(self.check_for_new_commits)

    def start(self) -> asyncio.Task:
        """Prime and start polling on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        logger.info("Starting git repository monitoring...")
        self.prime()
        self._task = asyncio.get_running_loop().create_task(self._poll())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped git repository monitoring")


__all__ = ["GitWatcher", "COMMIT_DETECTED"]
