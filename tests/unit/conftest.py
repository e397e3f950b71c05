"""
Shared fixtures for unit tests.

Provides a fake git runner so history mining is tested without a real
repository.
"""

from dataclasses import dataclass, field

import pytest

from devtrail.history import GitCommandError
from devtrail.history.git_log import FIELD_SEP, RECORD_SEP


@dataclass
class FakeCommit:
    hash: str
    message: str
    date: str
    author: str = "Ada"
    email: str = "ada@example.com"
    files: list[tuple[str, str, str]] = field(default_factory=list)  # (added, deleted, path)


def format_log(commits: list[FakeCommit]) -> str:
    """Render commits the way ``git log PRETTY_FORMAT --numstat`` prints them."""
    chunks = []
    for c in commits:
        header = FIELD_SEP.join((c.hash, c.author, c.email, c.date, c.message))
        stats = "".join(f"{added}\t{deleted}\t{path}\n" for added, deleted, path in c.files)
        chunks.append(f"{RECORD_SEP}{header}\n" + (f"\n{stats}" if stats else ""))
    return "".join(chunks)


class FakeGit:
    """
    Git runner over an in-memory history, newest commit first.

    Understands ``--max-count=N`` and ``<old>..<new>`` ranges; every call is
    recorded in ``calls``.
    """

    def __init__(self, commits: list[FakeCommit] | None = None):
        self.commits = list(commits or [])
        self.calls: list[list[str]] = []
        self.fail = False

    def push(self, commit: FakeCommit) -> None:
        self.commits.insert(0, commit)

    def __call__(self, args: list[str]) -> str:
        self.calls.append(list(args))
        if self.fail:
            raise GitCommandError("git log failed: not a git repository")

        selected = self.commits
        for arg in args:
            if ".." in arg and not arg.startswith("-"):
                old, _, _new = arg.partition("..")
                hashes = [c.hash for c in selected]
                if old not in hashes:
                    raise GitCommandError(f"bad revision {arg}")
                selected = selected[: hashes.index(old)]
        for arg in args:
            if arg.startswith("--max-count="):
                selected = selected[: int(arg.split("=", 1)[1])]
        return format_log(selected)


@pytest.fixture
def fake_git():
    """Factory: ``fake_git([FakeCommit(...), ...])`` returns a FakeGit runner."""
    return FakeGit


@pytest.fixture
def commit():
    """Factory for FakeCommit."""
    return FakeCommit
