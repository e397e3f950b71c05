"""File helpers shared by the writers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_text(target_path: Path, text: str) -> Path:
    """
    Atomically write ``text`` to ``target_path``.

    Uses write-to-temp-then-replace in the same directory, so readers see
    either the old or the new content. A crash can leave a ``*.tmp`` file
    behind; nothing treats those as records.
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f"{target_path.stem}.",
        dir=target_path.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_path, target_path)
    except BaseException:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
    return target_path


__all__ = ["atomic_write_text"]
