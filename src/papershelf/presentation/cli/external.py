"""Editor and opener glue used by the ``notes`` and ``open`` commands."""

from __future__ import annotations

import os
import platform
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from papershelf.domain.errors import InvalidInput


def edit_text(initial: str, *, editor: str, prefix: str = "papershelf-") -> Optional[str]:
    """
    Open ``initial`` in ``editor`` on a temporary markdown file.

    Returns the edited text, or None when the editor exits non-zero (the edit
    is then discarded).
    """
    command = shlex.split(editor or "vi")
    if not command:
        raise InvalidInput("no editor configured")

    fd, name = tempfile.mkstemp(prefix=prefix, suffix=".md")
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(initial)
        try:
            completed = subprocess.run([*command, str(path)], check=False)
        except OSError as exc:
            raise InvalidInput(f"cannot run editor {command[0]!r}: {exc}") from exc
        if completed.returncode != 0:
            return None
        return path.read_text(encoding="utf-8")
    finally:
        path.unlink(missing_ok=True)


def open_path(target: str) -> int:
    """Hand a file path or URL to the operating system's default handler."""
    system = platform.system()
    if system == "Windows":
        os.startfile(target)  # type: ignore[attr-defined]
        return 0
    opener = "open" if system == "Darwin" else "xdg-open"
    try:
        return subprocess.run([opener, target], check=False).returncode
    except OSError as exc:
        raise InvalidInput(f"cannot run {opener}: {exc}") from exc
