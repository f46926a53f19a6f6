"""
File-system helpers shared by the scanner and the workflow writer.

Provides parent-directory creation, collision-free file creation and
UTF-8 JSON and text writing.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def ensure_parent(path: str | Path) -> None:
    """
    Ensure that the parent directory for the given path exists.

    Args:
      path: Target file path whose parent should be created.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def write_json(path: str | Path, obj: Any) -> None:
    """
    Write a JSON value to disk using UTF-8 encoding.

    Args:
      path: Destination file path.
      obj: JSON-serializable value to persist.
    """
    ensure_parent(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)


def write_text(path: str | Path, text: str) -> None:
    """Replace the contents of ``path`` with ``text`` (UTF-8, LF newlines)."""
    ensure_parent(path)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


def create_unique_file(directory: str | Path, stem: str, suffix: str, text: str) -> Path:
    """
    Create ``<stem><suffix>`` in ``directory``, or ``<stem>-1<suffix>``,
    ``<stem>-2<suffix>``... if taken, and write ``text`` into it.

    Creation uses exclusive mode, so concurrent callers never receive the
    same path.

    Returns:
      The path that was created.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    counter = 0
    while True:
        name = f"{stem}{suffix}" if counter == 0 else f"{stem}-{counter}{suffix}"
        candidate = directory / name
        try:
            with open(candidate, "x", encoding="utf-8", newline="\n") as f:
                f.write(text)
            return candidate
        except FileExistsError:
            counter += 1
