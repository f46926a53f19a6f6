"""PipelineSource protocol: recognizes one CI system's pipeline files."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from pipeline_converter.models.dto import SourceKind, WorkItem


class PipelineSource(Protocol):  # pragma: no cover - contract
    kind: SourceKind
    file_patterns: tuple[str, ...]

    def can_handle(self, path: Path, content: Optional[str] = None) -> bool: ...

    def extract_info(self, path: Path, content: str) -> WorkItem: ...


def feature_flags(content: str, markers: dict[str, tuple[str, ...]]) -> dict[str, str]:
    """``{"has_x": "true"}`` for each feature whose marker appears in ``content``."""
    return {
        feature: "true"
        for feature, needles in markers.items()
        if any(needle in content for needle in needles)
    }


def first_name_value(content: str) -> Optional[str]:
    """Value of the first ``name:`` line, unquoted."""
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("name:"):
            value = stripped[len("name:"):].strip().strip("'\"")
            return value or None
    return None
