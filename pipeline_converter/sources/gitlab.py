from __future__ import annotations

from pathlib import Path
from typing import Optional

from pipeline_converter.models.dto import SourceKind, WorkItem
from pipeline_converter.sources.base import feature_flags

_FEATURES = {
    "has_stages": ("stages:",),
    "has_includes": ("include:",),
    "has_variables": ("variables:",),
    "has_cache": ("cache:",),
    "has_artifacts": ("artifacts:",),
}


class GitLabSource:
    """``.gitlab-ci.yml`` files; matched by file name only."""

    kind = SourceKind.GITLAB
    file_patterns = (".gitlab-ci.yml", ".gitlab-ci.yaml")

    def can_handle(self, path: Path, content: Optional[str] = None) -> bool:
        return path.name.lower() in self.file_patterns

    def extract_info(self, path: Path, content: str) -> WorkItem:
        # GitLab CI has no top-level name; a workflow block is the closest thing
        has_workflow = any(line.strip().startswith("workflow:") for line in content.splitlines())
        name = "GitLab CI Workflow" if has_workflow else path.stem
        return WorkItem(
            name=name,
            source_kind=self.kind,
            original_text=content,
            locator=str(path),
            metadata={"source_type": self.kind.value, **feature_flags(content, _FEATURES)},
        )
