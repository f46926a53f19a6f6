from __future__ import annotations

from pathlib import Path
from typing import Optional

from pipeline_converter.models.dto import SourceKind, WorkItem
from pipeline_converter.sources.base import feature_flags, first_name_value

_FEATURES = {
    "has_stages": ("stages:",),
    "has_jobs": ("jobs:",),
    "has_pool": ("pool:",),
    "has_variables": ("variables:",),
    "has_resources": ("resources:",),
    "has_templates": ("template:", "templates:"),
    "has_tasks": ("task:",),
}


def _looks_like_azure(content: str) -> bool:
    return "trigger:" in content and (
        "pool:" in content or "vmImage:" in content or "stages:" in content
    )


class AzureDevOpsSource:
    """``azure-pipelines.yml`` and other YAML files with Azure-specific keys."""

    kind = SourceKind.AZURE_DEVOPS
    file_patterns = (
        "azure-pipelines.yml",
        "azure-pipelines.yaml",
        "azure-pipeline.yml",
        "azure-pipeline.yaml",
    )

    def can_handle(self, path: Path, content: Optional[str] = None) -> bool:
        name = path.name.lower()
        if name in self.file_patterns:
            return True
        if content is not None and name.endswith((".yml", ".yaml")):
            return _looks_like_azure(content)
        return False

    def extract_info(self, path: Path, content: str) -> WorkItem:
        return WorkItem(
            name=first_name_value(content) or path.stem,
            source_kind=self.kind,
            original_text=content,
            locator=str(path),
            metadata={"source_type": self.kind.value, **feature_flags(content, _FEATURES)},
        )
