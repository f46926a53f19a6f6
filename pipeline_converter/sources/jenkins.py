from __future__ import annotations

from pathlib import Path
from typing import Optional

from pipeline_converter.models.dto import SourceKind, WorkItem
from pipeline_converter.sources.base import feature_flags

_FEATURES = {
    "has_agent": ("agent ",),
    "has_stages": ("stages {",),
    "has_environment": ("environment {",),
    "has_parameters": ("parameters {",),
    "has_post": ("post {",),
    "has_when": ("when {",),
    "has_parallel": ("parallel",),
}


def _is_declarative(content: str) -> bool:
    return "pipeline {" in content or "pipeline{" in content


def _is_scripted(content: str) -> bool:
    return "node {" in content and "stage(" in content


class JenkinsSource:
    """Jenkinsfiles, by name or by declarative/scripted pipeline content."""

    kind = SourceKind.JENKINS
    file_patterns = ("Jenkinsfile", "Jenkinsfile.groovy")

    def can_handle(self, path: Path, content: Optional[str] = None) -> bool:
        if path.name.lower().startswith("jenkinsfile"):
            return True
        return content is not None and (_is_declarative(content) or _is_scripted(content))

    def extract_info(self, path: Path, content: str) -> WorkItem:
        name = path.stem
        if name.lower() == "jenkinsfile" and path.parent.name:
            name = f"{path.parent.name} Pipeline"

        metadata = {"source_type": self.kind.value}
        if _is_declarative(content):
            metadata["pipeline_style"] = "declarative"
        elif "node {" in content or "node(" in content:
            metadata["pipeline_style"] = "scripted"
        metadata.update(feature_flags(content, _FEATURES))

        return WorkItem(
            name=name or "Jenkins Pipeline",
            source_kind=self.kind,
            original_text=content,
            locator=str(path),
            metadata=metadata,
        )
