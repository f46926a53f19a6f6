"""
Filesystem sink: writes converted workflows, validation reports and the
batch summary.

Blocking file I/O runs in the default executor so concurrent items keep
progressing while one of them writes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pipeline_converter.core.config import (
    SUMMARY_FILE,
    VALIDATION_REPORT_SUFFIX,
    WORKFLOWS_SUBDIRECTORY,
)
from pipeline_converter.models.dto import (
    ConversionSucceeded,
    ProcessingResult,
    ValidationOutcome,
    ValidationSeverity,
    WorkItem,
)
from pipeline_converter.processors.sanitizer import workflow_file_name
from pipeline_converter.utils.io_utils import create_unique_file, write_json, write_text

logger = logging.getLogger(__name__)

_SEVERITY_SECTIONS = (
    (ValidationSeverity.ERROR, "Errors"),
    (ValidationSeverity.WARNING, "Warnings"),
    (ValidationSeverity.INFO, "Info"),
)


def build_validation_report(
    workflow_path: str | Path,
    validation: ValidationOutcome,
    generated_at: datetime | None = None,
) -> str:
    """Markdown report for one validated workflow."""
    generated_at = generated_at or datetime.now(timezone.utc)
    lines = [
        "# Validation Report",
        "",
        f"**Workflow:** `{Path(workflow_path).name}`",
        f"**Status:** {'Valid' if validation.is_valid else 'Has Issues'}",
        f"**Generated:** {generated_at:%Y-%m-%d %H:%M:%S} UTC",
        "",
    ]

    if validation.issues:
        lines += ["## Issues", ""]
        for severity, title in _SEVERITY_SECTIONS:
            section = [i for i in validation.issues if i.severity == severity]
            if not section:
                continue
            lines.append(f"### {title}")
            for issue in section:
                location = f" (Line {issue.line_number})" if issue.line_number else ""
                lines.append(f"- {issue.message}{location}")
                if issue.suggestion:
                    lines.append(f"  - Suggestion: {issue.suggestion}")
            lines.append("")

    if validation.suggestions:
        lines += ["## Suggestions for Improvement", ""]
        lines += [f"- {suggestion}" for suggestion in validation.suggestions]
        lines.append("")

    if validation.improved_artifact:
        lines += [
            "## Improved Workflow",
            "",
            "The service proposed an improved workflow; it replaced the converted file.",
            "",
        ]

    return "\n".join(lines)


class WorkflowWriter:
    """Writes artifacts under ``<output_dir>/.github/workflows`` by default."""

    def __init__(self, output_dir: str | Path, create_workflows_subdir: bool = True) -> None:
        self.output_dir = Path(output_dir)
        self.create_workflows_subdir = create_workflows_subdir

    @property
    def workflows_dir(self) -> Path:
        if self.create_workflows_subdir:
            return self.output_dir / WORKFLOWS_SUBDIRECTORY
        return self.output_dir

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args))

    async def write_artifact(self, item: WorkItem, outcome: ConversionSucceeded) -> str:
        file_name = Path(outcome.suggested_name or workflow_file_name(item))
        path = await self._run_blocking(
            create_unique_file,
            self.workflows_dir,
            file_name.stem,
            file_name.suffix or ".yml",
            outcome.artifact_text,
        )
        logger.info(f"Workflow written: {path}")
        return str(path)

    async def write_report(self, artifact_locator: str, validation: ValidationOutcome) -> str:
        artifact = Path(artifact_locator)
        report_path = artifact.with_name(artifact.stem + VALIDATION_REPORT_SUFFIX)
        content = build_validation_report(artifact, validation)
        await self._run_blocking(write_text, report_path, content)
        logger.info(f"Validation report written: {report_path}")
        return str(report_path)

    async def overwrite_artifact(self, locator: str, text: str) -> None:
        await self._run_blocking(write_text, locator, text)
        logger.info(f"Workflow replaced with improved version: {locator}")

    def write_summary(self, results: Iterable[ProcessingResult], path: str | Path | None = None) -> Path:
        """Dump a JSON summary of a finished batch; defaults to the output directory."""
        results = list(results)
        summary_path = Path(path) if path else self.output_dir / SUMMARY_FILE
        write_json(
            summary_path,
            {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "total": len(results),
                "succeeded": sum(1 for r in results if r.is_success),
                "failed": sum(1 for r in results if not r.is_success),
                "results": [r.summary() for r in results],
            },
        )
        return summary_path
