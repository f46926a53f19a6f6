"""ArtifactSink protocol for persisting converted workflows and reports."""

from __future__ import annotations

from typing import Protocol

from pipeline_converter.models.dto import (
    ConversionSucceeded,
    ValidationOutcome,
    WorkItem,
)


class ArtifactSink(Protocol):  # pragma: no cover - contract
    """Destination for workflows and validation reports.

    Locators are opaque to callers. Two items never receive the same
    artifact locator, even when their suggested names collide.
    """

    async def write_artifact(self, item: WorkItem, outcome: ConversionSucceeded) -> str: ...

    async def write_report(self, artifact_locator: str, validation: ValidationOutcome) -> str: ...

    async def overwrite_artifact(self, locator: str, text: str) -> None: ...
