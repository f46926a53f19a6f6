"""
Typed contracts shared by the orchestrator, the phase runner and the sinks.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field


class SourceKind(str, Enum):
    """CI system a pipeline document was written for."""

    GITLAB = "gitlab"
    AZURE_DEVOPS = "azure-devops"
    JENKINS = "jenkins"

    @property
    def display_name(self) -> str:
        return _SOURCE_DISPLAY_NAMES[self]


_SOURCE_DISPLAY_NAMES = {
    SourceKind.GITLAB: "GitLab CI/CD (.gitlab-ci.yml)",
    SourceKind.AZURE_DEVOPS: "Azure DevOps (azure-pipelines.yml)",
    SourceKind.JENKINS: "Jenkins (Jenkinsfile)",
}


class WorkItem(BaseModel):
    """
    One pipeline document to convert. Read-only after creation.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source_kind: SourceKind
    original_text: str
    locator: str
    metadata: dict[str, str] = Field(default_factory=dict)


class ConversionSucceeded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["succeeded"] = "succeeded"
    artifact_text: str
    suggested_name: str
    notes: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return True


class ConversionFailed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    reason: str
    error_code: str = "UNKNOWN_ERROR"

    @property
    def is_success(self) -> bool:
        return False


ConversionOutcome = Annotated[
    Union[ConversionSucceeded, ConversionFailed], Field(discriminator="kind")
]


class ValidationSeverity(IntEnum):
    """Issue severity; ordering is INFO < WARNING < ERROR."""

    INFO = 0
    WARNING = 1
    ERROR = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: ValidationSeverity
    message: str
    line_number: Optional[int] = Field(default=None, ge=1)
    suggestion: Optional[str] = None


class ValidationOutcome(BaseModel):
    """
    Combined result of local checks and the service-side review.

    Local issues come first, followed by those reported by the service.
    """

    model_config = ConfigDict(frozen=True)

    issues: tuple[ValidationIssue, ...] = ()
    suggestions: Optional[tuple[str, ...]] = None
    improved_artifact: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_valid(self) -> bool:
        return not any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def count(self, severity: ValidationSeverity) -> int:
        return sum(1 for i in self.issues if i.severity == severity)

    def issues_by_severity(self) -> list[ValidationIssue]:
        """Issues ordered most severe first, stable within a severity."""
        return sorted(self.issues, key=lambda i: i.severity, reverse=True)


class ProcessingResult(BaseModel):
    """
    Final record for one work item, produced after its terminal event.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    item: WorkItem
    conversion: ConversionOutcome
    validation: Optional[ValidationOutcome] = None
    artifact_locator: Optional[str] = None
    report_locator: Optional[str] = None
    improved_artifact_applied: bool = False
    duration_seconds: float = 0.0
    phase_timings: dict[str, float] = Field(default_factory=dict)
    error: Optional[BaseException] = Field(default=None, exclude=True)

    @property
    def is_success(self) -> bool:
        return self.conversion.is_success

    def summary(self) -> dict:
        """JSON-friendly view used by the batch summary file."""
        data = self.model_dump(mode="json", exclude={"item": {"original_text"}})
        if self.error is not None:
            data["error"] = f"{type(self.error).__name__}: {self.error}"
        return data


class ProcessingPhase(str, Enum):
    """Per-item lifecycle; transitions only move forward."""

    STARTING = "starting"
    CONVERTING = "converting"
    CONVERSION_COMPLETE = "conversion_complete"
    VALIDATING = "validating"
    VALIDATION_COMPLETE = "validation_complete"
    WRITING = "writing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingPhase.COMPLETE, ProcessingPhase.FAILED)


_PHASE_ORDER = list(ProcessingPhase)


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: WorkItem
    phase: ProcessingPhase
    message: Optional[str] = None
