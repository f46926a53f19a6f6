from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from pipeline_converter.core.config import CONVERSATION_SERVICE_NAME
from pipeline_converter.core.exceptions import ExternalServiceError
from pipeline_converter.errors.codes import describe_error
from pipeline_converter.models.dto import (
    ConversionFailed,
    ConversionSucceeded,
    ProcessingPhase,
    ProcessingResult,
    ValidationIssue,
    ValidationOutcome,
    ValidationSeverity,
    WorkItem,
)
from pipeline_converter.ports.conversation_port import ConversationSession
from pipeline_converter.ports.sink_port import ArtifactSink
from pipeline_converter.processors.prompts import (
    build_conversion_prompt,
    build_validation_prompt,
)
from pipeline_converter.processors.response_extractor import (
    extract_artifact,
    extract_notes,
    parse_validation_response,
)
from pipeline_converter.processors.sanitizer import workflow_file_name
from pipeline_converter.processors.workflow_checks import run_local_checks
from pipeline_converter.progress import ItemProgress
from pipeline_converter.utils.timing import PhaseTimers

logger = logging.getLogger(__name__)


class StageError(Exception):
    """Item phase failure with error code."""

    def __init__(self, code: str, details: Optional[str] = None) -> None:
        super().__init__(f"{code}: {details}")
        self.code = code
        self.details = details


@dataclass
class ItemContext:
    item: WorkItem
    session: ConversationSession
    sink: ArtifactSink
    emit: ItemProgress
    skip_validation: bool

    # populated during run
    timers: PhaseTimers = field(default_factory=PhaseTimers)
    conversion: Optional[ConversionSucceeded] = None
    artifact_locator: Optional[str] = None
    validation: Optional[ValidationOutcome] = None
    report_locator: Optional[str] = None
    improved_applied: bool = False

    def result(self, conversion, error: Optional[BaseException] = None) -> ProcessingResult:
        return ProcessingResult(
            item=self.item,
            conversion=conversion,
            validation=self.validation,
            artifact_locator=self.artifact_locator,
            report_locator=self.report_locator,
            improved_artifact_applied=self.improved_applied,
            duration_seconds=self.timers.elapsed(),
            phase_timings=dict(self.timers.totals),
            error=error,
        )


def _validation_summary(validation: ValidationOutcome) -> str:
    if validation.is_valid and not validation.issues:
        return "valid"
    return (
        f"{validation.count(ValidationSeverity.ERROR)} error(s), "
        f"{validation.count(ValidationSeverity.WARNING)} warning(s)"
    )


class PhaseRunner:
    """Drives one work item through convert, validate and write on its session.

    Args:
        exchange_timeout: Seconds allowed for each exchange with the service
        generate_reports: Persist a validation report for validated items
        apply_improvements: Replace the written workflow with the improved one
            when the review proposes it
        validation_preamble: Extra instructions placed before the validation
            prompt (a validator agent profile)
        tools_available: The session can call the validation toolset
    """

    def __init__(
        self,
        exchange_timeout: float,
        *,
        generate_reports: bool = True,
        apply_improvements: bool = True,
        validation_preamble: Optional[str] = None,
        tools_available: bool = False,
    ) -> None:
        self.exchange_timeout = exchange_timeout
        self.generate_reports = generate_reports
        self.apply_improvements = apply_improvements
        self.validation_preamble = validation_preamble
        self.tools_available = tools_available

    async def _exchange(self, session: ConversationSession, prompt: str) -> str:
        try:
            async with asyncio.timeout(self.exchange_timeout):
                return await session.exchange(prompt, self.exchange_timeout)
        except TimeoutError as exc:
            raise ExternalServiceError(
                service_name=CONVERSATION_SERVICE_NAME,
                error_type="timeout",
                details={"reason": f"no reply within {self.exchange_timeout:.1f}s"},
            ) from exc

    async def _phase_convert(self, ctx: ItemContext) -> None:
        ctx.emit(ProcessingPhase.CONVERTING)
        with ctx.timers.timer("conversion"):
            try:
                reply = await self._exchange(ctx.session, build_conversion_prompt(ctx.item))
            except Exception as exc:
                raise StageError("CONVERSION_FAILED", str(exc)) from exc

        if not reply or not reply.strip():
            raise StageError("CONVERSION_EMPTY_RESPONSE")

        artifact = extract_artifact(reply)
        if artifact is None:
            raise StageError("ARTIFACT_NOT_FOUND")

        ctx.conversion = ConversionSucceeded(
            artifact_text=artifact,
            suggested_name=workflow_file_name(ctx.item),
            notes=tuple(extract_notes(reply) or ()),
        )

    async def _phase_persist_artifact(self, ctx: ItemContext) -> None:
        ctx.emit(ProcessingPhase.CONVERSION_COMPLETE)
        with ctx.timers.timer("writing"):
            try:
                ctx.artifact_locator = await ctx.sink.write_artifact(ctx.item, ctx.conversion)
            except Exception as exc:
                raise StageError("ARTIFACT_WRITE_FAILED", str(exc)) from exc

    async def _phase_validate(self, ctx: ItemContext) -> None:
        ctx.emit(ProcessingPhase.VALIDATING)
        artifact = ctx.conversion.artifact_text
        with ctx.timers.timer("validation"):
            issues = run_local_checks(artifact)
            suggestions = None
            improved = None
            prompt = build_validation_prompt(ctx.item, artifact, with_tools=self.tools_available)
            if self.validation_preamble:
                prompt = f"{self.validation_preamble}\n\n{prompt}"
            try:
                reply = await self._exchange(ctx.session, prompt)
            except Exception as exc:
                logger.warning(
                    f"Validation exchange failed: {exc}",
                    extra={"phase": ProcessingPhase.VALIDATING.value},
                )
                issues.append(
                    ValidationIssue(
                        severity=ValidationSeverity.WARNING,
                        message=f"Could not complete AI validation: {exc}",
                    )
                )
            else:
                parsed = parse_validation_response(reply)
                issues.extend(parsed.issues)
                suggestions = tuple(parsed.suggestions) if parsed.suggestions else None
                improved = parsed.improved_artifact

        ctx.validation = ValidationOutcome(
            issues=tuple(issues),
            suggestions=suggestions,
            improved_artifact=improved,
        )
        ctx.emit(ProcessingPhase.VALIDATION_COMPLETE, _validation_summary(ctx.validation))

    async def _phase_persist_validation(self, ctx: ItemContext) -> None:
        ctx.emit(ProcessingPhase.WRITING)
        with ctx.timers.timer("writing"):
            improved = ctx.validation.improved_artifact
            if improved and self.apply_improvements:
                await ctx.sink.overwrite_artifact(ctx.artifact_locator, improved)
                ctx.improved_applied = True
            if self.generate_reports:
                ctx.report_locator = await ctx.sink.write_report(
                    ctx.artifact_locator, ctx.validation
                )

    def _fail(
        self,
        ctx: ItemContext,
        code: str,
        details: Optional[str],
        error: Optional[BaseException],
    ) -> ProcessingResult:
        reason = describe_error(code, details)
        logger.error(
            f"Item failed: {code} - {details}",
            extra={"error_code": code},
        )
        if not ctx.emit.is_terminal:
            ctx.emit(ProcessingPhase.FAILED, reason)
        return ctx.result(ConversionFailed(reason=reason, error_code=code), error)

    async def run(
        self,
        item: WorkItem,
        session: ConversationSession,
        *,
        skip_validation: bool,
        sink: ArtifactSink,
        emit: ItemProgress,
    ) -> ProcessingResult:
        """Process one item end to end.

        Failures are returned as a failed result, never raised. Cancellation
        emits the failed event and then propagates.
        """
        ctx = ItemContext(
            item=item,
            session=session,
            sink=sink,
            emit=emit,
            skip_validation=skip_validation,
        )
        emit(ProcessingPhase.STARTING)

        try:
            await self._phase_convert(ctx)
            await self._phase_persist_artifact(ctx)
            if not ctx.skip_validation:
                await self._phase_validate(ctx)
                await self._phase_persist_validation(ctx)
        except StageError as se:
            return self._fail(ctx, se.code, se.details, se.__cause__ or se)
        except asyncio.CancelledError:
            self._fail(ctx, "CANCELLED", None, None)
            raise
        except Exception as exc:
            logger.exception("Unexpected error while processing item")
            return self._fail(ctx, "UNKNOWN_ERROR", str(exc), exc)

        emit(ProcessingPhase.COMPLETE, ctx.artifact_locator)
        logger.info(
            "Item complete",
            extra={"duration_ms": round(ctx.timers.elapsed() * 1000)},
        )
        return ctx.result(ctx.conversion)
