"""Unit tests for the per-item phase runner."""

import asyncio

import pytest

from pipeline_converter.core.exceptions import ExternalServiceError
from pipeline_converter.models.dto import ProcessingPhase, ValidationSeverity
from pipeline_converter.phase_runner import PhaseRunner
from pipeline_converter.ports.conversation_port import SessionConfig
from pipeline_converter.progress import ItemProgress
from tests.fakes import (
    VALIDATION_OK,
    WORKFLOW,
    FakeClient,
    RecordingSink,
    default_responder,
    fenced,
    is_validation_prompt,
    make_item,
)

IMPROVED = WORKFLOW.replace("make test", "make test-all")


def _responder_with(conversion=None, validation=None):
    def responder(config, prompt):
        if is_validation_prompt(prompt):
            return validation if validation is not None else VALIDATION_OK
        return conversion if conversion is not None else fenced(WORKFLOW)

    return responder


async def _run(runner, responder=default_responder, sink=None, skip_validation=False):
    item = make_item()
    client = FakeClient(responder)
    session = await client.open_session(SessionConfig(session_id="pipeline-build-1", model="m"))
    sink = sink or RecordingSink()
    events = []
    emit = ItemProgress(item, events.append)
    result = await runner.run(item, session, skip_validation=skip_validation, sink=sink, emit=emit)
    return result, sink, session, [e.phase for e in events], events


class TestPhaseRunnerSuccess:
    """Tests for items that complete."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self):
        """Test convert, validate and write with every phase reported in order."""
        result, sink, session, phases, events = await _run(PhaseRunner(5.0))

        assert result.is_success
        assert result.conversion.artifact_text == WORKFLOW
        assert result.conversion.suggested_name == "gitlab-ci.yml"
        assert result.conversion.notes == ("Note: configure the DEPLOY_TOKEN secret",)
        assert result.artifact_locator == "out/gitlab-ci.yml"
        assert sink.artifacts["out/gitlab-ci.yml"] == WORKFLOW
        assert result.report_locator == "out/gitlab-ci.validation.md"
        assert result.validation.is_valid
        assert [i.severity for i in result.validation.issues] == [ValidationSeverity.INFO]
        assert result.validation.suggestions == ("Add a dependency cache",)
        assert not result.improved_artifact_applied
        assert set(result.phase_timings) == {"conversion", "validation", "writing"}

        assert phases == [
            ProcessingPhase.STARTING,
            ProcessingPhase.CONVERTING,
            ProcessingPhase.CONVERSION_COMPLETE,
            ProcessingPhase.VALIDATING,
            ProcessingPhase.VALIDATION_COMPLETE,
            ProcessingPhase.WRITING,
            ProcessingPhase.COMPLETE,
        ]
        assert events[-1].message == "out/gitlab-ci.yml"
        assert len(session.prompts) == 2
        assert "reviewing a converted workflow" in session.prompts[1]
        assert WORKFLOW in session.prompts[1]

    @pytest.mark.asyncio
    async def test_skip_validation(self):
        """Test skipping validation goes straight from writing the artifact to complete."""
        result, sink, session, phases, _ = await _run(PhaseRunner(5.0), skip_validation=True)

        assert result.is_success
        assert result.validation is None
        assert result.report_locator is None
        assert sink.reports == {}
        assert len(session.prompts) == 1
        assert phases == [
            ProcessingPhase.STARTING,
            ProcessingPhase.CONVERTING,
            ProcessingPhase.CONVERSION_COMPLETE,
            ProcessingPhase.COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_improved_workflow_replaces_artifact(self):
        """Test an improved workflow from the review overwrites the written file."""
        review = VALIDATION_OK + f"\n## Improved Workflow\n```yaml\n{IMPROVED}\n```\n"
        result, sink, _, _, _ = await _run(PhaseRunner(5.0), _responder_with(validation=review))

        assert result.improved_artifact_applied
        assert sink.overwrites == ["out/gitlab-ci.yml"]
        assert sink.artifacts["out/gitlab-ci.yml"] == IMPROVED
        assert result.validation.improved_artifact == IMPROVED

    @pytest.mark.asyncio
    async def test_truncated_improved_workflow_keeps_artifact(self):
        """Test an improved block cut off before its closing fence is not applied."""
        review = VALIDATION_OK + "\n## Improved Workflow\n```yaml\nname: CI\non: push\njobs:\n  build:\n    runs-"
        result, sink, _, _, _ = await _run(PhaseRunner(5.0), _responder_with(validation=review))

        assert result.is_success
        assert not result.improved_artifact_applied
        assert result.validation.improved_artifact is None
        assert sink.overwrites == []
        assert sink.artifacts["out/gitlab-ci.yml"] == WORKFLOW

    @pytest.mark.asyncio
    async def test_improvements_and_reports_disabled(self):
        """Test toggles keep the original artifact and skip the report."""
        review = VALIDATION_OK + f"\n## Improved Workflow\n```yaml\n{IMPROVED}\n```\n"
        runner = PhaseRunner(5.0, generate_reports=False, apply_improvements=False)
        result, sink, _, _, _ = await _run(runner, _responder_with(validation=review))

        assert not result.improved_artifact_applied
        assert sink.overwrites == []
        assert sink.reports == {}
        assert sink.artifacts["out/gitlab-ci.yml"] == WORKFLOW

    @pytest.mark.asyncio
    async def test_validation_failure_degrades_to_warning(self):
        """Test a failed review still completes the item with a warning."""
        error = ExternalServiceError("conversation", "unavailable", details={"reason": "down"})
        result, sink, _, phases, _ = await _run(PhaseRunner(5.0), _responder_with(validation=error))

        assert result.is_success
        assert result.validation.is_valid
        (issue,) = result.validation.issues
        assert issue.severity == ValidationSeverity.WARNING
        assert issue.message.startswith("Could not complete AI validation:")
        assert result.report_locator is not None
        assert phases[-1] == ProcessingPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_local_checks_are_merged(self):
        """Test local structural findings appear alongside the review's issues."""
        no_jobs = "name: CI\non: push"
        result, _, _, _, _ = await _run(PhaseRunner(5.0), _responder_with(conversion=fenced(no_jobs)))

        assert result.is_success
        assert not result.validation.is_valid
        assert result.validation.issues[0].message == "Missing 'jobs:' section"

    @pytest.mark.asyncio
    async def test_validator_preamble(self):
        """Test the validator instructions are placed before the review prompt."""
        runner = PhaseRunner(5.0, validation_preamble="Focus on runner labels.")
        _, _, session, _, _ = await _run(runner)
        assert session.prompts[1].startswith("Focus on runner labels.\n\n")


class TestPhaseRunnerFailures:
    """Tests for items that fail."""

    @pytest.mark.asyncio
    async def test_conversion_exchange_error(self):
        """Test a failed conversion exchange never reaches the sink."""
        error = ExternalServiceError("conversation", "error", details={"reason": "bad request"})
        sink = RecordingSink()
        result, sink, _, phases, events = await _run(
            PhaseRunner(5.0), _responder_with(conversion=error), sink=sink
        )

        assert not result.is_success
        assert result.conversion.error_code == "CONVERSION_FAILED"
        assert result.conversion.reason.startswith("Conversion failed: ")
        assert "bad request" in result.conversion.reason
        assert result.error is error
        assert sink.write_calls == 0
        assert phases == [ProcessingPhase.STARTING, ProcessingPhase.CONVERTING, ProcessingPhase.FAILED]
        assert events[-1].message == result.conversion.reason

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        """Test a blank reply is its own failure code."""
        result, sink, _, _, _ = await _run(PhaseRunner(5.0), _responder_with(conversion="   \n"))
        assert result.conversion.error_code == "CONVERSION_EMPTY_RESPONSE"
        assert sink.write_calls == 0

    @pytest.mark.asyncio
    async def test_no_artifact_in_reply(self):
        """Test prose without a workflow fails extraction."""
        result, _, _, _, _ = await _run(
            PhaseRunner(5.0), _responder_with(conversion="I cannot convert this pipeline.")
        )
        assert result.conversion.error_code == "ARTIFACT_NOT_FOUND"
        assert result.conversion.reason == "Could not extract artifact"

    @pytest.mark.asyncio
    async def test_write_failure(self):
        """Test a sink failure fails the item after conversion completed."""
        result, _, _, phases, _ = await _run(PhaseRunner(5.0), sink=RecordingSink(fail_writes=True))

        assert result.conversion.error_code == "ARTIFACT_WRITE_FAILED"
        assert "disk full" in result.conversion.reason
        assert isinstance(result.error, OSError)
        assert phases[-2:] == [ProcessingPhase.CONVERSION_COMPLETE, ProcessingPhase.FAILED]

    @pytest.mark.asyncio
    async def test_exchange_timeout(self):
        """Test a slow service is reported as a conversion timeout."""

        async def never(*_args):
            await asyncio.sleep(10)

        item = make_item()
        client = FakeClient()
        session = await client.open_session(SessionConfig(session_id="s", model="m"))
        session.exchange = never
        events = []
        result = await PhaseRunner(0.05).run(
            item, session, skip_validation=False, sink=RecordingSink(), emit=ItemProgress(item, events.append)
        )

        assert result.conversion.error_code == "CONVERSION_FAILED"
        assert isinstance(result.error, ExternalServiceError)
        assert result.error.error_type == "timeout"
        assert events[-1].phase == ProcessingPhase.FAILED

    @pytest.mark.asyncio
    async def test_cancellation_reports_failed_and_propagates(self):
        """Test a cancelled item emits one failed event and re-raises."""
        item = make_item()
        client = FakeClient(delay=10)
        session = await client.open_session(SessionConfig(session_id="s", model="m"))
        events = []
        task = asyncio.create_task(
            PhaseRunner(30.0).run(
                item, session, skip_validation=False, sink=RecordingSink(), emit=ItemProgress(item, events.append)
            )
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [e.phase for e in events] == [
            ProcessingPhase.STARTING,
            ProcessingPhase.CONVERTING,
            ProcessingPhase.FAILED,
        ]
        assert events[-1].message == "Processing cancelled"
