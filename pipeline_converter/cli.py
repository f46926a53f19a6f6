"""Command-line entry point: scan, convert, validate and write workflows."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

from pipeline_converter import __version__
from pipeline_converter.clients.conversation_http import ChatCompletionsClient
from pipeline_converter.core.exceptions import BatchTimeoutError, ConfigurationError
from pipeline_converter.core.logging_config import configure_structured_logging
from pipeline_converter.core.settings import (
    app_settings,
    conversation_settings,
    conversion_settings,
    paths_settings,
    validation_settings,
)
from pipeline_converter.models.dto import (
    ProcessingPhase,
    ProcessingResult,
    ProgressEvent,
    SourceKind,
)
from pipeline_converter.orchestrator import BatchOrchestrator
from pipeline_converter.ports.conversation_port import ConversationClient
from pipeline_converter.processors.agent_profile import load_agent_profile
from pipeline_converter.processors.workflow_checks import select_tools
from pipeline_converter.services.scanner import PipelineScanner
from pipeline_converter.services.workflow_writer import WorkflowWriter

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_TIMEOUT = 2

ClientFactory = Callable[[argparse.Namespace], ConversationClient]

_PHASE_LABELS = {
    ProcessingPhase.STARTING: "starting",
    ProcessingPhase.CONVERTING: "converting",
    ProcessingPhase.CONVERSION_COMPLETE: "converted",
    ProcessingPhase.VALIDATING: "validating",
    ProcessingPhase.VALIDATION_COMPLETE: "validated",
    ProcessingPhase.WRITING: "writing",
    ProcessingPhase.COMPLETE: "done",
    ProcessingPhase.FAILED: "FAILED",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipeline-converter",
        description="Convert GitLab CI, Azure DevOps and Jenkins pipelines to GitHub Actions.",
    )
    parser.add_argument("-i", "--input", default=paths_settings.INPUT_DIRECTORY,
                        help="Directory to scan for pipeline files")
    parser.add_argument("-o", "--output", default=paths_settings.OUTPUT_DIRECTORY,
                        help="Directory to write workflows into")
    parser.add_argument("-s", "--source", choices=[k.value for k in SourceKind],
                        default=paths_settings.SOURCE_FILTER,
                        help="Only convert pipelines of this kind")
    parser.add_argument("-m", "--max-sessions", type=int,
                        default=conversation_settings.MAX_PARALLEL_SESSIONS,
                        help="Maximum parallel conversation sessions")
    parser.add_argument("--model", default=conversation_settings.CONVERSATION_MODEL)
    parser.add_argument("--timeout", type=float,
                        default=conversation_settings.CONVERSATION_TIMEOUT_SECONDS,
                        help="Seconds allowed per exchange with the service")
    parser.add_argument("--skip-validation", action="store_true",
                        default=conversion_settings.SKIP_VALIDATION)
    parser.add_argument("--summary", default=None,
                        help="Write a JSON batch summary to this path")
    parser.add_argument("-v", "--verbose", action="store_true", default=app_settings.VERBOSE)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


class ConsoleProgress:
    """Prints one line per phase change."""

    def __init__(self, stream: TextIO, verbose: bool = False) -> None:
        self.stream = stream
        self.verbose = verbose

    def __call__(self, event: ProgressEvent) -> None:
        if not self.verbose and event.phase not in (
            ProcessingPhase.STARTING,
            ProcessingPhase.COMPLETE,
            ProcessingPhase.FAILED,
        ):
            return
        line = f"[{event.item.name}] {_PHASE_LABELS[event.phase]}"
        if event.message:
            line = f"{line}: {event.message}"
        self.stream.write(line + "\n")
        self.stream.flush()


def _default_client(args: argparse.Namespace) -> ConversationClient:
    api_key = conversation_settings.CONVERSATION_API_KEY
    return ChatCompletionsClient(
        conversation_settings.CONVERSATION_ENDPOINT_URL,
        api_key=api_key.get_secret_value() if api_key else None,
        timeout_seconds=args.timeout,
        verify_ssl=conversation_settings.CONVERSATION_VERIFY_SSL,
    )


def render_results(results: list[ProcessingResult], stream: TextIO, max_issues: int) -> None:
    succeeded = [r for r in results if r.is_success]
    stream.write(
        f"\nConverted {len(succeeded)}/{len(results)} pipeline(s)\n"
    )
    for result in results:
        if not result.is_success:
            stream.write(f"  x {result.item.name}: {result.conversion.reason}\n")
            continue
        stream.write(f"  + {result.item.name} -> {result.artifact_locator}"
                     f" ({result.duration_seconds:.1f}s)\n")
        validation = result.validation
        if validation is not None:
            status = "valid" if validation.is_valid else "has issues"
            stream.write(f"      validation: {status}\n")
            ordered = validation.issues_by_severity()
            for issue in ordered[:max_issues]:
                location = f" (line {issue.line_number})" if issue.line_number else ""
                stream.write(f"      [{issue.severity.label}] {issue.message}{location}\n")
            if len(ordered) > max_issues:
                stream.write(f"      ... and {len(ordered) - max_issues} more\n")
        if result.improved_artifact_applied:
            stream.write("      improvements: applied to output workflow\n")
        if result.report_locator:
            stream.write(f"      report: {result.report_locator}\n")


async def _close_client(client: ConversationClient) -> None:
    aclose = getattr(client, "aclose", None)
    if aclose is not None:
        await aclose()


async def run_convert(
    args: argparse.Namespace,
    client_factory: Optional[ClientFactory] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """Execute a conversion run and return the process exit code."""
    stdout = stdout or sys.stdout
    if args.max_sessions < 1:
        sys.stderr.write("--max-sessions must be at least 1\n")
        return EXIT_FAILURE
    if args.timeout <= 0:
        sys.stderr.write("--timeout must be positive\n")
        return EXIT_FAILURE

    try:
        converter_agent = (
            load_agent_profile(conversation_settings.CONVERTER_AGENT_FILE)
            if conversation_settings.CONVERTER_AGENT_FILE
            else None
        )
        validator_agent = (
            load_agent_profile(conversation_settings.VALIDATOR_AGENT_FILE)
            if conversation_settings.VALIDATOR_AGENT_FILE
            else None
        )
    except ConfigurationError as exc:
        sys.stderr.write(f"{exc.message}\n")
        return EXIT_FAILURE

    scanner = PipelineScanner()
    source_filter = SourceKind(args.source) if args.source else None
    try:
        items = scanner.scan(args.input, source_filter)
    except FileNotFoundError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_FAILURE

    if not items:
        stdout.write(f"No pipeline files found in {args.input}\n")
        stdout.write(f"Supported files: {', '.join(scanner.supported_patterns())}\n")
        return EXIT_OK

    stdout.write(f"Found {len(items)} pipeline(s); converting with up to "
                 f"{args.max_sessions} parallel session(s)\n")

    tools = ()
    if conversation_settings.ENABLE_VALIDATION_TOOLS and not args.skip_validation:
        tools = select_tools(
            validation_settings.CHECK_SECURITY,
            validation_settings.CHECK_ACTION_VERSIONS,
        )

    writer = WorkflowWriter(Path(args.output), conversion_settings.CREATE_WORKFLOWS_SUBDIRECTORY)
    client = (client_factory or _default_client)(args)
    orchestrator = BatchOrchestrator(
        client,
        model=args.model,
        converter_agent=converter_agent,
        validator_agent=validator_agent,
        tools=tools,
        generate_reports=conversion_settings.GENERATE_VALIDATION_REPORTS,
        apply_improvements=conversion_settings.APPLY_IMPROVED_WORKFLOWS,
    )
    try:
        results = await orchestrator.process(
            items,
            writer,
            skip_validation=args.skip_validation,
            observer=ConsoleProgress(stdout, verbose=args.verbose),
            max_concurrency=args.max_sessions,
            per_item_timeout=args.timeout,
        )
    except BatchTimeoutError as exc:
        sys.stderr.write(f"{exc.message}\n")
        return EXIT_TIMEOUT
    finally:
        await _close_client(client)

    render_results(results, stdout, validation_settings.MAX_ISSUES_IN_CONSOLE)
    if args.summary:
        summary_path = writer.write_summary(results, args.summary)
        stdout.write(f"Summary written to {summary_path}\n")

    return EXIT_OK if all(r.is_success for r in results) else EXIT_FAILURE


def main(argv: Optional[list[str]] = None, client_factory: Optional[ClientFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    level = "DEBUG" if args.verbose else app_settings.LOG_LEVEL
    configure_structured_logging(level=level, json_format=app_settings.LOG_JSON)
    try:
        return asyncio.run(run_convert(args, client_factory))
    except KeyboardInterrupt:
        sys.stderr.write("Cancelled\n")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
