from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, Optional

from pipeline_converter.core.config import BATCH_TIMEOUT_SAFETY_FACTOR, DEFAULT_MODEL
from pipeline_converter.core.exceptions import BatchTimeoutError
from pipeline_converter.core.logging_config import bind_work_item, unbind_work_item
from pipeline_converter.errors.codes import describe_error
from pipeline_converter.models.dto import (
    ConversionFailed,
    ProcessingPhase,
    ProcessingResult,
    WorkItem,
)
from pipeline_converter.phase_runner import PhaseRunner
from pipeline_converter.ports.conversation_port import (
    ConversationClient,
    ConversationSession,
    SessionConfig,
)
from pipeline_converter.ports.sink_port import ArtifactSink
from pipeline_converter.processors.agent_profile import AgentProfile
from pipeline_converter.processors.sanitizer import build_session_id
from pipeline_converter.progress import ItemProgress, ProgressDispatcher, ProgressObserver

logger = logging.getLogger(__name__)


def batch_ceiling(per_item_timeout: float, max_concurrency: int) -> float:
    """Aggregate time allowed for a whole batch."""
    return per_item_timeout * max_concurrency * BATCH_TIMEOUT_SAFETY_FACTOR


class BatchOrchestrator:
    """Fans a batch of work items out over a bounded pool of sessions.

    At most ``max_concurrency`` sessions are open at any moment: a permit is
    taken before a session is opened and returned only after it is closed.
    Each item runs in its own task; an item's failure never affects the
    others. Results come back in input order.

    Args:
        client: Opens conversation sessions
        model: Model requested for every session
        converter_agent: Optional agent profile used as the system prompt
        validator_agent: Optional agent profile prepended to validation prompts
        tools: Validation tool names offered to every session, narrowed to
            the converter agent's own tool list when it declares one
        generate_reports: Persist validation reports
        apply_improvements: Overwrite workflows with improved versions
    """

    def __init__(
        self,
        client: ConversationClient,
        *,
        model: str = DEFAULT_MODEL,
        converter_agent: Optional[AgentProfile] = None,
        validator_agent: Optional[AgentProfile] = None,
        tools: tuple[str, ...] = (),
        generate_reports: bool = True,
        apply_improvements: bool = True,
    ) -> None:
        self.client = client
        self.model = model
        self.converter_agent = converter_agent
        self.validator_agent = validator_agent
        tools = tuple(tools)
        if converter_agent is not None and converter_agent.tools is not None:
            tools = tuple(t for t in tools if t in converter_agent.tools)
        self.tools = tools
        self.generate_reports = generate_reports
        self.apply_improvements = apply_improvements

    def _session_config(self, item: WorkItem) -> SessionConfig:
        agent = self.converter_agent
        return SessionConfig(
            session_id=build_session_id(item.name),
            model=self.model,
            system_prompt=agent.prompt if agent else None,
            tools=self.tools,
            agent_name=agent.name if agent else None,
        )

    def _build_runner(self, per_item_timeout: float) -> PhaseRunner:
        return PhaseRunner(
            per_item_timeout,
            generate_reports=self.generate_reports,
            apply_improvements=self.apply_improvements,
            validation_preamble=self.validator_agent.prompt if self.validator_agent else None,
            tools_available=bool(self.tools),
        )

    async def _close_session(self, session: ConversationSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.warning(
                "Closing session failed",
                exc_info=True,
                extra={"session_id": getattr(session, "session_id", None)},
            )

    def _session_failure(
        self, item: WorkItem, emit: ItemProgress, exc: Exception, started: float
    ) -> ProcessingResult:
        reason = describe_error("SESSION_OPEN_FAILED", str(exc))
        logger.error(reason, extra={"error_code": "SESSION_OPEN_FAILED"})
        emit(ProcessingPhase.FAILED, reason)
        return ProcessingResult(
            item=item,
            conversion=ConversionFailed(reason=reason, error_code="SESSION_OPEN_FAILED"),
            duration_seconds=time.perf_counter() - started,
            error=exc,
        )

    async def _process_item(
        self,
        item: WorkItem,
        permits: asyncio.Semaphore,
        runner: PhaseRunner,
        sink: ArtifactSink,
        emit: ItemProgress,
        skip_validation: bool,
    ) -> ProcessingResult:
        token = bind_work_item(item.name)
        try:
            async with permits:
                started = time.perf_counter()
                config = self._session_config(item)
                try:
                    session = await self.client.open_session(config)
                except Exception as exc:
                    return self._session_failure(item, emit, exc, started)

                try:
                    return await runner.run(
                        item,
                        session,
                        skip_validation=skip_validation,
                        sink=sink,
                        emit=emit,
                    )
                finally:
                    await self._close_session(session)
        except asyncio.CancelledError:
            # cancelled while waiting for a permit or opening the session
            if not emit.is_terminal:
                emit(ProcessingPhase.FAILED, describe_error("CANCELLED"))
            raise
        finally:
            unbind_work_item(token)

    async def process(
        self,
        items: Iterable[WorkItem],
        sink: ArtifactSink,
        *,
        skip_validation: bool = False,
        observer: Optional[ProgressObserver] = None,
        max_concurrency: int = 3,
        per_item_timeout: float = 120.0,
    ) -> list[ProcessingResult]:
        """Process every item and return one result per item, in input order.

        Raises:
            BatchTimeoutError: The aggregate ceiling
                (per_item_timeout * max_concurrency * 2) elapsed first.
            asyncio.CancelledError: The caller cancelled the batch.
        """
        items = list(items)
        if not items:
            return []
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if per_item_timeout <= 0:
            raise ValueError("per_item_timeout must be positive")

        ceiling = batch_ceiling(per_item_timeout, max_concurrency)
        permits = asyncio.Semaphore(max_concurrency)
        runner = self._build_runner(per_item_timeout)
        results: list[Optional[ProcessingResult]] = [None] * len(items)

        logger.info(
            f"Processing {len(items)} pipeline(s) with up to {max_concurrency} "
            f"parallel session(s), batch ceiling {ceiling:.0f}s"
        )

        async with ProgressDispatcher(observer) as progress:

            async def _run(index: int, item: WorkItem) -> None:
                results[index] = await self._process_item(
                    item,
                    permits,
                    runner,
                    sink,
                    progress.for_item(item),
                    skip_validation,
                )

            try:
                async with asyncio.timeout(ceiling):
                    async with asyncio.TaskGroup() as group:
                        for index, item in enumerate(items):
                            group.create_task(_run(index, item))
            except TimeoutError as exc:
                logger.error(
                    f"Batch ceiling of {ceiling:.0f}s exceeded",
                    extra={"error_code": "BATCH_TIMEOUT"},
                )
                raise BatchTimeoutError(ceiling, len(items)) from exc

        succeeded = sum(1 for r in results if r is not None and r.is_success)
        logger.info(f"Batch finished: {succeeded}/{len(items)} succeeded")
        return [result for result in results if result is not None]
