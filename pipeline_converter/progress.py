"""
Progress reporting for a running batch.

Items emit phase changes through an ``ItemProgress`` handle. Events are
queued and delivered to the observer by a single consumer task, in the order
they were emitted, so the observer never runs concurrently with itself and a
slow or failing observer never blocks or breaks item processing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from pipeline_converter.models.dto import ProcessingPhase, ProgressEvent, WorkItem

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ProgressEvent], None]

_STOP = object()


class PhaseTransitionError(RuntimeError):
    """A phase change that would move an item backwards or past a terminal phase."""


class ItemProgress:
    """Phase emitter for one work item; enforces forward-only transitions."""

    def __init__(self, item: WorkItem, publish: Callable[[ProgressEvent], None]) -> None:
        self.item = item
        self.phase: Optional[ProcessingPhase] = None
        self._publish = publish

    @property
    def is_terminal(self) -> bool:
        return self.phase is not None and self.phase.is_terminal

    def __call__(self, phase: ProcessingPhase, message: Optional[str] = None) -> None:
        current = self.phase
        if current is not None and (current.is_terminal or phase.order <= current.order):
            raise PhaseTransitionError(
                f"{self.item.name}: cannot move from {current.value} to {phase.value}"
            )
        self.phase = phase
        self._publish(ProgressEvent(item=self.item, phase=phase, message=message))


class ProgressDispatcher:
    """Marshals progress events from item tasks onto one consumer task.

    Usage:
        async with ProgressDispatcher(observer) as progress:
            emit = progress.for_item(item)
            emit(ProcessingPhase.STARTING)
    """

    def __init__(self, observer: Optional[ProgressObserver] = None) -> None:
        self._observer = observer
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "ProgressDispatcher":
        if self._observer is not None:
            self._consumer = asyncio.create_task(self._consume())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._consumer is None:
            return
        # everything emitted before this point is still delivered
        self._queue.put_nowait(_STOP)
        await self._consumer
        self._consumer = None

    def for_item(self, item: WorkItem) -> ItemProgress:
        return ItemProgress(item, self.publish)

    def publish(self, event: ProgressEvent) -> None:
        if self._observer is None:
            return
        self._queue.put_nowait(event)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _STOP:
                return
            try:
                self._observer(event)
            except Exception:
                logger.exception(
                    "Progress observer failed",
                    extra={"work_item": event.item.name, "phase": event.phase.value},
                )
