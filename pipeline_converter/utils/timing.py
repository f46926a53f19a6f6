"""
Per-phase wall-clock timings for a single work item.

The phase runner wraps each phase in ``timer(name)``; the totals end up on
the item's ``ProcessingResult``.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Dict, Iterator


class PhaseTimers:
    """
    Accumulate elapsed time per phase name.

    Each exit from ``timer(name)`` adds the elapsed seconds to
    ``totals[name]``, so a phase entered twice is summed.
    """

    def __init__(self) -> None:
        self.totals: Dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        start_time = time.perf_counter()
        try:
            yield
        finally:
            elapsed_time = time.perf_counter() - start_time
            self.totals[name] = self.totals.get(name, 0.0) + elapsed_time

    def elapsed(self) -> float:
        """Seconds since these timers were created."""
        return time.perf_counter() - self._started
