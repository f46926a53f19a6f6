"""Structured logging configuration.

This module provides:
- JSON-formatted log lines for machine consumption
- A plain-text format for interactive runs
- Work item correlation: every record emitted from an item's task carries
  the item name, even from code that does not know which item it serves
"""

import contextvars
import json
import logging
from datetime import datetime, timezone

# Carries the current work item across awaits; each asyncio task gets its own copy.
_work_item_ctx: contextvars.ContextVar[str] = contextvars.ContextVar(
    "work_item", default="-"
)


def get_work_item() -> str:
    return _work_item_ctx.get()


def bind_work_item(name: str) -> contextvars.Token:
    """Bind ``name`` as the current work item for this task."""
    return _work_item_ctx.set(name)


def unbind_work_item(token: contextvars.Token) -> None:
    _work_item_ctx.reset(token)


class WorkItemFilter(logging.Filter):
    """Inject the current work item from contextvars into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not hasattr(record, "work_item"):
            record.work_item = get_work_item()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs logs as JSON with standard fields plus any extra context
    provided via the 'extra' parameter in logger calls.

    Example:
        >>> logger.info("Session opened", extra={"session_id": "pipeline-ci-1f"})
        # Output: {"timestamp": "2026-01-05T17:52:00Z", "level": "INFO",
        #          "message": "Session opened", "session_id": "pipeline-ci-1f"}
    """

    EXTRA_FIELDS = (
        "work_item",
        "session_id",
        "phase",
        "error_code",
        "service",
        "duration_ms",
        "http_status",
        "retry_attempt",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_structured_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure logging for the application.

    Safe to call repeatedly; existing root handlers are replaced.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatter (True) or plain text (False)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # stderr keeps stdout free for progress and summary output
    handler = logging.StreamHandler()
    handler.addFilter(WorkItemFilter())

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | item=%(work_item)s | %(message)s"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
