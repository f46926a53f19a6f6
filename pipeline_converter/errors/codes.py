"""
Centralized registry of item failure codes.

A failed conversion outcome carries one of these codes so the console,
the JSON summary and the logs agree on what went wrong.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class ErrorSpec:
    """Specification for a single item failure type."""

    code: str
    message: str
    category: str  # "item" or "external_service"
    retryable: bool  # True if re-running the item may succeed


class ErrorCode(Enum):
    """Centralized error code registry.

    Usage:
        spec = ErrorCode.get_spec("ARTIFACT_NOT_FOUND")
        print(spec.message, spec.retryable)
    """

    # ========================================
    # CONVERSATION SERVICE
    # ========================================
    SESSION_OPEN_FAILED = ErrorSpec(
        "SESSION_OPEN_FAILED",
        "Could not open a conversation session",
        "external_service",
        True,
    )
    CONVERSION_FAILED = ErrorSpec(
        "CONVERSION_FAILED",
        "Conversion failed",
        "external_service",
        True,
    )
    CONVERSION_EMPTY_RESPONSE = ErrorSpec(
        "CONVERSION_EMPTY_RESPONSE",
        "Conversion returned an empty response",
        "external_service",
        True,
    )

    # ========================================
    # ITEM PROCESSING
    # ========================================
    ARTIFACT_NOT_FOUND = ErrorSpec(
        "ARTIFACT_NOT_FOUND",
        "Could not extract artifact",
        "item",
        True,
    )
    ARTIFACT_WRITE_FAILED = ErrorSpec(
        "ARTIFACT_WRITE_FAILED",
        "Could not write the converted workflow",
        "item",
        False,
    )
    CANCELLED = ErrorSpec(
        "CANCELLED",
        "Processing cancelled",
        "item",
        True,
    )

    # ========================================
    # FALLBACK
    # ========================================
    UNKNOWN_ERROR = ErrorSpec(
        "UNKNOWN_ERROR",
        "Unexpected error",
        "item",
        False,
    )

    @classmethod
    def get_spec(cls, code: str) -> ErrorSpec:
        """Get error specification by code string.

        Returns:
            ErrorSpec with message, category and retryability.
            Returns a generic spec for unknown codes.
        """
        for error in cls:
            if error.value.code == code:
                return error.value
        return ErrorSpec(code, f"Error: {code}", "item", False)


def describe_error(code: str, details: str | None = None) -> str:
    """Build the human-readable failure reason for a code.

    Looks up the registered message and appends details when present.
    """
    spec = ErrorCode.get_spec(code)
    if details:
        return f"{spec.message}: {details}"
    return spec.message
