"""Exception hierarchy for the pipeline converter.

Item-level failures never escape the batch: they are captured into a failed
conversion outcome. The classes below describe failures that cross a module
boundary (the conversation service, configuration loading, the batch ceiling)
and carry structured details for logs and the JSON summary.
"""

from typing import Any, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and monitoring."""

    CONFIGURATION = "configuration"
    EXTERNAL_SERVICE = "external_service"
    BATCH = "batch"
    ITEM = "item"


class BaseError(Exception):
    """Base exception for all pipeline converter errors.

    Attributes:
        message: Human-readable error message
        error_code: Application-specific error code
        category: Error category for classification
        details: Additional context (dict)
        retryable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to a flat, JSON-serializable mapping.

        Returns:
            Dict containing standardized error information
        """
        return {
            "code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "details": self.details,
        }


class ConfigurationError(BaseError):
    """Invalid or unreadable configuration (settings, agent files, paths).

    Args:
        message: What is wrong with the configuration
        source: Setting name or file path the problem comes from
    """

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        additional_details = kwargs.pop("details", {})
        if source is not None:
            additional_details["source"] = source
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            category=ErrorCategory.CONFIGURATION,
            details=additional_details,
            retryable=False,
        )


class ExternalServiceError(BaseError):
    """Conversation service failure.

    Args:
        service_name: Name of the external service
        error_type: One of "timeout", "rate_limit", "unavailable", "error",
            "circuit_open", "protocol"
        details: Additional error context
    """

    RETRYABLE_TYPES = frozenset({"timeout", "rate_limit", "unavailable"})

    def __init__(self, service_name: str, error_type: str, **kwargs):
        additional_details = kwargs.pop("details", {})
        additional_details.update(
            {
                "service": service_name,
                "error_type": error_type,
            }
        )
        reason = additional_details.get("reason")
        message = f"{service_name} service {error_type}"
        if reason:
            message = f"{message}: {reason}"

        super().__init__(
            message=message,
            error_code=f"{service_name.upper()}_{error_type.upper()}",
            category=ErrorCategory.EXTERNAL_SERVICE,
            retryable=error_type in self.RETRYABLE_TYPES,
            details=additional_details,
        )
        self.service_name = service_name
        self.error_type = error_type


class BatchTimeoutError(BaseError):
    """The aggregate ceiling of a batch elapsed before every item finished.

    Distinct from caller cancellation, which surfaces as
    ``asyncio.CancelledError``. No partial results are returned.

    Args:
        ceiling_seconds: The aggregate ceiling that was exceeded
        item_count: Number of items in the batch
    """

    def __init__(self, ceiling_seconds: float, item_count: int):
        super().__init__(
            message=(
                f"Batch of {item_count} item(s) did not finish within "
                f"{ceiling_seconds:.1f}s"
            ),
            error_code="BATCH_TIMEOUT",
            category=ErrorCategory.BATCH,
            details={"ceiling_seconds": ceiling_seconds, "item_count": item_count},
            retryable=False,
        )
        self.ceiling_seconds = ceiling_seconds
        self.item_count = item_count
