"""
Error classification and retry handling for the Photo Migrator.

This module maps arbitrary exceptions raised by storage SDKs and the
filesystem onto the migrator's error taxonomy, and provides retry logic
with exponential backoff for transient item failures.
"""

import asyncio
import logging
import random
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from .exceptions import (
    PhotoMigratorError,
    ConfigurationError,
    TransientIOError,
    PermanentItemError,
    CostLimitExceeded,
    CheckpointError,
    MigrationStateError,
    MigrationValidationError,
)


# S3 error codes that are worth retrying
TRANSIENT_S3_CODES = frozenset({
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeoutException",
    "InternalError",
    "ServiceUnavailable",
    "503",
    "500",
    "RequestLimitExceeded",
})

MISSING_S3_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class ErrorCategory(str, Enum):
    """Categories of errors for handling and reporting."""
    CONFIGURATION = "configuration"
    TRANSIENT_IO = "transient_io"
    PERMANENT_ITEM = "permanent_item"
    COST_LIMIT = "cost_limit"
    CHECKPOINT = "checkpoint"
    STATE = "state"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error occurrence."""
    timestamp: datetime = field(default_factory=datetime.now)
    operation: Optional[str] = None
    migration_id: Optional[str] = None
    item_id: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RetryConfig:
    """Configuration for retry logic."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False
    retryable_exceptions: List[Type[Exception]] = field(
        default_factory=lambda: [TransientIOError]
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 1-indexed failed attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


@dataclass
class ErrorInfo:
    """Categorized error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ErrorContext
    remediation_steps: List[str]
    traceback_str: str
    is_retryable: bool = False


def _client_error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _client_error_status(error: ClientError) -> int:
    return int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


def classify_exception(
    error: BaseException,
    ref: Optional[str] = None,
    operation: Optional[str] = None,
) -> PhotoMigratorError:
    """
    Map an arbitrary exception onto the migrator's error taxonomy.

    Errors that already belong to the taxonomy are returned unchanged.
    S3 throttling, timeouts, 5xx responses and connection failures become
    TransientIOError; missing objects, access denials and malformed requests
    become PermanentItemError.

    Args:
        error: The exception to classify
        ref: Storage reference the operation was acting on
        operation: Name of the failing operation (upload, download, ...)

    Returns:
        A PhotoMigratorError instance chained to the original exception
    """
    if isinstance(error, PhotoMigratorError):
        return error

    message = f"{operation or 'operation'} failed for {ref or 'unknown ref'}: {error}"

    if isinstance(error, ClientError):
        code = _client_error_code(error)
        status = _client_error_status(error)
        if code in TRANSIENT_S3_CODES or status >= 500 or status == 429:
            classified: PhotoMigratorError = TransientIOError(
                message, ref=ref, operation=operation, details={"aws_code": code}
            )
        elif code in MISSING_S3_CODES:
            classified = PermanentItemError(
                message, reason="object not found", ref=ref, operation=operation,
                details={"aws_code": code}
            )
        else:
            classified = PermanentItemError(
                message, reason=code or "client error", ref=ref, operation=operation,
                details={"aws_code": code}
            )
    elif isinstance(error, NoCredentialsError):
        classified = ConfigurationError(f"AWS credentials not found: {error}")
    elif isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        classified = TransientIOError(message, ref=ref, operation=operation)
    elif isinstance(error, BotoCoreError):
        classified = TransientIOError(message, ref=ref, operation=operation)
    elif isinstance(error, FileNotFoundError):
        classified = PermanentItemError(
            message, reason="file not found", ref=ref, operation=operation
        )
    elif isinstance(error, PermissionError):
        classified = PermanentItemError(
            message, reason="permission denied", ref=ref, operation=operation
        )
    elif isinstance(error, IsADirectoryError):
        classified = PermanentItemError(
            message, reason="not a file", ref=ref, operation=operation
        )
    elif isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError, OSError)):
        classified = TransientIOError(message, ref=ref, operation=operation)
    else:
        classified = PermanentItemError(
            message, reason=type(error).__name__, ref=ref, operation=operation
        )

    classified.__cause__ = error
    return classified


class ErrorHandler:
    """
    Error handler with categorization, logging and remediation hints.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._error_mappings = self._build_error_mappings()
        self._remediation_guides = self._build_remediation_guides()

    def _build_error_mappings(self) -> Dict[Type[Exception], Dict[str, Any]]:
        """Build mapping of exception types to error categories and severities."""
        return {
            ConfigurationError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.HIGH,
                "retryable": False,
            },
            TransientIOError: {
                "category": ErrorCategory.TRANSIENT_IO,
                "severity": ErrorSeverity.LOW,
                "retryable": True,
            },
            PermanentItemError: {
                "category": ErrorCategory.PERMANENT_ITEM,
                "severity": ErrorSeverity.MEDIUM,
                "retryable": False,
            },
            CostLimitExceeded: {
                "category": ErrorCategory.COST_LIMIT,
                "severity": ErrorSeverity.MEDIUM,
                "retryable": False,
            },
            CheckpointError: {
                "category": ErrorCategory.CHECKPOINT,
                "severity": ErrorSeverity.CRITICAL,
                "retryable": False,
            },
            MigrationStateError: {
                "category": ErrorCategory.STATE,
                "severity": ErrorSeverity.HIGH,
                "retryable": False,
            },
            MigrationValidationError: {
                "category": ErrorCategory.VALIDATION,
                "severity": ErrorSeverity.HIGH,
                "retryable": False,
            },
        }

    def _build_remediation_guides(self) -> Dict[ErrorCategory, List[str]]:
        """Build remediation guides for each error category."""
        return {
            ErrorCategory.CONFIGURATION: [
                "Check the values passed on the command line or in the config file",
                "Verify AWS credentials are available (environment, profile or instance role)",
            ],
            ErrorCategory.TRANSIENT_IO: [
                "Check network connectivity to the storage endpoint",
                "Re-run with --resume once the service recovers",
            ],
            ErrorCategory.PERMANENT_ITEM: [
                "Inspect the failing item in the origin storage",
                "Remove or repair invalid files before resuming",
            ],
            ErrorCategory.COST_LIMIT: [
                "Review storage usage against the free-tier limits",
                "Raise --cost-threshold or wait for the usage period to roll over, then --resume",
            ],
            ErrorCategory.CHECKPOINT: [
                "Check free disk space and permissions of the checkpoint directory",
                "Re-run with --resume once the checkpoint directory is writable",
            ],
            ErrorCategory.STATE: [
                "Use 'photo-migrator status' to inspect the migration state",
                "Completed migrations cannot be restarted; start a new migration instead",
            ],
            ErrorCategory.VALIDATION: [
                "Verify the destination bucket contents",
                "Consider --rollback and re-running the migration",
            ],
            ErrorCategory.UNKNOWN: [
                "Review error logs for additional context",
                "Re-run with --verbose for debug output",
            ],
        }

    def categorize_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Categorize an error and create error information.

        Args:
            error: The exception that occurred
            context: Optional context information

        Returns:
            ErrorInfo object with categorized error details
        """
        mapping = self._error_mappings.get(type(error))

        if not mapping:
            # Try to find mapping for parent classes
            for exc_type, exc_mapping in self._error_mappings.items():
                if isinstance(error, exc_type):
                    mapping = exc_mapping
                    break

        if not mapping:
            mapping = {
                "category": ErrorCategory.UNKNOWN,
                "severity": ErrorSeverity.MEDIUM,
                "retryable": False,
            }

        category = mapping["category"]
        return ErrorInfo(
            error=error,
            category=category,
            severity=mapping["severity"],
            context=context or ErrorContext(),
            remediation_steps=self._remediation_guides.get(category, []),
            traceback_str=traceback.format_exc(),
            is_retryable=mapping["retryable"],
        )

    def remediation_hint(self, error: Exception) -> List[str]:
        """Return remediation steps for an error."""
        return self.categorize_error(error).remediation_steps

    def log_error(self, error_info: ErrorInfo) -> None:
        """Log error information with appropriate level."""
        log_data = {
            "error_type": type(error_info.error).__name__,
            "error_message": str(error_info.error),
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "operation": error_info.context.operation,
            "migration_id": error_info.context.migration_id,
            "item_id": error_info.context.item_id,
        }

        if error_info.severity == ErrorSeverity.CRITICAL:
            self.logger.critical("Critical error occurred: %s", error_info.error, extra=log_data)
        elif error_info.severity == ErrorSeverity.HIGH:
            self.logger.error("Error occurred: %s", error_info.error, extra=log_data)
        elif error_info.severity == ErrorSeverity.MEDIUM:
            self.logger.warning("%s", error_info.error, extra=log_data)
        else:
            self.logger.info("%s", error_info.error, extra=log_data)


class RetryHandler:
    """
    Handles retry logic with exponential backoff.

    The backoff sleep waits on an optional stop event so an external
    interrupt does not have to wait out the full delay.
    """

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)

    async def retry_with_backoff(
        self,
        func: Callable,
        *args,
        retry_config: Optional[RetryConfig] = None,
        stop_event: Optional[asyncio.Event] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        context: Optional[ErrorContext] = None,
        **kwargs
    ) -> Any:
        """
        Execute a function with retry logic and exponential backoff.

        Args:
            func: Function or coroutine function to execute
            *args: Positional arguments for the function
            retry_config: Retry configuration
            stop_event: When set, retrying stops and the last error is raised
            on_retry: Called with (attempt, error, delay) before each backoff sleep
            context: Error context attached to logged failures
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function execution

        Raises:
            The last exception if it is not retryable or retries are exhausted
        """
        config = retry_config or RetryConfig()
        last_exception: Optional[Exception] = None

        for attempt in range(1, config.max_attempts + 1):
            try:
                if asyncio.iscoroutinefunction(func):
                    return await func(*args, **kwargs)
                return func(*args, **kwargs)

            except Exception as e:
                last_exception = e
                self.error_handler.log_error(self.error_handler.categorize_error(e, context))

                if not any(isinstance(e, exc_type) for exc_type in config.retryable_exceptions):
                    raise

                if attempt == config.max_attempts:
                    break

                if stop_event is not None and stop_event.is_set():
                    self.logger.debug("Stop requested, not retrying %s", e)
                    break

                delay = config.delay_for(attempt)
                if on_retry:
                    on_retry(attempt, e, delay)

                self.logger.info(
                    f"Retrying in {delay:.2f} seconds (attempt {attempt}/{config.max_attempts}): {e}"
                )

                if await _interruptible_sleep(delay, stop_event):
                    self.logger.debug("Stop requested during backoff")
                    break

        if last_exception:
            raise last_exception


async def _interruptible_sleep(delay: float, stop_event: Optional[asyncio.Event]) -> bool:
    """Sleep for delay seconds; return True if the stop event fired first."""
    if stop_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False


def create_item_retry_config(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float = 30.0,
) -> RetryConfig:
    """Create retry configuration for per-item transfers."""
    return RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        exponential_base=backoff_multiplier,
        retryable_exceptions=[TransientIOError],
    )
