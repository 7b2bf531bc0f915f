"""
Structured error types for flapboard.

Every failure the scheduling engine can surface is a ``FlapboardError``
subclass that carries a category, a retry hint and an ``ErrorContext``
describing the board, workflow and step involved.  Batch runners use the
category to decide how a per-board failure is reported (configuration
error, schedule miss, execution failure) without ever letting it escape
the batch.

Manifesto:
    - **Typed taxonomy:** a missing workflow assignment and a failed push
      are different problems and are routed differently
    - **Explicit retry semantics:** only transport failures are retryable,
      and the next tick is the retry
    - **Rich context:** errors know which board they happened on
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      FlapboardError                          │
        │  (category, retryable, retry_after, context, cause)          │
        ├─────────────────────────────────────────────────────────────┤
        │  ConfigError          ScheduleError        ExecutionError    │
        │  (CONFIG)             (SCHEDULE)           (EXECUTION)       │
        │     │                    │                    │              │
        │  WorkflowNotAssigned  NotScheduledError   RenderError        │
        │                       BoardBusyError      EmptyMatrixError   │
        │                                                              │
        │  TransientError       ValidationError      NotFoundError     │
        │  (TRANSPORT, retry)   (VALIDATION)         (NOT_FOUND)       │
        │     │                                        │               │
        │  TransportError                          BoardNotFound       │
        │                                          WorkflowNotFound    │
        │  StorageError (STORAGE)                                      │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = WorkflowNotAssignedError("No workflow assigned")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.with_context(board_id="b_1").context.board_id
    'b_1'

Tags:
    error-handling, exception-hierarchy, scheduling, flapboard

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for reporting and routing.

    Attributes:
        CONFIG: Operator must fix configuration (e.g. no workflow assigned)
        SCHEDULE: Normal skip conditions (outside window, lock held)
        EXECUTION: Rendering or content failures
        TRANSPORT: Device API / network failures
        VALIDATION: Bad input (matrix shape, pin request)
        NOT_FOUND: Unknown board or workflow
        STORAGE: Persistence failures
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    CONFIG = "CONFIG"
    SCHEDULE = "SCHEDULE"
    EXECUTION = "EXECUTION"
    TRANSPORT = "TRANSPORT"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STORAGE = "STORAGE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only the fields that are set show up in ``to_dict()``; anything that
    does not have a dedicated field goes into ``metadata``.
    """

    board_id: str | None = None
    workflow_id: str | None = None
    step_index: int | None = None
    screen_type: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["board_id", "workflow_id", "step_index", "screen_type", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FlapboardError(Exception):
    """Base exception for all flapboard errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only have to supply a message.

    Args:
        message: Human-readable description, surfaced to operators as the
            board's ``last_error``.
        category: Override of the class default category.
        retryable: Override of the class default retry flag.
        retry_after: Suggested delay in seconds before retrying.
        context: Structured metadata.
        cause: Underlying exception; also chained as ``__cause__``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FlapboardError:
        """Add context to this error (fluent API).

        Usage:
            raise RenderError("Renderer failed").with_context(
                board_id=board.id, screen_type="METAR"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(FlapboardError):
    """Configuration problem that requires operator action."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class WorkflowNotAssignedError(ConfigError):
    """The board has no default workflow."""

    def __init__(self, message: str = "No workflow assigned to this board", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# SCHEDULE CONDITIONS (reported as skips by batch runners)
# =============================================================================


class ScheduleError(FlapboardError):
    """Schedule condition that prevented a run."""

    default_category = ErrorCategory.SCHEDULE
    default_retryable = False


class NotScheduledError(ScheduleError):
    """No workflow is allowed to run on the board right now."""

    def __init__(
        self,
        message: str = "Workflow is not scheduled to run at this time",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)


class BoardBusyError(ScheduleError):
    """Another run currently holds the board lock."""

    def __init__(self, message: str = "Board is already running a workflow step", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(FlapboardError):
    """Failure while producing content for a board."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False


class RenderError(ExecutionError):
    """The renderer raised or returned nothing usable."""


class EmptyMatrixError(RenderError):
    """The renderer produced no matrix for a step."""


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(FlapboardError):
    """Temporary failure; the next tick may succeed."""

    default_category = ErrorCategory.TRANSPORT
    default_retryable = True


class TransportError(TransientError):
    """Device API rejected the push or could not be reached."""


# =============================================================================
# INPUT / LOOKUP / STORAGE ERRORS
# =============================================================================


class ValidationError(FlapboardError):
    """Invalid input data."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class NotFoundError(FlapboardError):
    """A referenced record does not exist."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False


class BoardNotFoundError(NotFoundError):
    """Board missing or inactive."""

    def __init__(self, board_id: str):
        super().__init__(f"Board {board_id} not found or inactive", context=ErrorContext(board_id=board_id))
        self.board_id = board_id


class WorkflowNotFoundError(NotFoundError):
    """Workflow missing."""

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow {workflow_id} not found",
            context=ErrorContext(workflow_id=workflow_id),
        )
        self.workflow_id = workflow_id


class StorageError(FlapboardError):
    """Persistence failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, FlapboardError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, FlapboardError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.TRANSPORT
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FlapboardError",
    "ConfigError",
    "WorkflowNotAssignedError",
    "ScheduleError",
    "NotScheduledError",
    "BoardBusyError",
    "ExecutionError",
    "RenderError",
    "EmptyMatrixError",
    "TransientError",
    "TransportError",
    "ValidationError",
    "NotFoundError",
    "BoardNotFoundError",
    "WorkflowNotFoundError",
    "StorageError",
    "is_retryable",
    "categorize_error",
]
