"""Tests for the error hierarchy."""

import pytest

from flapboard.core.errors import (
    BoardBusyError,
    BoardNotFoundError,
    ConfigError,
    EmptyMatrixError,
    ErrorCategory,
    ErrorContext,
    FlapboardError,
    NotScheduledError,
    RenderError,
    TransportError,
    ValidationError,
    WorkflowNotAssignedError,
    WorkflowNotFoundError,
    categorize_error,
    is_retryable,
)
from flapboard.scheduling.results import BoardRunResult, RunStatus


class TestCategories:
    @pytest.mark.parametrize(
        ("error", "category", "retryable"),
        [
            (WorkflowNotAssignedError(), ErrorCategory.CONFIG, False),
            (NotScheduledError(), ErrorCategory.SCHEDULE, False),
            (BoardBusyError(), ErrorCategory.SCHEDULE, False),
            (RenderError("bad layout"), ErrorCategory.EXECUTION, False),
            (EmptyMatrixError("nothing"), ErrorCategory.EXECUTION, False),
            (TransportError("503"), ErrorCategory.TRANSPORT, True),
            (ValidationError("bad"), ErrorCategory.VALIDATION, False),
            (BoardNotFoundError("brd_1"), ErrorCategory.NOT_FOUND, False),
        ],
    )
    def test_defaults(self, error, category, retryable):
        assert error.category == category
        assert error.retryable is retryable
        assert is_retryable(error) is retryable
        assert categorize_error(error) == category

    def test_default_messages(self):
        assert WorkflowNotAssignedError().message == "No workflow assigned to this board"
        assert NotScheduledError().message == "Workflow is not scheduled to run at this time"
        assert BoardBusyError().message == "Board is already running a workflow step"
        assert isinstance(WorkflowNotAssignedError(), ConfigError)

    def test_stdlib_errors(self):
        assert categorize_error(ConnectionError("reset")) == ErrorCategory.TRANSPORT
        assert is_retryable(TimeoutError()) is True
        assert categorize_error(ValueError("x")) == ErrorCategory.VALIDATION
        assert categorize_error(KeyError("x")) == ErrorCategory.UNKNOWN
        assert is_retryable(KeyError("x")) is False


class TestContext:
    def test_not_found_carries_ids(self):
        assert BoardNotFoundError("brd_1").context.board_id == "brd_1"
        assert WorkflowNotFoundError("wf_1").context.workflow_id == "wf_1"
        assert str(WorkflowNotFoundError("wf_1")) == "Workflow wf_1 not found"

    def test_with_context_routes_unknown_keys_to_metadata(self):
        error = RenderError("overflow").with_context(board_id="brd_1", font="large")
        assert error.context.board_id == "brd_1"
        assert error.context.metadata == {"font": "large"}
        assert error.context.to_dict() == {"board_id": "brd_1", "font": "large"}

    def test_to_dict(self):
        cause = OSError("socket closed")
        error = TransportError(
            "Push failed",
            retry_after=15,
            context=ErrorContext(board_id="brd_1", http_status=503),
            cause=cause,
        )
        data = error.to_dict()
        assert data["error_type"] == "TransportError"
        assert data["category"] == "TRANSPORT"
        assert data["retry_after"] == 15
        assert data["context"] == {"board_id": "brd_1", "http_status": 503}
        assert data["cause"] == "socket closed"
        assert error.__cause__ is cause

    def test_validation_field(self):
        error = ValidationError("Invalid time", field="start_time", value="25:00")
        assert error.to_dict()["field"] == "start_time"
        assert error.value == "25:00"

    def test_overrides(self):
        error = FlapboardError("x", category=ErrorCategory.STORAGE, retryable=True)
        assert error.category == ErrorCategory.STORAGE
        assert error.retryable is True
        assert repr(error) == "FlapboardError('x', category=STORAGE)"


class TestBoardRunResult:
    def test_schedule_errors_are_skips(self):
        result = BoardRunResult.from_error("brd_1", NotScheduledError())
        assert result.status == RunStatus.SKIPPED
        assert result.reason == "Workflow is not scheduled to run at this time"
        assert result.ok is True

    def test_other_errors_are_failures(self):
        error = RenderError("overflow", context=ErrorContext(workflow_id="wf_1"))
        result = BoardRunResult.from_error("brd_1", error)
        assert result.status == RunStatus.FAILED
        assert result.workflow_id == "wf_1"
        assert result.error == "overflow"
        assert result.to_dict()["error_category"] == "EXECUTION"
        assert result.ok is False

    def test_plain_exception(self):
        result = BoardRunResult.from_error("brd_1", RuntimeError("boom"))
        assert result.status == RunStatus.FAILED
        assert result.error == "boom"
        assert result.error_category == ErrorCategory.UNKNOWN
