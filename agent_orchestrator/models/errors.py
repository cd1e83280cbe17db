"""
Error handling models and exceptions for the agent orchestrator.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of errors."""
    VALIDATION = "validation"
    LOOKUP = "lookup"
    SCHEDULING = "scheduling"
    HANDLER = "handler"
    TIMEOUT = "timeout"
    SYSTEM = "system"


class TaskError(BaseModel):
    """Error recorded on a task when an attempt does not succeed."""
    error_type: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    category: ErrorCategory = ErrorCategory.SYSTEM
    retryable: bool = False
    attempt: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=datetime.now)
    context: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: Exception, attempt: int = 0) -> "TaskError":
        """Build a TaskError from any exception."""
        if isinstance(error, OrchestratorError):
            return cls(
                error_type=type(error).__name__,
                message=error.message or type(error).__name__,
                category=error.category,
                retryable=getattr(error, "retryable", False),
                attempt=attempt,
                context={k: _jsonable(v) for k, v in error.context.items()},
            )
        return cls(
            error_type=type(error).__name__,
            message=str(error) or type(error).__name__,
            attempt=attempt,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


# Custom exceptions
class OrchestratorError(Exception):
    """Base exception for the agent orchestrator."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **kwargs):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = kwargs


class ValidationError(OrchestratorError):
    """Invalid input to an orchestrator operation."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class InvalidWorkflowError(ValidationError):
    """A workflow definition is not well formed."""

    def __init__(self, message: str, workflow_id: Optional[str] = None, **kwargs):
        super().__init__(message, workflow_id=workflow_id, **kwargs)
        self.workflow_id = workflow_id


class CyclicDependencyError(InvalidWorkflowError):
    """The dependencies of a workflow do not form a DAG."""

    def __init__(self, workflow_id: Optional[str], cycle_tasks: Optional[list] = None):
        self.cycle_tasks = sorted(cycle_tasks or [])
        message = f"Workflow {workflow_id!r} has cyclic task dependencies"
        if self.cycle_tasks:
            message += f" involving: {', '.join(self.cycle_tasks)}"
        super().__init__(message, workflow_id=workflow_id, cycle_tasks=self.cycle_tasks)


class WorkflowNotFoundError(OrchestratorError):
    """No workflow is registered under the requested id."""

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow not found: {workflow_id}",
            ErrorCategory.LOOKUP, ErrorSeverity.LOW,
            workflow_id=workflow_id,
        )
        self.workflow_id = workflow_id


class ExecutionNotFoundError(OrchestratorError):
    """No execution is tracked under the requested id."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution not found: {execution_id}",
            ErrorCategory.LOOKUP, ErrorSeverity.LOW,
            execution_id=execution_id,
        )
        self.execution_id = execution_id


class InvalidStateTransitionError(OrchestratorError):
    """A task was asked to make a transition its state machine forbids."""

    def __init__(self, task_id: str, current: str, target: str):
        super().__init__(
            f"Task {task_id} cannot move from {current} to {target}",
            ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL,
            task_id=task_id, current=current, target=target,
        )


class TaskExecutionError(OrchestratorError):
    """Failure of a single task attempt."""

    retryable = False

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.HANDLER,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **kwargs):
        super().__init__(message, category, severity, **kwargs)


class NoCapableAgentError(TaskExecutionError):
    """No registered agent offers the capabilities a task requires."""

    def __init__(self, task_id: str, required_capabilities):
        required = sorted(required_capabilities)
        super().__init__(
            f"No capable agent for task {task_id} (requires: {', '.join(required) or 'nothing'})",
            ErrorCategory.SCHEDULING, ErrorSeverity.HIGH,
            task_id=task_id, required_capabilities=required,
        )


class HandlerNotFoundError(TaskExecutionError):
    """No handler is registered for a task type."""

    def __init__(self, task_type: str):
        super().__init__(
            f"No handler registered for task type {task_type!r}",
            ErrorCategory.HANDLER, ErrorSeverity.HIGH,
            task_type=task_type,
        )


class HandlerError(TaskExecutionError):
    """A task handler raised or reported an error."""

    retryable = True

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.HANDLER, **kwargs):
        super().__init__(message, category, ErrorSeverity.MEDIUM, **kwargs)


class HandlerTimeoutError(HandlerError):
    """A task handler did not finish within the task timeout."""

    def __init__(self, task_type: str, timeout_seconds: float):
        super().__init__(
            f"Handler for {task_type!r} timed out after {timeout_seconds} seconds",
            ErrorCategory.TIMEOUT,
            task_type=task_type, timeout_seconds=timeout_seconds,
        )
