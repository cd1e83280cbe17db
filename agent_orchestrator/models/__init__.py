"""
Data models and error types for the agent orchestrator.
"""

from .core import (
    AgentRoleType,
    AgentRole,
    AgentCapabilities,
    TaskType,
    TaskStatus,
    TaskTransition,
    TERMINAL_TASK_STATUSES,
    WorkflowTask,
    WorkflowTrigger,
    TriggerType,
    WorkflowDefinition,
    ExecutionStatus,
    Execution,
)
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    TaskError,
    OrchestratorError,
    ValidationError,
    InvalidWorkflowError,
    CyclicDependencyError,
    WorkflowNotFoundError,
    ExecutionNotFoundError,
    InvalidStateTransitionError,
    TaskExecutionError,
    NoCapableAgentError,
    HandlerNotFoundError,
    HandlerError,
    HandlerTimeoutError,
)

__all__ = [
    'AgentRoleType', 'AgentRole', 'AgentCapabilities', 'TaskType', 'TaskStatus',
    'TaskTransition', 'TERMINAL_TASK_STATUSES', 'WorkflowTask', 'WorkflowTrigger',
    'TriggerType', 'WorkflowDefinition', 'ExecutionStatus', 'Execution',
    'ErrorCategory', 'ErrorSeverity', 'TaskError', 'OrchestratorError',
    'ValidationError', 'InvalidWorkflowError', 'CyclicDependencyError',
    'WorkflowNotFoundError', 'ExecutionNotFoundError', 'InvalidStateTransitionError',
    'TaskExecutionError', 'NoCapableAgentError', 'HandlerNotFoundError',
    'HandlerError', 'HandlerTimeoutError',
]
