"""
Agent Orchestrator.

Registers declarative multi-agent workflows, schedules their tasks against
capability-tagged agents, and tracks each execution to completion,
failure, or cancellation.
"""

from .orchestration import AgentOrchestrator
from .handlers import BaseTaskHandler, HandlerRegistry, TaskResult
from .models import (
    AgentCapabilities,
    AgentRole,
    AgentRoleType,
    Execution,
    ExecutionStatus,
    TaskStatus,
    TaskType,
    WorkflowDefinition,
    WorkflowTask,
    WorkflowTrigger,
)
from .utils.config import OrchestrationConfig

__version__ = "0.1.0"

__all__ = [
    'AgentOrchestrator',
    'BaseTaskHandler',
    'HandlerRegistry',
    'TaskResult',
    'AgentCapabilities',
    'AgentRole',
    'AgentRoleType',
    'Execution',
    'ExecutionStatus',
    'TaskStatus',
    'TaskType',
    'WorkflowDefinition',
    'WorkflowTask',
    'WorkflowTrigger',
    'OrchestrationConfig',
]
