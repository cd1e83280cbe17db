"""
Agent Orchestration System.

This package provides the orchestration core:
- Agent capability registry with per-agent concurrency slots
- Workflow store and dependency graph resolution
- Task scheduling with retry and timeout handling
- Execution tracking, cancellation and retention
"""

from .orchestrator import (
    AgentOrchestrator,
    ProgressTracker,
)

from .agent_registry import (
    AgentRegistry,
    AgentCandidate,
    AgentMetrics,
    RegisteredAgent,
)

from .dependency_graph import DependencyGraph
from .workflow_store import WorkflowStore
from .executor import TaskExecutor
from .scheduler import TaskScheduler
from .execution_registry import ExecutionRegistry, ExecutionRecord

__all__ = [
    # Facade
    'AgentOrchestrator',
    'ProgressTracker',

    # Registry components
    'AgentRegistry',
    'AgentCandidate',
    'AgentMetrics',
    'RegisteredAgent',

    # Scheduling components
    'DependencyGraph',
    'WorkflowStore',
    'TaskExecutor',
    'TaskScheduler',
    'ExecutionRegistry',
    'ExecutionRecord',
]
